from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from packages.common.constants import BASE_INTERVAL_S
from packages.common.datetime_utils import now_s
from packages.common.resolutions import floor_ts_to_interval
from packages.common.types import Bar

BASE_PRICES: Dict[str, float] = {
    "EURUSD": 1.0800, "GBPUSD": 1.2600, "USDJPY": 149.50, "USDCHF": 0.8800,
    "AUDUSD": 0.6650, "USDCAD": 1.3450, "NZDUSD": 0.6150, "GBPJPY": 188.00,
    "AUDJPY": 99.30, "CADJPY": 111.20, "XAUUSD": 2030.00, "USOIL": 74.50,
    "SPX500": 4580.00, "US30": 37800.00, "NAS100": 15950.00, "NIFTY": 21350.00,
    "BTCUSDT": 42500.00,
}
DEFAULT_BASE_PRICE = 100.0

JPY_CROSSES = {"USDJPY", "GBPJPY", "AUDJPY", "CADJPY"}
MAJOR_FX = {"EURUSD", "GBPUSD", "USDCHF", "AUDUSD", "USDCAD", "NZDUSD"}
COMMODITIES = {"XAUUSD", "USOIL"}
INDICES = {"SPX500", "US30", "NAS100", "NIFTY"}


@dataclass(frozen=True)
class SampleProfile:
    base_price: float
    volatility: float
    decimals: int
    volume_lo: int
    volume_hi: int  # exclusive


def profile_for(symbol: str) -> SampleProfile:
    if symbol in COMMODITIES:
        vol = 0.01
    elif symbol == "BTCUSDT":
        vol = 0.025
    elif symbol in INDICES:
        vol = 0.0075
    else:
        vol = 0.005

    if symbol == "BTCUSDT":
        v_lo, v_hi = 100, 1000
    elif "USD" in symbol or "JPY" in symbol:
        v_lo, v_hi = 5000, 20000
    else:
        v_lo, v_hi = 10000, 100000

    if symbol in JPY_CROSSES:
        decimals = 3
    elif symbol in MAJOR_FX:
        decimals = 5
    else:
        decimals = 2

    return SampleProfile(
        base_price=BASE_PRICES.get(symbol, DEFAULT_BASE_PRICE),
        volatility=vol,
        decimals=decimals,
        volume_lo=v_lo,
        volume_hi=v_hi,
    )


def generate_sample_bars(
    symbol: str,
    *,
    count: int = 10_000,
    interval_s: int = BASE_INTERVAL_S,
    end_s: Optional[int] = None,
    seed: Optional[int] = None,
) -> List[Bar]:
    """
    Random-walk sample series on the base grid, ending just before `end_s` (default: now).

    Only used when a symbol has no data file. Deterministic for a given seed.
    """
    if count <= 0:
        raise ValueError("count must be > 0")
    if interval_s <= 0:
        raise ValueError("interval_s must be > 0")

    rng = random.Random(seed)
    p = profile_for(symbol)

    end = now_s() if end_s is None else int(end_s)
    t = floor_ts_to_interval(end - count * interval_s, interval_s)

    price = p.base_price
    out: List[Bar] = []
    for _ in range(count):
        change = (rng.random() - 0.5) * 2 * p.volatility
        open_price = price
        price = price * (1 + change)

        high = max(open_price, price) * (1 + rng.random() * p.volatility / 3)
        low = min(open_price, price) * (1 - rng.random() * p.volatility / 3)

        out.append(
            Bar(
                time=t,
                open=round(open_price, p.decimals),
                high=round(high, p.decimals),
                low=round(low, p.decimals),
                close=round(price, p.decimals),
                volume=rng.randrange(p.volume_lo, p.volume_hi),
            )
        )
        t += interval_s

    return out
