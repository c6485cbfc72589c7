from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml
from loguru import logger
from pydantic import ValidationError

from packages.common.config import DEFAULT_SYMBOLS, FeedConfig, SymbolInfo, load_symbols
from packages.market_data.bar_store import TimeSeriesStore
from packages.market_data.normalize import NormalizeResult, normalize_payload
from packages.market_data.symbols import SymbolRegistry
from packages.market_data.synthetic import generate_sample_bars


@dataclass(frozen=True)
class LoadReport:
    symbol: str
    source: str  # "file" | "synthetic"
    bars: int
    rejected: int = 0
    zero_price_bars: int = 0


def load_symbol_registry(path: Path) -> SymbolRegistry:
    try:
        symbols: Dict[str, SymbolInfo] = load_symbols(path)
    except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
        logger.error("{} unreadable ({}) - using default symbols", path, e)
        symbols = dict(DEFAULT_SYMBOLS)

    if not path.exists():
        logger.warning("{} not found - using default symbols", path)

    return SymbolRegistry(symbols)


def read_symbol_file(path: Path) -> NormalizeResult:
    """Parse one `<SYMBOL>.json` file into normalized base bars."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    return normalize_payload(payload)


def _count_zero_price(result: NormalizeResult) -> int:
    return sum(1 for b in result.bars if b.open == 0.0 and b.high == 0.0 and b.low == 0.0 and b.close == 0.0)


def _load_synthetic(store: TimeSeriesStore, symbol: str, cfg: FeedConfig) -> LoadReport:
    bars = generate_sample_bars(
        symbol,
        count=cfg.sample_bars,
        interval_s=cfg.base_resolution_minutes * 60,
        seed=cfg.sample_seed,
    )
    store.load(symbol, bars, source="synthetic")
    return LoadReport(symbol=symbol, source="synthetic", bars=len(bars))


def load_symbol(store: TimeSeriesStore, symbol: str, data_dir: Path, cfg: FeedConfig) -> LoadReport:
    path = data_dir / f"{symbol}.json"
    try:
        result = read_symbol_file(path)
    except FileNotFoundError:
        logger.warning("Data file for {} not found, generating sample data", symbol)
        return _load_synthetic(store, symbol, cfg)
    except (OSError, ValueError) as e:
        logger.warning("Data file for {} unreadable ({}), generating sample data", symbol, e)
        return _load_synthetic(store, symbol, cfg)

    store.load(symbol, result.bars, source="file")

    zero = _count_zero_price(result)
    if result.rejected:
        logger.warning("{}: rejected {} malformed/out-of-range records", symbol, result.rejected)
    if zero:
        logger.warning("{}: {} bars have no price fields (all-zero OHLC)", symbol, zero)

    logger.info("Loaded {} bars for {} ({} shape)", result.accepted, symbol, result.shape.value)
    return LoadReport(
        symbol=symbol,
        source="file",
        bars=result.accepted,
        rejected=result.rejected,
        zero_price_bars=zero,
    )


def load_store(
    registry: SymbolRegistry,
    cfg: FeedConfig,
    *,
    data_dir: Optional[Path] = None,
) -> tuple[TimeSeriesStore, list[LoadReport]]:
    """
    Build the store for every registered symbol.

    - missing data dir -> synthetic series for all symbols
    - missing/unreadable symbol file -> synthetic series for that symbol
    """
    ddir = Path(cfg.data_dir) if data_dir is None else data_dir
    store = TimeSeriesStore(base_resolution_minutes=cfg.base_resolution_minutes)
    reports: list[LoadReport] = []

    if not ddir.is_dir():
        logger.warning("Data directory {} not found, generating sample data", ddir)
        for sym in registry.symbols():
            reports.append(_load_synthetic(store, sym, cfg))
        return store, reports

    for sym in registry.symbols():
        reports.append(load_symbol(store, sym, ddir, cfg))

    return store, reports
