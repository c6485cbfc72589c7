from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from packages.common.constants import BASE_RESOLUTION_MINUTES
from packages.common.types import Bar


@dataclass(frozen=True)
class SymbolSeries:
    symbol: str
    bars: Tuple[Bar, ...]  # sorted by time ASC, duplicates allowed
    source: str = "file"   # "file" | "synthetic"

    def __len__(self) -> int:
        return len(self.bars)

    @property
    def first_time(self) -> Optional[int]:
        return self.bars[0].time if self.bars else None

    @property
    def last_time(self) -> Optional[int]:
        return self.bars[-1].time if self.bars else None


class TimeSeriesStore:
    """
    Read-only per-symbol store of base-resolution bars.

    Series are handed over once at load time and never mutated afterwards,
    so concurrent readers need no locking.

    Access:
      - range_filter(symbol, from_s, to_s) -> bars with from_s <= time <= to_s
      - latest(symbol, n) -> last n bars
    """

    def __init__(self, base_resolution_minutes: int = BASE_RESOLUTION_MINUTES):
        self.base_resolution_minutes = base_resolution_minutes
        self._series: Dict[str, SymbolSeries] = {}
        self._times: Dict[str, List[int]] = {}

    def load(self, symbol: str, bars: Sequence[Bar], *, source: str = "file") -> SymbolSeries:
        # Validate ordering
        for i in range(1, len(bars)):
            if bars[i].time < bars[i - 1].time:
                raise ValueError(f"Bars not sorted for symbol={symbol}")

        series = SymbolSeries(symbol=symbol, bars=tuple(bars), source=source)
        self._series[symbol] = series
        self._times[symbol] = [b.time for b in series.bars]
        return series

    def get(self, symbol: str) -> Optional[SymbolSeries]:
        return self._series.get(symbol)

    def has_series(self, symbol: str) -> bool:
        return symbol in self._series

    def symbols(self) -> List[str]:
        return list(self._series.keys())

    def range_filter(self, symbol: str, from_s: int, to_s: int) -> List[Bar]:
        s = self._series.get(symbol)
        if not s or not s.bars or to_s < from_s:
            return []

        times = self._times[symbol]
        lo = bisect.bisect_left(times, from_s)
        hi = bisect.bisect_right(times, to_s)
        return list(s.bars[lo:hi])

    def latest(self, symbol: str, n: int) -> List[Bar]:
        if n <= 0:
            return []
        s = self._series.get(symbol)
        if not s or not s.bars:
            return []
        return list(s.bars[-n:])
