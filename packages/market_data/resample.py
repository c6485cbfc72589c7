from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from packages.common.constants import BASE_RESOLUTION_MINUTES
from packages.common.resolutions import floor_ts_to_interval, resolution_to_minutes
from packages.common.types import Bar

# -----------------------------
# Internal aggregation state
# -----------------------------

@dataclass
class _AggState:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: int

    @classmethod
    def start(cls, bucket: int, b: Bar) -> "_AggState":
        return cls(
            time=bucket,
            open=b.open,
            high=b.high,
            low=b.low,
            close=b.close,
            volume=b.volume,
        )

    def add(self, b: Bar) -> None:
        self.high = max(self.high, b.high)
        self.low = min(self.low, b.low)
        self.close = b.close
        self.volume += b.volume

    def to_bar(self) -> Bar:
        return Bar(
            time=self.time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
        )


# -----------------------------
# Streaming resampler
# -----------------------------

class Resampler:
    """
    Online bucket aggregator.

    Feed it base bars of a single symbol in ascending time order and it emits
    a completed coarse bar each time the bucket rolls over.

    Example:
        rs = Resampler(interval_s=3600)   # 1h candles from a 5m feed
        for bar in bars:
            out = rs.on_bar(bar)
            if out:
                handle(out)
        last = rs.flush()
    """

    def __init__(self, interval_s: int):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.interval_s = interval_s
        self._state: Optional[_AggState] = None

    def on_bar(self, b: Bar) -> Optional[Bar]:
        buck = floor_ts_to_interval(b.time, self.interval_s)
        st = self._state

        # First bar
        if st is None:
            self._state = _AggState.start(buck, b)
            return None

        # Still in the open bucket
        if buck == st.time:
            st.add(b)
            return None

        # Bucket rollover -> emit completed candle, start a new one
        out = st.to_bar()
        self._state = _AggState.start(buck, b)
        return out

    def flush(self) -> Optional[Bar]:
        """Emit the open (possibly partial) bucket and reset."""
        st = self._state
        self._state = None
        return st.to_bar() if st is not None else None


def resample(
    bars: Sequence[Bar],
    resolution: str,
    *,
    base_resolution_minutes: int = BASE_RESOLUTION_MINUTES,
) -> List[Bar]:
    """
    Aggregate ascending base bars into `resolution` bars.

    - resolutions at or below the base pass through unchanged
    - the trailing partial bucket is emitted, not dropped or padded
    - input MUST be sorted ASC by time; grouping compares against the open bucket only
    """
    if not bars:
        return []

    minutes = resolution_to_minutes(resolution)
    if minutes <= base_resolution_minutes:
        return list(bars)

    rs = Resampler(interval_s=minutes * 60)
    out: List[Bar] = []
    for b in bars:
        done = rs.on_bar(b)
        if done is not None:
            out.append(done)

    last = rs.flush()
    if last is not None:
        out.append(last)
    return out
