from __future__ import annotations

from loguru import logger

# Flat numeric approximation: "1M" is 30 days, not a calendar month.
RESOLUTION_MINUTES: dict[str, int] = {
    "1": 1,
    "5": 5,
    "15": 15,
    "30": 30,
    "60": 60,
    "240": 240,
    "1D": 1440,
    "1W": 10080,
    "1M": 43200,
}

SUPPORTED_RESOLUTIONS: list[str] = list(RESOLUTION_MINUTES)

DEFAULT_RESOLUTION_MINUTES: int = 60


def resolution_to_minutes(resolution: str) -> int:
    """
    Map a resolution token to minutes.

    Unknown tokens degrade to 60 minutes instead of raising.
    """
    minutes = RESOLUTION_MINUTES.get(str(resolution).strip())
    if minutes is None:
        logger.debug("Unknown resolution {!r} - defaulting to {}m", resolution, DEFAULT_RESOLUTION_MINUTES)
        return DEFAULT_RESOLUTION_MINUTES
    return minutes


def resolution_to_seconds(resolution: str) -> int:
    return resolution_to_minutes(resolution) * 60


def floor_ts_to_interval(ts_s: int, interval_s: int) -> int:
    if interval_s <= 0:
        raise ValueError(f"interval must be > 0 (got {interval_s})")
    return (ts_s // interval_s) * interval_s


def bucket_start(ts_s: int, resolution: str) -> int:
    """
    Example:
      ts = 12:07, resolution="5"  -> 12:05
      ts = 12:59, resolution="60" -> 12:00
    """
    return floor_ts_to_interval(ts_s, resolution_to_seconds(resolution))
