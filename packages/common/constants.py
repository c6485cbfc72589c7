from __future__ import annotations

# Canonical base resolution for the feed.
# Data files hold 5m bars and every coarser resolution is resampled from them.
BASE_RESOLUTION_MINUTES: int = 5
BASE_INTERVAL_S: int = BASE_RESOLUTION_MINUTES * 60

# 2000-01-01T00:00:00Z - anything earlier is treated as corrupt input.
MIN_VALID_TS_S: int = 946_684_800
# Allowed clock skew for "future" timestamps.
MAX_FUTURE_SKEW_S: int = 86_400
# Numeric timestamps above this are epoch milliseconds.
MS_TIMESTAMP_THRESHOLD: int = 10_000_000_000

REPLAY_CACHE_MAX_ENTRIES: int = 100
REPLAY_CACHE_EVICT_COUNT: int = 10

# Bars returned when a known symbol has nothing in the requested range.
FALLBACK_BARS: int = 100

FEED_VERSION: str = "1.0.1"
