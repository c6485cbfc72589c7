from __future__ import annotations

from datetime import datetime, timezone


def parse_datetime_to_s(s: str) -> int:
    """
    Accepts date/time strings like:
      - 2024-01-15
      - 2024-01-15T10:30:00Z
      - 2024-01-15T10:30:00+02:00
      - 2024-01-15 10:30:00 (assumed UTC)
    Returns epoch seconds (fraction truncated).
    """
    ss = s.strip()
    if ss.endswith("Z"):
        ss = ss[:-1] + "+00:00"

    dt = datetime.fromisoformat(ss)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return int(dt.timestamp())


def s_to_iso8601_z(ts_s: int) -> str:
    """
    Epoch seconds -> ISO8601 Zulu string, e.g. 1700000000 -> "2023-11-14T22:13:20Z"
    """
    dt = datetime.fromtimestamp(ts_s, tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def now_s() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp())
