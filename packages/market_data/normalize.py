from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from packages.common.constants import MAX_FUTURE_SKEW_S, MIN_VALID_TS_S, MS_TIMESTAMP_THRESHOLD
from packages.common.datetime_utils import now_s, parse_datetime_to_s
from packages.common.types import Bar

# Field synonyms, tried in order.
TIME_KEYS: Tuple[str, ...] = ("time", "timestamp", "t", "date")
OPEN_KEYS: Tuple[str, ...] = ("open", "o")
HIGH_KEYS: Tuple[str, ...] = ("high", "h")
LOW_KEYS: Tuple[str, ...] = ("low", "l")
CLOSE_KEYS: Tuple[str, ...] = ("close", "c")
VOLUME_KEYS: Tuple[str, ...] = ("volume", "v")

# Column-oriented payloads may use either long or UDF-style short names.
_COLUMN_FIELDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("time", ("time", "t")),
    ("open", OPEN_KEYS),
    ("high", HIGH_KEYS),
    ("low", LOW_KEYS),
    ("close", CLOSE_KEYS),
    ("volume", VOLUME_KEYS),
)

WRAPPER_KEYS: Tuple[str, ...] = ("data", "bars")

_RECORD_ERRORS = (ValueError, TypeError, KeyError, IndexError, OverflowError, AttributeError)


class RawShape(str, Enum):
    RECORDS = "records"    # [{time, open, ...}, ...]
    COLUMNS = "columns"    # {time: [...], open: [...], ...}
    WRAPPED = "wrapped"    # {data: [...]} or {bars: [...]}
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormalizeResult:
    shape: RawShape
    bars: List[Bar]  # sorted by time ASC (stable)
    rejected: int

    @property
    def accepted(self) -> int:
        return len(self.bars)


def _is_sequence(v: Any) -> bool:
    return isinstance(v, Sequence) and not isinstance(v, (str, bytes, bytearray))


def _is_blank(v: Any) -> bool:
    # 0, False, NaN and "" count as absent so the next synonym is tried
    if v is None or v is False or v == "":
        return True
    if isinstance(v, (int, float)):
        return v == 0 or v != v
    return False


def _first_present(item: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for k in keys:
        v = item.get(k)
        if not _is_blank(v):
            return v
    return None


def _parse_timestamp(raw: Any) -> int:
    """
    Raw timestamp -> epoch seconds.

    - date/time strings are parsed as UTC calendar times
    - numbers > 1e10 are epoch ms
    - everything else is epoch seconds (fraction truncated)
    """
    if isinstance(raw, bool):
        raise TypeError("boolean is not a timestamp")

    if isinstance(raw, str):
        s = raw.strip()
        try:
            value = float(s)
        except ValueError:
            return parse_datetime_to_s(s)
    else:
        value = float(raw)

    if value > MS_TIMESTAMP_THRESHOLD:
        return int(value // 1000)
    return int(value)


def _price(item: Mapping[str, Any], keys: Iterable[str]) -> float:
    v = _first_present(item, keys)
    return 0.0 if v is None else float(v)


def _volume(item: Mapping[str, Any]) -> int:
    v = _first_present(item, VOLUME_KEYS)
    return 0 if v is None else int(float(v))


def normalize_record(item: Any, *, now_ts_s: Optional[int] = None) -> Optional[Bar]:
    """
    Convert one raw record into a Bar, or None if the record is rejected.

    Missing price fields default to 0.0 and are NOT rejected.
    """
    try:
        if not isinstance(item, Mapping):
            return None

        raw_ts = _first_present(item, TIME_KEYS)
        if raw_ts is None:
            return None

        ts = _parse_timestamp(raw_ts)

        upper = (now_s() if now_ts_s is None else now_ts_s) + MAX_FUTURE_SKEW_S
        if ts < MIN_VALID_TS_S or ts > upper:
            return None

        return Bar(
            time=ts,
            open=_price(item, OPEN_KEYS),
            high=_price(item, HIGH_KEYS),
            low=_price(item, LOW_KEYS),
            close=_price(item, CLOSE_KEYS),
            volume=_volume(item),
        )
    except _RECORD_ERRORS as e:
        logger.debug("Rejected bar record {!r}: {}", item, e)
        return None


def detect_shape(payload: Any) -> RawShape:
    if _is_sequence(payload):
        return RawShape.RECORDS

    if isinstance(payload, Mapping):
        if _is_sequence(payload.get("time")) or _is_sequence(payload.get("t")):
            return RawShape.COLUMNS
        if any(_is_sequence(payload.get(k)) for k in WRAPPER_KEYS):
            return RawShape.WRAPPED

    return RawShape.UNKNOWN


def _column_records(payload: Mapping[str, Any]) -> List[dict[str, Any]]:
    columns: dict[str, Sequence[Any]] = {}
    for field, keys in _COLUMN_FIELDS:
        for k in keys:
            col = payload.get(k)
            if _is_sequence(col):
                columns[field] = col
                break

    n = len(columns["time"])
    rows: List[dict[str, Any]] = []
    for i in range(n):
        rows.append({field: col[i] for field, col in columns.items() if i < len(col)})
    return rows


def _wrapped_records(payload: Mapping[str, Any]) -> Sequence[Any]:
    for k in WRAPPER_KEYS:
        v = payload.get(k)
        if _is_sequence(v):
            return v
    return []


def raw_records(payload: Any) -> Tuple[RawShape, Sequence[Any]]:
    """Single dispatch over the accepted raw shapes."""
    shape = detect_shape(payload)

    if shape is RawShape.RECORDS:
        return shape, payload
    if shape is RawShape.COLUMNS:
        return shape, _column_records(payload)
    if shape is RawShape.WRAPPED:
        return shape, _wrapped_records(payload)
    return shape, []


def normalize_payload(payload: Any, *, now_ts_s: Optional[int] = None) -> NormalizeResult:
    shape, records = raw_records(payload)

    now_ref = now_s() if now_ts_s is None else now_ts_s

    bars: List[Bar] = []
    rejected = 0
    for item in records:
        bar = normalize_record(item, now_ts_s=now_ref)
        if bar is None:
            rejected += 1
            continue
        bars.append(bar)

    # sorted() is stable - duplicate timestamps keep input order and are NOT merged
    bars = sorted(bars, key=lambda b: b.time)

    return NormalizeResult(shape=shape, bars=bars, rejected=rejected)
