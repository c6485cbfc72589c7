from __future__ import annotations

from packages.common.types import Bar
from packages.market_data.normalize import (
    RawShape,
    detect_shape,
    normalize_payload,
    normalize_record,
)

NOW = 1_750_000_000


def test_short_and_long_synonyms_normalize_identically():
    long_form = {"time": 1_700_000_000, "open": 1.1, "high": 1.3, "low": 1.0, "close": 1.2, "volume": 42}
    short_form = {"t": 1_700_000_000, "o": 1.1, "h": 1.3, "l": 1.0, "c": 1.2, "v": 42}
    ts_form = {"timestamp": 1_700_000_000, "open": "1.1", "high": "1.3", "low": "1.0", "close": "1.2", "volume": "42"}

    a = normalize_record(long_form, now_ts_s=NOW)
    b = normalize_record(short_form, now_ts_s=NOW)
    c = normalize_record(ts_form, now_ts_s=NOW)

    assert a == Bar(time=1_700_000_000, open=1.1, high=1.3, low=1.0, close=1.2, volume=42)
    assert a == b == c


def test_timestamp_unit_inference():
    ms = normalize_record({"time": 1_700_000_000_000, "close": 1}, now_ts_s=NOW)
    s = normalize_record({"time": 1_700_000_000, "close": 1}, now_ts_s=NOW)
    frac = normalize_record({"time": 1_700_000_000.9, "close": 1}, now_ts_s=NOW)

    assert ms is not None and ms.time == 1_700_000_000
    assert s is not None and s.time == 1_700_000_000
    assert frac is not None and frac.time == 1_700_000_000


def test_string_timestamps():
    iso = normalize_record({"date": "2024-01-15T00:00:00Z", "close": 1}, now_ts_s=NOW)
    day = normalize_record({"date": "2024-01-15"}, now_ts_s=NOW)
    digits = normalize_record({"time": "1700000000"}, now_ts_s=NOW)

    assert iso is not None and iso.time == 1_705_276_800
    assert day is not None and day.time == 1_705_276_800
    assert digits is not None and digits.time == 1_700_000_000

    assert normalize_record({"date": "yesterday-ish"}, now_ts_s=NOW) is None


def test_zero_and_false_fall_through_to_next_synonym():
    bar = normalize_record({"time": 0, "timestamp": 1_700_000_000, "open": 0, "o": 1.5, "close": False}, now_ts_s=NOW)

    assert bar is not None
    assert bar.time == 1_700_000_000
    assert bar.open == 1.5
    assert bar.close == 0.0

    assert normalize_record({"time": 0, "close": 1}, now_ts_s=NOW) is None


def test_validity_window_boundaries():
    assert normalize_record({"time": 946_684_799, "close": 1}, now_ts_s=NOW) is None
    assert normalize_record({"time": 946_684_800, "close": 1}, now_ts_s=NOW) is not None

    # now + 1 day is tolerated, one second more is not
    assert normalize_record({"time": NOW + 86_400}, now_ts_s=NOW) is not None
    assert normalize_record({"time": NOW + 86_401}, now_ts_s=NOW) is None


def test_missing_fields():
    assert normalize_record({"open": 1, "close": 2}, now_ts_s=NOW) is None

    # prices default to zero instead of rejecting the record
    bar = normalize_record({"time": 1_700_000_000}, now_ts_s=NOW)
    assert bar == Bar(time=1_700_000_000, open=0.0, high=0.0, low=0.0, close=0.0, volume=0)


def test_parse_errors_reject_only_that_record():
    payload = [
        {"time": 1_700_000_300, "close": 2.0},
        {"time": 1_700_000_000, "close": "not-a-price"},
        "not a record",
        {"time": True},
        {"time": 1_700_000_000, "close": 1.0},
    ]

    res = normalize_payload(payload, now_ts_s=NOW)

    assert res.shape is RawShape.RECORDS
    assert res.rejected == 3
    assert [b.time for b in res.bars] == [1_700_000_000, 1_700_000_300]


def test_column_oriented_payload():
    payload = {
        "time": [1_700_000_300, 1_700_000_000, 10],
        "open": [2.0, 1.0, 9.0],
        "high": [2.5, 1.5, 9.0],
        "low": [1.5, 0.5, 9.0],
        "close": [2.2, 1.2, 9.0],
    }

    res = normalize_payload(payload, now_ts_s=NOW)

    assert res.shape is RawShape.COLUMNS
    assert res.rejected == 1  # ts=10 is before 2000-01-01
    assert res.bars == [
        Bar(time=1_700_000_000, open=1.0, high=1.5, low=0.5, close=1.2, volume=0),
        Bar(time=1_700_000_300, open=2.0, high=2.5, low=1.5, close=2.2, volume=0),
    ]


def test_udf_style_columns():
    payload = {"s": "ok", "t": [1_700_000_000], "o": [1], "h": [2], "l": [0.5], "c": [1.5], "v": [7]}

    res = normalize_payload(payload, now_ts_s=NOW)

    assert res.shape is RawShape.COLUMNS
    assert res.bars == [Bar(time=1_700_000_000, open=1.0, high=2.0, low=0.5, close=1.5, volume=7)]


def test_wrapped_payloads():
    rec = {"t": 1_700_000_000, "c": 1.0}

    assert detect_shape({"data": [rec]}) is RawShape.WRAPPED
    assert detect_shape({"bars": [rec]}) is RawShape.WRAPPED
    assert normalize_payload({"bars": [rec]}, now_ts_s=NOW).accepted == 1
    assert normalize_payload({"data": [rec, {}]}, now_ts_s=NOW).rejected == 1


def test_unknown_shapes_yield_nothing():
    for payload in ({"something": 1}, "text", 42, None):
        res = normalize_payload(payload, now_ts_s=NOW)
        assert res.shape is RawShape.UNKNOWN
        assert res.bars == []


def test_sort_is_stable_and_duplicates_kept():
    payload = [
        {"time": 1_700_000_300, "close": 3.0},
        {"time": 1_700_000_000, "close": 1.0},
        {"time": 1_700_000_000, "close": 2.0},
    ]

    bars = normalize_payload(payload, now_ts_s=NOW).bars

    assert [b.time for b in bars] == [1_700_000_000, 1_700_000_000, 1_700_000_300]
    assert [b.close for b in bars] == [1.0, 2.0, 3.0]
