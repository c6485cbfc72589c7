from __future__ import annotations

from typing import List, Optional

from packages.common.config import FeedConfig, ReplayCacheConfig, SymbolInfo
from packages.common.types import Bar, QueryStatus
from packages.feed.service import DataFeed
from packages.market_data.bar_store import TimeSeriesStore
from packages.market_data.symbols import SymbolRegistry

HOUR = 1_699_999_200
STEP = 300
N_BARS = 24  # two hours of 5m data


def _bars(n: int = N_BARS) -> List[Bar]:
    return [
        Bar(time=HOUR + i * STEP, open=1.0 + i, high=2.0 + i, low=0.5 + i, close=1.5 + i, volume=10)
        for i in range(n)
    ]


def _feed(cfg: Optional[FeedConfig] = None) -> DataFeed:
    registry = SymbolRegistry({
        "EURUSD": SymbolInfo(name="Euro / US Dollar", exchange="FOREX", type="forex"),
        "GBPUSD": SymbolInfo(name="British Pound / US Dollar", exchange="FOREX", type="forex"),
    })
    store = TimeSeriesStore()
    store.load("EURUSD", _bars())
    return DataFeed(registry=registry, store=store, cfg=cfg or FeedConfig())


def test_unknown_symbol_is_the_only_error():
    feed = _feed()

    res = feed.history("NOPE", "60", HOUR, HOUR + 7200)

    assert res.status is QueryStatus.ERROR
    assert res.to_udf() == {"s": "error", "errmsg": "Symbol not found"}


def test_known_symbol_without_series_is_no_data():
    feed = _feed()

    assert feed.history("GBPUSD", "60", HOUR, HOUR + 7200).status is QueryStatus.NO_DATA
    assert feed.replay_history("GBPUSD", "60", HOUR, HOUR + 7200).to_udf() == {"s": "no_data"}


def test_history_resamples_range():
    feed = _feed()

    res = feed.history("EURUSD", "60", HOUR, HOUR + 7200)

    assert res.ok
    assert [b.time for b in res.bars] == [HOUR, HOUR + 3600]
    assert res.bars[0].volume == 120
    assert not res.replay and not res.fallback

    payload = res.to_udf()
    assert payload["s"] == "ok"
    assert payload["t"] == [HOUR, HOUR + 3600]
    assert payload["o"] == [1.0, 13.0]
    assert payload["c"] == [12.5, 24.5]
    assert "replay_mode" not in payload

    # non-replay queries never populate the cache
    assert len(feed.cache) == 0


def test_empty_range_falls_back_to_latest_bars():
    feed = _feed(FeedConfig(fallback_bars=6))

    res = feed.history("EURUSD", "5", HOUR - 10_000, HOUR - 5_000, replay=True)

    assert res.status is QueryStatus.OK
    assert res.fallback
    assert [b.time for b in res.bars] == [b.time for b in _bars()[-6:]]
    # fallback results are not cached and carry no replay fields
    assert len(feed.cache) == 0
    assert "replay_mode" not in res.to_udf()


def test_fallback_is_resampled():
    feed = _feed()

    res = feed.history("EURUSD", "60", 0, 1000)

    assert res.fallback
    assert [b.time for b in res.bars] == [HOUR, HOUR + 3600]


def test_replay_results_are_cached_by_exact_key():
    feed = _feed()

    first = feed.history("EURUSD", "60", HOUR, HOUR + 3599, replay=True)
    again = feed.history("EURUSD", "60", HOUR, HOUR + 3599, replay=True)
    shifted = feed.history("EURUSD", "60", HOUR, HOUR + 3600, replay=True)

    assert first.replay
    assert again is first
    assert shifted is not first
    assert len(feed.cache) == 2

    payload = first.to_udf()
    assert payload["replay_mode"] is True
    assert payload["replay_time"] == HOUR + 3599
    assert payload["bars_count"] == 1


def test_dedicated_replay_has_no_fallback_and_details():
    feed = _feed()

    assert feed.replay_history("EURUSD", "60", 0, 1000).status is QueryStatus.NO_DATA

    res = feed.replay_history("EURUSD", "15", HOUR, HOUR + 1799)
    payload = res.to_udf()

    assert payload["s"] == "ok"
    assert payload["bars_count"] == 2
    assert payload["replay_start"] == HOUR
    assert payload["symbol"] == "EURUSD"
    assert payload["resolution"] == "15"
    assert payload["data_range"] == {"start": "2023-11-14T22:00:00Z", "end": "2023-11-14T22:15:00Z"}

    # same key space as replay-flagged history
    assert feed.history("EURUSD", "15", HOUR, HOUR + 1799, replay=True) is res



def test_cache_hit_keeps_stored_payload_across_replay_paths():
    feed = _feed()

    dedicated = feed.replay_history("EURUSD", "15", HOUR, HOUR + 1799).to_udf()
    via_history = feed.history("EURUSD", "15", HOUR, HOUR + 1799, replay=True).to_udf()
    assert via_history == dedicated
    assert via_history["replay_start"] == HOUR

    plain = feed.history("EURUSD", "60", HOUR, HOUR + 3599, replay=True).to_udf()
    assert feed.replay_history("EURUSD", "60", HOUR, HOUR + 3599).to_udf() == plain
    assert "data_range" not in plain


def test_cache_overflow_through_feed():
    feed = _feed(FeedConfig(replay_cache=ReplayCacheConfig(max_entries=5, evict_count=2)))

    for i in range(6):
        feed.history("EURUSD", "5", HOUR, HOUR + i * STEP, replay=True)

    assert len(feed.cache) == 4
    assert feed.cache.get("EURUSD", "5", HOUR, HOUR) is None


def test_cache_info_and_clear():
    feed = _feed()
    assert feed.clear_cache() == 0

    feed.history("EURUSD", "60", HOUR, HOUR + 7200, replay=True)
    feed.replay_history("EURUSD", "5", HOUR, HOUR + 600)

    info = feed.cache_info()
    assert info.cache_entries == 2
    assert [e.key for e in info.entries] == [f"EURUSD_60_{HOUR}_{HOUR + 7200}", f"EURUSD_5_{HOUR}_{HOUR + 600}"]
    assert [e.bars_count for e in info.entries] == [2, 3]
    assert all(e.size_kb > 0 for e in info.entries)
    assert all(e.cached_at.endswith("Z") for e in info.entries)

    assert feed.clear_cache() == 2
    assert feed.cache_info().cache_entries == 0


def test_admin_added_symbol_has_no_data():
    feed = _feed()
    sym = feed.add_symbol("audusd", SymbolInfo(name="Aussie", exchange="FOREX", type="forex"))

    assert sym == "AUDUSD"
    assert feed.history("AUDUSD", "60", HOUR, HOUR + 7200).status is QueryStatus.NO_DATA


def test_inspection_views():
    feed = _feed()

    quotes = feed.quotes(["EURUSD", "GBPUSD", "NOPE"])
    assert [q["n"] for q in quotes] == ["EURUSD"]
    v = quotes[0]["v"]
    assert v["lp"] == 24.5
    assert v["ch"] == 1.0
    assert v["prev_close_price"] == 23.5

    summary = feed.data_summary()
    assert list(summary["available_symbols"]) == ["EURUSD"]
    assert summary["available_symbols"]["EURUSD"]["bars"] == N_BARS
    assert summary["base_timeframe"] == "5 minutes"

    dbg = feed.debug("EURUSD")
    assert dbg["symbol_exists"] and dbg["data_exists"]
    assert dbg["total_bars"] == N_BARS
    assert len(dbg["sample_bars"]) == 5
    assert dbg["data_quality"]["price_range"] == {"min": 0.5, "max": 25.0}
    assert feed.debug("GBPUSD")["data_exists"] is False

    health = feed.health()
    assert health["status"] == "healthy"
    assert health["symbols_count"] == 2
    assert health["replay_cache_size"] == 0
