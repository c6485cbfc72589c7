from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger

from packages.common.config import FeedConfig, SymbolInfo
from packages.common.constants import FEED_VERSION
from packages.common.datetime_utils import now_s, s_to_iso8601_z
from packages.common.resolutions import SUPPORTED_RESOLUTIONS
from packages.common.types import Bar, QueryStatus
from packages.market_data.bar_store import TimeSeriesStore
from packages.market_data.loader import load_store, load_symbol_registry
from packages.market_data.replay_cache import ReplayCache, cache_key_str
from packages.market_data.resample import resample
from packages.market_data.symbols import SymbolRegistry

# Requests ending further back than this are logged as replay-style even without the flag.
_HISTORICAL_AGE_S = 86_400


@dataclass(frozen=True)
class QueryResult:
    status: QueryStatus
    bars: Tuple[Bar, ...] = ()
    reason: str = ""

    # Identity of the request that produced this result
    symbol: str = ""
    resolution: str = ""
    from_s: int = 0
    to_s: int = 0

    replay: bool = False
    fallback: bool = False
    # Set by the dedicated replay query; cached results keep the shape they were stored with
    detailed: bool = False

    @property
    def ok(self) -> bool:
        return self.status is QueryStatus.OK

    def to_udf(self) -> Dict[str, Any]:
        """
        UDF column envelope. Replay results carry replay_* fields; `detailed`
        results also carry the dedicated replay endpoint's extras.
        """
        if self.status is QueryStatus.ERROR:
            return {"s": "error", "errmsg": self.reason}
        if self.status is QueryStatus.NO_DATA:
            return {"s": "no_data"}

        out: Dict[str, Any] = {
            "s": "ok",
            "t": [b.time for b in self.bars],
            "o": [b.open for b in self.bars],
            "h": [b.high for b in self.bars],
            "l": [b.low for b in self.bars],
            "c": [b.close for b in self.bars],
            "v": [b.volume for b in self.bars],
        }
        if self.replay:
            out["replay_mode"] = True
            out["replay_time"] = self.to_s
            out["bars_count"] = len(self.bars)
        if self.replay and self.detailed:
            out["replay_start"] = self.from_s
            out["symbol"] = self.symbol
            out["resolution"] = self.resolution
            out["data_range"] = {
                "start": s_to_iso8601_z(self.bars[0].time) if self.bars else None,
                "end": s_to_iso8601_z(self.bars[-1].time) if self.bars else None,
            }
        return out


@dataclass(frozen=True)
class CacheEntryInfo:
    key: str
    bars_count: int
    size_kb: float
    cached_at: str


@dataclass(frozen=True)
class CacheInfo:
    cache_entries: int
    total_size_mb: float
    entries: List[CacheEntryInfo] = field(default_factory=list)


def _payload_size(result: QueryResult) -> int:
    return len(json.dumps(result.to_udf()))


class DataFeed:
    """
    Single owner of the in-memory feed state:
    - symbol registry (mutable via the admin path)
    - base-resolution time-series store (read-only after load)
    - replay cache (bounded, locked)

    Construct one per process (or per test) and pass it to the HTTP layer.
    """

    def __init__(
        self,
        *,
        registry: SymbolRegistry,
        store: TimeSeriesStore,
        cfg: Optional[FeedConfig] = None,
        cache: Optional[ReplayCache[QueryResult]] = None,
    ):
        self.cfg = cfg or FeedConfig()
        self.registry = registry
        self.store = store
        if cache is None:
            cache = ReplayCache(
                max_entries=self.cfg.replay_cache.max_entries,
                evict_count=self.cfg.replay_cache.evict_count,
            )
        self.cache: ReplayCache[QueryResult] = cache

    @property
    def base_resolution_minutes(self) -> int:
        return self.store.base_resolution_minutes

    def _resample(self, bars: Sequence[Bar], resolution: str) -> List[Bar]:
        return resample(bars, resolution, base_resolution_minutes=self.base_resolution_minutes)

    def _precheck(self, symbol: str, resolution: str, from_s: int, to_s: int) -> Optional[QueryResult]:
        if not self.registry.contains(symbol):
            logger.warning("Symbol {} not found in symbols", symbol)
            return QueryResult(
                status=QueryStatus.ERROR,
                reason="Symbol not found",
                symbol=symbol,
                resolution=resolution,
                from_s=from_s,
                to_s=to_s,
            )
        if not self.store.has_series(symbol):
            logger.warning("No historical data found for {}", symbol)
            return QueryResult(status=QueryStatus.NO_DATA, symbol=symbol, resolution=resolution, from_s=from_s, to_s=to_s)
        return None

    # ---------------------------------------------------------------
    # Query surface
    # ---------------------------------------------------------------

    def history(self, symbol: str, resolution: str, from_s: int, to_s: int, replay: bool = False) -> QueryResult:
        """
        Range query at `resolution`.

        - unknown symbol -> ERROR
        - known symbol, no series / nothing to return -> NO_DATA
        - empty range -> latest `fallback_bars` base bars resampled, reported as OK
        - replay=True -> served from / written to the replay cache
        """
        if replay or to_s < now_s() - _HISTORICAL_AGE_S:
            logger.info(
                "Replay request: {} resolution={} range=[{}..{}] ({:.1f} days)",
                symbol,
                resolution,
                from_s,
                to_s,
                (to_s - from_s) / 86_400,
            )
        else:
            logger.info("History request: {} resolution={} from={} to={}", symbol, resolution, from_s, to_s)

        pre = self._precheck(symbol, resolution, from_s, to_s)
        if pre is not None:
            return pre

        if replay:
            cached = self.cache.get(symbol, resolution, from_s, to_s)
            if cached is not None:
                return cached

        filtered = self.store.range_filter(symbol, from_s, to_s)
        logger.debug("Filtered bars count: {} (replay={})", len(filtered), replay)

        if not filtered:
            return self._fallback(symbol, resolution, from_s, to_s)

        bars = self._resample(filtered, resolution)
        if not bars:
            logger.warning("No data after resampling for {}", symbol)
            return QueryResult(status=QueryStatus.NO_DATA, symbol=symbol, resolution=resolution, from_s=from_s, to_s=to_s)

        result = QueryResult(
            status=QueryStatus.OK,
            bars=tuple(bars),
            symbol=symbol,
            resolution=resolution,
            from_s=from_s,
            to_s=to_s,
            replay=replay,
        )
        if replay:
            self.cache.put(symbol, resolution, from_s, to_s, result)

        logger.info("Returning {} bars for {}{}", len(bars), symbol, " (REPLAY MODE)" if replay else "")
        return result

    def _fallback(self, symbol: str, resolution: str, from_s: int, to_s: int) -> QueryResult:
        logger.warning("No data in requested time range for {}", symbol)

        latest = self.store.latest(symbol, self.cfg.fallback_bars)
        bars = self._resample(latest, resolution)
        if not bars:
            return QueryResult(status=QueryStatus.NO_DATA, symbol=symbol, resolution=resolution, from_s=from_s, to_s=to_s)

        logger.info("Returning latest {} bars instead ({} after resampling)", len(latest), len(bars))
        return QueryResult(
            status=QueryStatus.OK,
            bars=tuple(bars),
            symbol=symbol,
            resolution=resolution,
            from_s=from_s,
            to_s=to_s,
            fallback=True,
        )

    def replay_history(self, symbol: str, resolution: str, from_s: int, to_s: int) -> QueryResult:
        """Dedicated replay query: always cached, never falls back to latest bars."""
        logger.info("Dedicated replay request: {} resolution={} from={} to={}", symbol, resolution, from_s, to_s)

        pre = self._precheck(symbol, resolution, from_s, to_s)
        if pre is not None:
            return pre

        cached = self.cache.get(symbol, resolution, from_s, to_s)
        if cached is not None:
            return cached

        filtered = self.store.range_filter(symbol, from_s, to_s)
        bars = self._resample(filtered, resolution)
        if not bars:
            return QueryResult(status=QueryStatus.NO_DATA, symbol=symbol, resolution=resolution, from_s=from_s, to_s=to_s)

        result = QueryResult(
            status=QueryStatus.OK,
            bars=tuple(bars),
            symbol=symbol,
            resolution=resolution,
            from_s=from_s,
            to_s=to_s,
            replay=True,
            detailed=True,
        )
        self.cache.put(symbol, resolution, from_s, to_s, result)

        logger.info(
            "Replay response ready: {} bars from {} to {}",
            len(bars),
            s_to_iso8601_z(bars[0].time),
            s_to_iso8601_z(bars[-1].time),
        )
        return result

    # ---------------------------------------------------------------
    # Cache administration
    # ---------------------------------------------------------------

    def cache_info(self) -> CacheInfo:
        entries: List[CacheEntryInfo] = []
        total = 0
        for e in self.cache.entries():
            size = _payload_size(e.payload)
            total += size
            entries.append(
                CacheEntryInfo(
                    key=cache_key_str(e.key),
                    bars_count=len(e.payload.bars),
                    size_kb=round(size / 1024, 2),
                    cached_at=s_to_iso8601_z(e.cached_at_s),
                )
            )
        return CacheInfo(
            cache_entries=len(entries),
            total_size_mb=round(total / (1024 * 1024), 2),
            entries=entries,
        )

    def clear_cache(self) -> int:
        n = self.cache.clear()
        logger.info("Cleared {} replay cache entries", n)
        return n

    # ---------------------------------------------------------------
    # Symbols / inspection
    # ---------------------------------------------------------------

    def add_symbol(self, symbol: str, info: SymbolInfo) -> str:
        sym = self.registry.add(symbol, info)
        logger.info("Symbol {} added ({} / {})", sym, info.exchange, info.type)
        return sym

    def quotes(self, symbols: Sequence[str]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for sym in symbols:
            info = self.registry.get(sym)
            series = self.store.get(sym)
            if info is None or series is None or not series.bars:
                continue

            last = series.bars[-1]
            prev_close = series.bars[-2].close if len(series.bars) > 1 else last.open
            ch = last.close - prev_close
            chp = (ch / prev_close * 100) if prev_close else 0.0

            out.append({
                "n": sym,
                "s": "ok",
                "v": {
                    "ch": ch,
                    "chp": chp,
                    "short_name": sym,
                    "exchange": info.exchange,
                    "description": info.name,
                    "lp": last.close,
                    "ask": last.close + 0.01,
                    "bid": last.close - 0.01,
                    "spread": 0.02,
                    "open_price": last.open,
                    "high_price": last.high,
                    "low_price": last.low,
                    "prev_close_price": prev_close,
                    "volume": last.volume,
                },
            })
        return out

    def data_summary(self) -> Dict[str, Any]:
        base = f"{self.base_resolution_minutes} minutes"
        available: Dict[str, Any] = {}
        for sym in self.registry.symbols():
            series = self.store.get(sym)
            if series is None or not series.bars:
                continue
            latest = max(b.time for b in series.bars)
            available[sym] = {
                "bars": len(series),
                "timeframe": base,
                "latest_timestamp": latest,
                "latest_date": s_to_iso8601_z(latest),
                "source": series.source,
                "url": f"/data/{sym}.json",
            }

        return {
            "available_symbols": available,
            "base_timeframe": base,
            "supported_resolutions": list(SUPPORTED_RESOLUTIONS),
            "total_symbols": len(available),
            "replay_features": {
                "cache_enabled": True,
                "enhanced_logging": True,
                "dedicated_endpoint": True,
            },
        }

    def debug(self, symbol: str) -> Dict[str, Any]:
        now = now_s()
        info: Dict[str, Any] = {
            "symbol": symbol,
            "symbol_exists": self.registry.contains(symbol),
            "data_exists": self.store.has_series(symbol),
            "current_time": now,
            "current_time_readable": s_to_iso8601_z(now),
            "replay_cache_entries": sum(1 for k in self.cache.keys() if k[0] == symbol),
        }

        series = self.store.get(symbol)
        if series is None:
            return info

        bars = series.bars
        recent = bars[-100:]
        info["total_bars"] = len(bars)
        info["first_bar_time"] = series.first_time
        info["last_bar_time"] = series.last_time
        info["first_bar_readable"] = s_to_iso8601_z(bars[0].time) if bars else None
        info["last_bar_readable"] = s_to_iso8601_z(bars[-1].time) if bars else None
        info["sample_bars"] = [b.to_dict() for b in bars[:5]]
        if recent:
            info["data_quality"] = {
                "avg_volume": sum(b.volume for b in recent) / len(recent),
                "price_range": {
                    "min": min(b.low for b in recent),
                    "max": max(b.high for b in recent),
                },
            }
        return info

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "timestamp": now_s(),
            "symbols_count": len(self.registry),
            "base_timeframe": f"{self.base_resolution_minutes} minutes",
            "replay_cache_size": len(self.cache),
            "replay_features": {
                "caching_enabled": True,
                "dedicated_endpoint": True,
                "enhanced_logging": True,
            },
            "version": FEED_VERSION,
        }


def build_data_feed(cfg: FeedConfig) -> DataFeed:
    """Load symbols + series per config and return a ready feed."""
    registry = load_symbol_registry(Path(cfg.symbols_file))
    store, reports = load_store(registry, cfg)

    synthetic = sum(1 for r in reports if r.source == "synthetic")
    logger.info(
        "Feed ready: {} symbols, {} with data ({} synthetic), base={}m",
        len(registry),
        len(store.symbols()),
        synthetic,
        cfg.base_resolution_minutes,
    )
    return DataFeed(registry=registry, store=store, cfg=cfg)
