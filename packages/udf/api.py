from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from loguru import logger
from pydantic import ValidationError

from packages.common.config import SymbolInfo, normalize_symbol
from packages.common.datetime_utils import now_s
from packages.common.resolutions import SUPPORTED_RESOLUTIONS
from packages.common.types import QueryStatus
from packages.feed.service import DataFeed, QueryResult

EXCHANGES = [
    {"value": "FOREX", "name": "FOREX", "desc": "Foreign Exchange Market"},
    {"value": "CRYPTO", "name": "CRYPTO", "desc": "Cryptocurrency Exchange"},
    {"value": "COMMODITIES", "name": "COMMODITIES", "desc": "Commodities Market"},
    {"value": "INDEX", "name": "INDEX", "desc": "Stock Market Indices"},
    {"value": "NSE", "name": "NSE", "desc": "National Stock Exchange of India"},
]

SYMBOL_TYPES = [
    {"name": "All types", "value": ""},
    {"name": "Forex", "value": "forex"},
    {"name": "Crypto", "value": "crypto"},
    {"name": "Commodity", "value": "commodity"},
    {"name": "Index", "value": "index"},
]

ADD_SYMBOL_REQUIRED = ("symbol", "name", "exchange", "type")


def _history_response(result: QueryResult) -> JSONResponse:
    status_code = 404 if result.status is QueryStatus.ERROR else 200
    return JSONResponse(status_code=status_code, content=result.to_udf())


def create_app(feed: DataFeed) -> FastAPI:
    """
    UDF-style HTTP surface over a DataFeed.

    Endpoints are thin: parameter parsing + JSON shaping only. All bar logic
    lives in the feed.
    """
    app = FastAPI(title="UDF replay feed")
    app.state.feed = feed

    # Browser charting clients are served from a different origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/favicon.ico")
    def favicon() -> Response:
        return Response(status_code=204)

    @app.get("/config")
    def get_config() -> Dict[str, Any]:
        return {
            "supports_search": True,
            "supports_group_request": False,
            "supports_marks": False,
            "supports_timescale_marks": False,
            "supports_time": True,
            "exchanges": EXCHANGES,
            "symbols_types": SYMBOL_TYPES,
            "supported_resolutions": list(SUPPORTED_RESOLUTIONS),
        }

    @app.get("/symbols")
    def get_symbol(symbol: str = "") -> JSONResponse:
        info = feed.registry.get(symbol)
        if info is None:
            return JSONResponse(status_code=404, content={"error": "Symbol not found"})

        return JSONResponse(content={
            "name": symbol,
            "exchange-traded": info.exchange,
            "exchange-listed": info.exchange,
            "timezone": info.timezone,
            "minmov": info.minmov,
            "minmov2": 0,
            "pointvalue": 1,
            "session": info.session,
            "has_intraday": info.has_intraday,
            "visible_plots_set": "ohlcv",
            "description": info.name,
            "type": info.type,
            "supported_resolutions": list(SUPPORTED_RESOLUTIONS),
            "pricescale": info.pricescale,
            "ticker": symbol,
            "data_status": info.data_status,
        })

    @app.get("/symbol_info")
    def get_symbol_info(group: str = "") -> list:
        matches = feed.registry.group(group)
        logger.info("Returning {} symbols for group {}", len(matches), group)
        return [asdict(m) for m in matches]

    @app.get("/search")
    def search(
        query: str = "",
        type: str = "",
        exchange: str = "",
        limit: int = 30,
    ) -> list:
        matches = feed.registry.search(query, type_filter=type, exchange=exchange, limit=limit)
        return [asdict(m) for m in matches]

    @app.get("/history")
    def get_history(
        symbol: str = "",
        resolution: str = "5",
        from_s: int = Query(0, alias="from"),
        to_s: Optional[int] = Query(None, alias="to"),
        replay: str = "false",
    ) -> JSONResponse:
        to_val = now_s() if to_s is None else to_s
        result = feed.history(symbol, resolution, from_s, to_val, replay=replay.lower() == "true")
        return _history_response(result)

    @app.get("/replay/history")
    def get_replay_history(
        symbol: str = "",
        resolution: str = "5",
        from_s: int = Query(0, alias="from"),
        to_s: Optional[int] = Query(None, alias="to"),
    ) -> JSONResponse:
        to_val = now_s() if to_s is None else to_s
        result = feed.replay_history(symbol, resolution, from_s, to_val)
        return _history_response(result)

    @app.get("/quotes")
    def get_quotes(symbols: str = "") -> Dict[str, Any]:
        wanted = [s for s in symbols.split(",") if s]
        return {"d": feed.quotes(wanted)}

    @app.get("/time", response_class=PlainTextResponse)
    def get_time() -> str:
        return str(now_s())

    @app.get("/marks")
    def get_marks() -> list:
        return []

    @app.get("/timescale_marks")
    def get_timescale_marks() -> list:
        return []

    @app.get("/streaming")
    def get_streaming() -> Dict[str, Any]:
        return {"streaming_supported": False, "streaming_url": None}

    @app.get("/health")
    def get_health() -> Dict[str, Any]:
        return feed.health()

    @app.get("/replay/cache")
    def get_replay_cache() -> Dict[str, Any]:
        info = feed.cache_info()
        return {
            "cache_entries": info.cache_entries,
            "total_size_mb": info.total_size_mb,
            "entries": {
                e.key: {
                    "bars_count": e.bars_count,
                    "cached_at": e.cached_at,
                    "size_kb": e.size_kb,
                }
                for e in info.entries
            },
        }

    @app.post("/replay/cache/clear")
    def clear_replay_cache() -> Dict[str, Any]:
        n = feed.clear_cache()
        return {"message": f"Cleared {n} cache entries", "status": "success", "cleared": n}

    @app.get("/data")
    def get_data_summary() -> Dict[str, Any]:
        return feed.data_summary()

    @app.get("/data/{symbol}.json")
    def get_symbol_data(symbol: str) -> JSONResponse:
        sym = symbol.upper()
        series = feed.store.get(sym)
        if series is None:
            return JSONResponse(status_code=404, content={"error": f"No data found for symbol {sym}"})
        return JSONResponse(content=[b.to_dict() for b in series.bars])

    @app.get("/debug/{symbol}")
    def get_debug(symbol: str) -> Dict[str, Any]:
        return feed.debug(symbol.upper())

    @app.post("/admin/add_symbol")
    def add_symbol(payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        if not all(payload.get(k) for k in ADD_SYMBOL_REQUIRED):
            return JSONResponse(status_code=400, content={"error": "Missing required fields"})

        fields = {k: v for k, v in payload.items() if k in SymbolInfo.model_fields and v is not None}
        try:
            sym = normalize_symbol(payload["symbol"])
            info = SymbolInfo.model_validate(fields)
        except ValidationError as e:
            return JSONResponse(status_code=400, content={"error": f"Invalid symbol fields: {e.error_count()} error(s)"})
        except ValueError as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        sym = feed.add_symbol(sym, info)
        return JSONResponse(content={"message": f"Symbol {sym} added successfully"})

    return app
