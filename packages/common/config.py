from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    BASE_RESOLUTION_MINUTES,
    FALLBACK_BARS,
    REPLAY_CACHE_EVICT_COUNT,
    REPLAY_CACHE_MAX_ENTRIES,
)


def normalize_symbol(symbol: str) -> str:
    s = str(symbol).strip().upper()
    if not s:
        raise ValueError("symbol must be non-empty")
    return s


class SymbolInfo(BaseModel):
    name: str
    exchange: str
    type: str

    session: str = "24x7"
    timezone: str = "UTC"
    minmov: int = 1
    pricescale: int = 100

    has_intraday: bool = True
    has_daily: bool = True
    has_weekly_and_monthly: bool = True

    data_status: str = "streaming"

    @field_validator("name", "exchange", "type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not str(v).strip():
            raise ValueError("must be non-empty")
        return v


DEFAULT_SYMBOLS: Dict[str, SymbolInfo] = {
    "EURUSD": SymbolInfo(
        name="Euro / US Dollar",
        exchange="FOREX",
        type="forex",
        pricescale=10000,
    ),
}


class ReplayCacheConfig(BaseModel):
    max_entries: int = REPLAY_CACHE_MAX_ENTRIES
    evict_count: int = REPLAY_CACHE_EVICT_COUNT

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ReplayCacheConfig":
        if self.max_entries <= 0:
            raise ValueError("replay_cache.max_entries must be > 0")
        if not 1 <= self.evict_count <= self.max_entries:
            raise ValueError("replay_cache.evict_count must be within [1, max_entries]")
        return self


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class FeedConfig(BaseModel):
    data_dir: str = "data"
    symbols_file: str = "data/symbols.json"

    base_resolution_minutes: int = BASE_RESOLUTION_MINUTES
    fallback_bars: int = FALLBACK_BARS

    # Synthetic series used when a symbol has no data file
    sample_bars: int = 10_000
    sample_seed: Optional[int] = None

    replay_cache: ReplayCacheConfig = Field(default_factory=ReplayCacheConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"

    @field_validator("base_resolution_minutes", "fallback_bars", "sample_bars")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper()


def _maybe_load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML structure in {path}")
    return data


def load_feed_config(path: Path = Path("config/feed.yaml")) -> FeedConfig:
    raw = _maybe_load_yaml(path)
    cfg = FeedConfig.model_validate(raw) if raw else FeedConfig()

    # ---- env override
    port = os.environ.get("PORT", "").strip()
    if port:
        cfg = cfg.model_copy(update={"server": ServerConfig(host=cfg.server.host, port=int(port))})

    return cfg


def load_symbols(path: Path) -> Dict[str, SymbolInfo]:
    """
    Read the symbol descriptor file (JSON or YAML mapping of TICKER -> descriptor).

    A missing file yields the built-in default set.
    """
    raw = _maybe_load_yaml(path)
    if not raw:
        return dict(DEFAULT_SYMBOLS)

    out: Dict[str, SymbolInfo] = {}
    for sym, info in raw.items():
        out[normalize_symbol(sym)] = SymbolInfo.model_validate(info)
    return out
