from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn
from loguru import logger

from packages.common.config import load_feed_config
from packages.common.resolutions import SUPPORTED_RESOLUTIONS
from packages.feed.service import build_data_feed
from packages.udf.api import create_app


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="UDF bar feed server with replay cache")
    p.add_argument("--config", default="config/feed.yaml", help="Path to feed YAML config")
    p.add_argument("--host", default=None, help="Bind host (overrides config)")
    p.add_argument("--port", type=int, default=None, help="Bind port (overrides config / PORT)")
    p.add_argument("--log-level", default=None, help="Log level (overrides config)")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    cfg = load_feed_config(Path(args.config))

    level = (args.log_level or cfg.log_level).upper()
    logger.remove()
    logger.add(sys.stderr, level=level)

    host = args.host or cfg.server.host
    port = args.port or cfg.server.port

    feed = build_data_feed(cfg)
    app = create_app(feed)

    logger.info("Starting UDF feed server on http://{}:{}", host, port)
    logger.info("Base timeframe: {} minutes", cfg.base_resolution_minutes)
    logger.info("Supported resolutions: {}", SUPPORTED_RESOLUTIONS)
    logger.info("Loaded symbols: {}", feed.registry.symbols())
    logger.info(
        "Replay cache: max_entries={} evict_count={}",
        cfg.replay_cache.max_entries,
        cfg.replay_cache.evict_count,
    )

    try:
        uvicorn.run(app, host=host, port=port, log_level=level.lower())
    except KeyboardInterrupt:
        logger.info("UDF feed server interrupted by user.")


if __name__ == "__main__":
    main()
