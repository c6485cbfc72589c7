from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger

from packages.common.config import load_feed_config
from packages.common.datetime_utils import parse_datetime_to_s, s_to_iso8601_z
from packages.feed.service import build_data_feed


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Inspect loaded feed data offline")
    p.add_argument("--config", default="config/feed.yaml", help="Path to feed YAML config")
    p.add_argument("--symbol", default=None, help="Symbol to query (omit for a summary of all symbols)")
    p.add_argument("--resolution", default="60", help="Target resolution (e.g. 5, 60, 1D)")
    p.add_argument("--start", default=None, help="Start ISO date (inclusive)")
    p.add_argument("--end", default=None, help="End ISO date (inclusive)")
    p.add_argument("--tail", type=int, default=10, help="How many output bars to print")
    return p.parse_args()


def main() -> None:
    args = _parse_args()
    cfg = load_feed_config(Path(args.config))
    feed = build_data_feed(cfg)

    if args.symbol is None:
        summary = feed.data_summary()
        print("")
        print("===== FEED DATA SUMMARY =====")
        print(f"Base timeframe: {summary['base_timeframe']}")
        for sym, info in summary["available_symbols"].items():
            print(f"- {sym:<10} bars={info['bars']:<7} source={info['source']:<9} latest={info['latest_date']}")
        print("")
        return

    series = feed.store.get(args.symbol)
    if series is None or not series.bars:
        logger.warning("No data loaded for {}", args.symbol)
        return

    start_s = parse_datetime_to_s(args.start) if args.start else series.bars[0].time
    end_s = parse_datetime_to_s(args.end) if args.end else series.bars[-1].time

    res = feed.history(args.symbol, args.resolution, start_s, end_s)
    if not res.ok:
        logger.warning("Query returned status={}", res.status.value)
        return

    print("")
    print(f"===== {args.symbol} @ {args.resolution} =====")
    print(f"Range:     {s_to_iso8601_z(start_s)} .. {s_to_iso8601_z(end_s)}")
    print(f"Bars:      {len(res.bars)}{' (fallback: latest bars)' if res.fallback else ''}")
    print("")
    for b in res.bars[-args.tail:]:
        print(f"- {s_to_iso8601_z(b.time)} o={b.open} h={b.high} l={b.low} c={b.close} v={b.volume}")


if __name__ == "__main__":
    main()
