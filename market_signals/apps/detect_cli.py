"""Signal detection CLI.

Wires a MockDataSource for every source configured in settings, runs one
aggregation + detection pass and prints a JSON summary.

Usage examples:
  python -m market_signals.apps.detect_cli detect --config settings.yaml --sources reddit,twitter --hours 24 --out signals.csv
  python -m market_signals.apps.detect_cli detect --config settings.yaml --keywords ai,chips --trending 5
  python -m market_signals.apps.detect_cli health --config settings.yaml
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
from loguru import logger

from ..core.config import ConfigError, Settings, load_settings
from ..core.custom_types import DataSourceType, Signal
from ..signals.detector import SignalDetector
from ..sources.aggregator import DataAggregator
from ..sources.base import MockDataSource


def setup_logging(log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level.upper(), format="{time:YYYY-MM-DD HH:mm:ss.SSS} - {level} - {message}")


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(',') if v.strip()]


def build_engine(settings: Settings, seed: Optional[int] = None) -> SignalDetector:
    aggregator = DataAggregator(cache_ttl_sec=settings.aggregation.cache_ttl_sec)
    for src_cfg in settings.source_configurations():
        aggregator.register_source(MockDataSource(src_cfg.source_type, seed=seed), src_cfg)
    return SignalDetector(aggregator, settings.detection, settings.scoring)


def signals_frame(signals: List[Signal]) -> pd.DataFrame:
    rows = []
    for s in signals:
        rows.append({
            "id": s.id,
            "type": s.type.value,
            "title": s.title,
            "confidence": s.confidence,
            "relevance": s.relevance,
            "strength": s.strength.value,
            "data_points": s.metadata.data_point_count,
            "velocity": s.metadata.velocity,
            "momentum": s.metadata.momentum,
            "keywords": " ".join(s.keywords),
            "entities": " ".join(s.entities),
            "created_at": s.created_at.isoformat(),
        })
    return pd.DataFrame(rows, columns=[
        "id", "type", "title", "confidence", "relevance", "strength", "data_points",
        "velocity", "momentum", "keywords", "entities", "created_at",
    ])


def _load(args) -> Settings:
    settings = load_settings(args.config)
    if args.log_level is None:
        setup_logging(settings.logging.level)
    return settings


def cmd_detect(args) -> int:
    settings = _load(args)
    detector = build_engine(settings, seed=args.seed)
    sources = _split(args.sources) or [s.value for s in settings.sources]
    try:
        source_types = [DataSourceType(s) for s in sources]
    except ValueError as e:
        logger.error(f"unknown source type: {e}")
        return 2
    hours = args.hours or settings.aggregation.default_hours
    points, signals = asyncio.run(detector.run_detection(
        source_types,
        hours=hours,
        keywords=_split(args.keywords),
        entities=_split(args.entities),
        min_data_points=settings.aggregation.min_data_points,
    ))
    summary = {
        "data_points": len(points),
        "signals": [s.to_dict() for s in signals],
    }
    if args.trending:
        summary["trending"] = [t.to_dict() for t in detector.get_trending_signals(args.trending)]
    print(json.dumps(summary, indent=2))
    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        signals_frame(signals).to_csv(args.out, index=False)
        logger.info(f"detect.export out={args.out} signals={len(signals)}")
    return 0


def cmd_health(args) -> int:
    settings = _load(args)
    detector = build_engine(settings)
    health = asyncio.run(detector.health())
    print(json.dumps(health.to_dict(), indent=2))
    return 0


def build_parser():
    p = argparse.ArgumentParser("detect_cli")
    p.add_argument('--log-level', default=None, help='overrides logging.level from settings')
    sub = p.add_subparsers(dest='cmd', required=True)
    pd_ = sub.add_parser('detect')
    pd_.add_argument('--config', required=True)
    pd_.add_argument('--sources', default=None, help='comma separated source types (default: all configured)')
    pd_.add_argument('--hours', type=int, default=None)
    pd_.add_argument('--keywords', default=None)
    pd_.add_argument('--entities', default=None)
    pd_.add_argument('--trending', type=int, default=0)
    pd_.add_argument('--seed', type=int, default=None)
    pd_.add_argument('--out', default=None)
    pd_.set_defaults(func=cmd_detect)
    ph = sub.add_parser('health')
    ph.add_argument('--config', required=True)
    ph.set_defaults(func=cmd_health)
    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level or "INFO")
    try:
        return args.func(args)
    except ConfigError as e:
        logger.error(f"config error: {e}")
        return 2


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
