"""Data aggregator: source registry, concurrent fetch and a short-lived cache.

Sources are registered per DataSourceType together with their
SourceConfiguration. `aggregate()` fans out one fetch per enabled, available
source, joins with partial-failure tolerance (a failing source is logged and
simply contributes nothing), re-filters everything to the requested time
window and caches the result for `cache_ttl_sec` under a canonical request key.

Throttling is a fixed per-request delay of window_ms / max_requests before the
fetch, not a sliding-window limiter.
"""
from __future__ import annotations

import asyncio
import json
import time
from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from ..core.custom_types import (
    AggregationConfig,
    DataPoint,
    DataSourceType,
    RateLimit,
    SourceConfiguration,
)
from .base import DataSource

DEFAULT_CACHE_TTL_SEC = 5 * 60


def _cache_key(cfg: AggregationConfig) -> str:
    return json.dumps({
        "sources": sorted(s.value for s in cfg.sources),
        "time_window": {"start": cfg.time_window.start.isoformat(), "end": cfg.time_window.end.isoformat()},
        "keywords": sorted(cfg.keywords) if cfg.keywords is not None else None,
        "entities": sorted(cfg.entities) if cfg.entities is not None else None,
    }, sort_keys=True)


class DataAggregator:
    def __init__(self, cache_ttl_sec: float = DEFAULT_CACHE_TTL_SEC):
        self.cache_ttl_sec = cache_ttl_sec
        self._sources: Dict[DataSourceType, DataSource] = {}
        self._configurations: Dict[DataSourceType, SourceConfiguration] = {}
        # key -> (stored_at epoch sec, points)
        self._cache: Dict[str, Tuple[float, List[DataPoint]]] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def register_source(self, source: DataSource, config: SourceConfiguration) -> None:
        """Store the fetcher and its configuration; re-registering overwrites."""
        with self._lock:
            self._sources[source.source_type] = source
            self._configurations[source.source_type] = config
        logger.info(f"Registered data source {source.source_type.value} (enabled={config.enabled})")

    def get_source_configuration(self, source_type: DataSourceType) -> Optional[SourceConfiguration]:
        with self._lock:
            return self._configurations.get(DataSourceType(source_type))

    def update_source_configuration(self, source_type: DataSourceType, changes: Dict[str, Any]) -> bool:
        """Shallow-merge `changes` into the stored configuration. False if unknown."""
        source_type = DataSourceType(source_type)
        with self._lock:
            existing = self._configurations.get(source_type)
            if existing is None:
                return False
            merged = {**existing.model_dump(), **changes}
            try:
                self._configurations[source_type] = SourceConfiguration.model_validate(merged)
            except ValidationError as e:
                logger.warning(f"Rejected configuration update for {source_type.value}: {e}")
                return False
        return True

    def get_all_source_configurations(self) -> List[SourceConfiguration]:
        with self._lock:
            return list(self._configurations.values())

    def toggle_source(self, source_type: DataSourceType, enabled: bool) -> bool:
        source_type = DataSourceType(source_type)
        with self._lock:
            cfg = self._configurations.get(source_type)
            if cfg is None:
                return False
            cfg.enabled = bool(enabled)
        logger.info(f"Source {source_type.value} {'enabled' if enabled else 'disabled'}")
        return True

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    async def aggregate(self, cfg: AggregationConfig) -> List[DataPoint]:
        key = _cache_key(cfg)
        with self._lock:
            cached = self._cache.get(key)
        if cached and time.time() - cached[0] < self.cache_ttl_sec:
            logger.debug(f"aggregate cache hit points={len(cached[1])}")
            return cached[1]

        pending: List[Tuple[DataSourceType, Any]] = []
        for source_type in cfg.sources:
            with self._lock:
                source = self._sources.get(source_type)
                src_cfg = self._configurations.get(source_type)
            if source is None or src_cfg is None or not src_cfg.enabled:
                continue
            try:
                available = await source.is_available()
            except Exception as e:
                logger.warning(f"Source {source_type.value} availability check failed: {e}")
                continue
            if not available:
                logger.warning(f"Source {source_type.value} unavailable, skipping")
                continue
            fetch_cfg = {
                **src_cfg.config,
                "time_window": cfg.time_window,
                "keywords": cfg.keywords,
                "entities": cfg.entities,
            }
            pending.append((source_type, self._fetch(source, fetch_cfg, src_cfg.rate_limit)))

        results = await asyncio.gather(*(coro for _, coro in pending), return_exceptions=True)
        points: List[DataPoint] = []
        for (source_type, _), res in zip(pending, results):
            if isinstance(res, Exception):
                logger.warning(f"Source {source_type.value} fetch failed: {res}")
                continue
            if isinstance(res, BaseException):
                raise res
            points.extend(self._coerce(source_type, res or []))

        # sources are not trusted to honour the window
        filtered = [p for p in points if cfg.time_window.contains(p.timestamp)]

        if len(filtered) < cfg.min_data_points:
            logger.warning(f"Insufficient data points: {len(filtered)} < {cfg.min_data_points}")

        with self._lock:
            self._cache[key] = (time.time(), filtered)
        return filtered

    async def _fetch(self, source: DataSource, config: Dict[str, Any], rate_limit: Optional[RateLimit]) -> List[DataPoint]:
        if rate_limit is not None:
            await asyncio.sleep(rate_limit.delay_sec)
        return await source.fetch(config)

    @staticmethod
    def _coerce(source_type: DataSourceType, items: List[Any]) -> List[DataPoint]:
        out: List[DataPoint] = []
        for it in items:
            if isinstance(it, DataPoint):
                out.append(it)
                continue
            try:
                out.append(DataPoint.model_validate(it))
            except ValidationError as e:
                logger.warning(f"Dropping malformed point from {source_type.value}: {e.error_count()} error(s)")
        return out

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Health & statistics
    # ------------------------------------------------------------------
    async def check_sources_health(self) -> Dict[DataSourceType, bool]:
        with self._lock:
            sources = list(self._sources.items())

        async def _check(source: DataSource) -> bool:
            try:
                return bool(await source.is_available())
            except Exception as e:
                logger.debug(f"health check {source.source_type.value} failed: {e}")
                return False

        results = await asyncio.gather(*(_check(src) for _, src in sources))
        return {source_type: ok for (source_type, _), ok in zip(sources, results)}

    def get_statistics(self) -> Dict[str, int]:
        with self._lock:
            configs = list(self._configurations.values())
            return {
                "total_sources": len(configs),
                "enabled_sources": sum(1 for c in configs if c.enabled),
                "cache_size": len(self._cache),
                "cached_items": sum(len(points) for _, points in self._cache.values()),
            }


__all__ = ["DataAggregator", "DEFAULT_CACHE_TTL_SEC"]
