"""SignalDetector orchestrator.

Coordinates clustering, the six per-type detectors, threshold gating, scoring,
evolution tracking and detection callbacks.

Run order is significant: clusters are visited in discovery order and, within
a cluster, signal types in configured order. Once `max_signals_per_run`
signals are accepted the remainder of the run is skipped, so ordering decides
which candidates make it under the cap.

Acceptance of a candidate requires:
  confidence >= confidence_threshold AND relevance >= relevance_threshold
  AND scorer overall_score >= 0.5

State (active signals, evolution history, scorer novelty history) lives in
process memory for the lifetime of the instance. All public methods take the
instance lock so that concurrent callers are serialized per detector.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from threading import RLock
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from ..core.custom_types import (
    AggregationConfig,
    DataPoint,
    DataSourceType,
    DetectionConfig,
    EngineHealth,
    EngineStatus,
    ScoringWeights,
    SearchQuery,
    SearchResult,
    Signal,
    SignalEvolution,
    SignalType,
    TimeWindow,
    TrendDirection,
    TrendingSignal,
)
from ..core.mathutils import mean
from ..core.timeutils import utcnow
from ..sources.aggregator import DataAggregator
from .clustering import cluster_points
from .detectors import BaseSignalDetector, build_detectors
from .evolution import EvolutionTracker
from .scoring import SignalScorer

MIN_OVERALL_SCORE = 0.5

SignalCallback = Callable[[Signal], Any]


class SignalDetector:
    def __init__(
        self,
        aggregator: DataAggregator,
        config: Optional[DetectionConfig] = None,
        scoring_weights: Optional[ScoringWeights | Mapping[str, float]] = None,
    ):
        self.aggregator = aggregator
        self.config = config or DetectionConfig()
        self.scorer = SignalScorer(scoring_weights)
        self._detectors: Dict[SignalType, BaseSignalDetector] = build_detectors(self.config)
        self._active: Dict[str, Signal] = {}
        self._evolution = EvolutionTracker()
        self._callbacks: List[SignalCallback] = []
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------
    def detect_signals(self, points: List[DataPoint]) -> List[Signal]:
        with self._lock:
            cfg = self.config
            if len(points) < cfg.min_evidence_points:
                return []

            detected: List[Signal] = []
            clusters = cluster_points(points, cfg.min_evidence_points)
            for cluster in clusters:
                if len(detected) >= cfg.max_signals_per_run:
                    break
                for signal_type in cfg.signal_types:
                    if len(detected) >= cfg.max_signals_per_run:
                        break
                    signal = self._detectors[signal_type].detect(cluster)
                    if signal is None or not self._meets_thresholds(signal):
                        continue
                    score = self.scorer.calculate_score(signal, cluster)
                    if score.overall_score < MIN_OVERALL_SCORE:
                        logger.debug(f"Rejected {signal_type.value} candidate score={score.overall_score:.3f}")
                        continue
                    detected.append(signal)
                    self.scorer.add_to_history(signal)
                    self._evolution.track(signal)
                    logger.info(
                        f"Signal detected type={signal.type.value} conf={signal.confidence:.2f} "
                        f"rel={signal.relevance:.2f} score={score.overall_score:.2f} strength={signal.strength.value}"
                    )
                    self._notify(signal)

            for signal in detected:
                self._active[signal.id] = signal
            logger.info(f"Detection run complete points={len(points)} clusters={len(clusters)} signals={len(detected)}")
            return detected

    def _meets_thresholds(self, signal: Signal) -> bool:
        return (
            signal.confidence >= self.config.confidence_threshold
            and signal.relevance >= self.config.relevance_threshold
        )

    def _notify(self, signal: Signal) -> None:
        for cb in list(self._callbacks):
            try:
                cb(signal)
            except Exception:
                logger.exception(f"Detection callback error for signal {signal.id}")

    async def run_detection(
        self,
        sources: List[DataSourceType],
        hours: int = 24,
        keywords: Optional[List[str]] = None,
        entities: Optional[List[str]] = None,
        min_data_points: int = 5,
    ) -> Tuple[List[DataPoint], List[Signal]]:
        """Aggregate the last `hours` from `sources`, then detect on the result."""
        end = utcnow()
        agg_cfg = AggregationConfig(
            sources=[DataSourceType(s) for s in sources],
            time_window=TimeWindow(start=end - timedelta(hours=hours), end=end),
            min_data_points=min_data_points,
            keywords=keywords or None,
            entities=entities or None,
        )
        points = await self.aggregator.aggregate(agg_cfg)
        return points, self.detect_signals(points)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def on_signal_detected(self, callback: SignalCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def get_active_signals(self) -> List[Signal]:
        with self._lock:
            return list(self._active.values())

    def get_signal(self, signal_id: str) -> Optional[Signal]:
        with self._lock:
            return self._active.get(signal_id)

    def get_signal_evolution(self, signal_id: str) -> Optional[SignalEvolution]:
        with self._lock:
            return self._evolution.get(signal_id)

    def get_trending_signals(self, limit: int = 10, hours: Optional[float] = None) -> List[TrendingSignal]:
        """Rank active signals by overall score.

        Signals are scored without their cluster points, so the velocity and
        consistency components sit at their neutral value for every signal.
        The direction is always reported as rising.
        """
        with self._lock:
            scored = [
                TrendingSignal(
                    signal=s,
                    score=self.scorer.calculate_score(s, []),
                    direction=TrendDirection.RISING,
                    change_rate=s.metadata.velocity,
                )
                for s in self._active.values()
            ]
        scored.sort(key=lambda t: t.score.overall_score, reverse=True)
        top = scored[:max(0, limit)]
        if hours is not None:
            cutoff = utcnow() - timedelta(hours=hours)
            top = [t for t in top if t.signal.created_at >= cutoff]
        return top

    def search_signals(self, query: SearchQuery) -> SearchResult:
        signals = self.get_active_signals()
        if query.keywords:
            wanted = [k.lower() for k in query.keywords]
            signals = [s for s in signals if any(w in k.lower() for w in wanted for k in s.keywords)]
        if query.entities:
            signals = [s for s in signals if any(e in s.entities for e in query.entities)]
        if query.signal_types:
            signals = [s for s in signals if s.type in query.signal_types]
        if query.min_confidence is not None:
            signals = [s for s in signals if s.confidence >= query.min_confidence]
        if query.min_relevance is not None:
            signals = [s for s in signals if s.relevance >= query.min_relevance]
        if query.date_start is not None:
            signals = [s for s in signals if s.created_at >= query.date_start]
        if query.date_end is not None:
            signals = [s for s in signals if s.created_at <= query.date_end]

        total = len(signals)
        page = signals[query.offset:query.offset + query.limit]
        return SearchResult(
            signals=page,
            total=total,
            page=query.offset // query.limit + 1,
            page_size=query.limit,
            has_more=query.offset + query.limit < total,
        )

    async def health(self) -> EngineHealth:
        sources = await self.aggregator.check_sources_health()
        healthy = sum(1 for ok in sources.values() if ok)
        if healthy == len(sources):
            status = EngineStatus.HEALTHY
        elif healthy > len(sources) / 2:
            status = EngineStatus.DEGRADED
        else:
            status = EngineStatus.UNHEALTHY

        now = utcnow()
        active = self.get_active_signals()
        cutoff: datetime = now - timedelta(hours=24)
        return EngineHealth(
            status=status,
            timestamp=now,
            sources=sources,
            active_signals=len(active),
            signals_last_24h=sum(1 for s in active if s.created_at >= cutoff),
            avg_confidence=mean([s.confidence for s in active]),
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def update_config(self, changes: Mapping[str, Any]) -> DetectionConfig:
        with self._lock:
            self.config = DetectionConfig.model_validate({**self.config.model_dump(), **dict(changes)})
            self._detectors = build_detectors(self.config)
            return self.config

    def get_config(self) -> DetectionConfig:
        with self._lock:
            return self.config.model_copy(deep=True)

    def get_scorer(self) -> SignalScorer:
        return self.scorer

    def clear_signals(self) -> None:
        """Drop active signals and their evolution; novelty history is kept."""
        with self._lock:
            self._active.clear()
            self._evolution.clear()
