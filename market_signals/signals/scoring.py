"""
Scoring Engine for detected signals.

Six component scores, each clamped to [0, 1], are combined as a weighted sum:

- confidence:  signal confidence, boosted by a long logical chain, a rich set
               of knowledge-graph entities and the amount of evidence.
- relevance:   signal relevance, adjusted for age and strength.
- novelty:     inverse similarity to previously accepted signals.
- diversity:   spread of the signal across source types, plus a balance bonus.
- velocity:    points per hour over the signal's time span.
- consistency: sentiment agreement (or entity agreement) across the points.

Weights are renormalized to sum to 1 whenever they are set or updated.
"""
from __future__ import annotations

import math
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Optional, Union

from loguru import logger

from ..core.custom_types import (
    KNOWN_SOURCE_TYPES,
    DataPoint,
    ScoringWeights,
    Signal,
    SignalScore,
    SignalStrength,
    SignalType,
)
from ..core.mathutils import clamp01, jaccard, mean, pstdev, pvariance
from ..core.timeutils import hours_between, utcnow
from .clustering import max_entity_count

HISTORY_PER_TYPE = 100
NEUTRAL = 0.5
HIGH_VELOCITY_PPH = 10.0


# ---------- component scores ---------------------------------------------------

def confidence_score(signal: Signal) -> float:
    score = signal.confidence
    if len(signal.reasoning.logical_chain) > 3:
        score *= 1.10
    if len(signal.reasoning.knowledge_graph_entities) > 5:
        score *= 1.05
    score += min(0.1, (len(signal.evidence) / 20) * 0.1)
    return clamp01(score)


def relevance_score(signal: Signal, now=None) -> float:
    score = signal.relevance
    age_hours = hours_between(signal.created_at, now or utcnow())
    if age_hours < 24:
        score *= 1.10
    elif age_hours > 72:
        score *= 0.90
    if signal.strength == SignalStrength.VERY_STRONG:
        score *= 1.15
    elif signal.strength == SignalStrength.STRONG:
        score *= 1.08
    return clamp01(score)


def diversity_score(signal: Signal) -> float:
    counts = list(signal.metadata.source_distribution.values())
    if not counts:
        return 0.0
    score = len(counts) / KNOWN_SOURCE_TYPES
    avg = mean(counts)
    if avg > 0:
        score += max(0.0, 0.3 - (pstdev(counts) / avg) * 0.3)
    return clamp01(score)


def velocity_score(signal: Signal, points: List[DataPoint]) -> float:
    if len(points) < 2:
        return NEUTRAL
    hours = signal.metadata.time_span.hours
    if hours == 0:
        return NEUTRAL
    score = min(1.0, (len(points) / hours) / HIGH_VELOCITY_PPH)
    if signal.metadata.velocity > 0:
        score = (score + signal.metadata.velocity) / 2
    return clamp01(score)


def consistency_score(points: List[DataPoint]) -> float:
    if len(points) < 3:
        return NEUTRAL
    sentiments = [p.sentiment for p in points if p.sentiment is not None]
    if sentiments:
        return clamp01(1.0 - math.sqrt(pvariance(sentiments)))
    return clamp01(max_entity_count(points) / len(points))


def similarity(a: Signal, b: Signal) -> float:
    """0.4 keyword Jaccard + 0.4 entity Jaccard + 0.2 same type."""
    type_sim = 1.0 if a.type == b.type else 0.0
    return jaccard(a.keywords, b.keywords) * 0.4 + jaccard(a.entities, b.entities) * 0.4 + type_sim * 0.2


class SignalScorer:
    def __init__(self, weights: Optional[Union[ScoringWeights, Mapping[str, float]]] = None):
        if weights is None:
            weights = ScoringWeights()
        elif not isinstance(weights, ScoringWeights):
            weights = ScoringWeights(**dict(weights))
        self._weights = self._normalize(weights, fallback=ScoringWeights().normalized())
        self._history: Dict[SignalType, Deque[Signal]] = {}

    @staticmethod
    def _normalize(weights: ScoringWeights, fallback: ScoringWeights) -> ScoringWeights:
        if weights.total() <= 0:
            logger.warning("Scoring weights sum to zero; keeping previous weights")
            return fallback
        return weights.normalized()

    # ------------------------------------------------------------------
    def calculate_score(self, signal: Signal, points: List[DataPoint]) -> SignalScore:
        components = {
            "confidence": confidence_score(signal),
            "relevance": relevance_score(signal),
            "novelty": self._novelty(signal),
            "diversity": diversity_score(signal),
            "velocity": velocity_score(signal, points),
            "consistency": consistency_score(points),
        }
        weights = self._weights.model_dump()
        overall = sum(components[k] * weights[k] for k in components)
        return SignalScore(
            signal_id=signal.id,
            overall_score=clamp01(overall),
            components=components,
            weights=weights,
            calculated_at=utcnow(),
        )

    def _novelty(self, signal: Signal) -> float:
        similar = [s for s in self._all_history() if s.id != signal.id and self._shares_keywords(signal, s)]
        if not similar:
            return 1.0
        return clamp01(1.0 - max(similarity(signal, s) for s in similar))

    @staticmethod
    def _shares_keywords(a: Signal, b: Signal, min_shared: int = 2) -> bool:
        return sum(1 for k in a.keywords if k in b.keywords) >= min_shared

    def _all_history(self) -> List[Signal]:
        return [s for bucket in self._history.values() for s in bucket]

    # ------------------------------------------------------------------
    def add_to_history(self, signal: Signal) -> None:
        bucket = self._history.setdefault(signal.type, deque(maxlen=HISTORY_PER_TYPE))
        bucket.append(signal)

    def history_size(self, signal_type: Optional[SignalType] = None) -> int:
        if signal_type is not None:
            return len(self._history.get(signal_type, ()))
        return sum(len(b) for b in self._history.values())

    def update_weights(self, weights: Mapping[str, Any]) -> None:
        """Merge a partial weight mapping, then renormalize all six to sum to 1."""
        merged = ScoringWeights(**{**self._weights.model_dump(), **dict(weights)})
        self._weights = self._normalize(merged, fallback=self._weights)

    def get_weights(self) -> Dict[str, float]:
        return self._weights.model_dump()
