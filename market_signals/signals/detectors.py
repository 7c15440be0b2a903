"""Per-type signal detectors.

Each detector receives one cluster of data points and either returns a
candidate Signal or None ("no match", not an error). Detectors share the
evidence, strength, relevance and description helpers below and all build
their reasoning trace through `reasoning.build_trace`.

| Type             | Rejected when                                   | Confidence                           |
|------------------|--------------------------------------------------|--------------------------------------|
| EMERGING_TREND   | fewer than 2 keywords                            | mean(overall, v/10, abs(momentum)/5) |
| SENTIMENT_SHIFT  | abs(late mean - early mean) < 0.3               | min(1, 1.5*shift + overall)          |
| VOLUME_SPIKE     | < 3 hourly buckets or max < 3 x mean            | min(1, (max/mean)/5)                 |
| PATTERN_DETECTED | top entity share < 0.5                           | mean(pattern strength, overall)      |
| ANOMALY          | no relevance outlier beyond 2 stddev             | min(1, 3*outliers/size)              |
| CORRELATION      | best entity pair count < min evidence points     | min(1, pair count/size)              |
"""
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Type

from ..core.custom_types import (
    MAX_EVIDENCE,
    SNIPPET_CHARS,
    DataPoint,
    DetectionConfig,
    ReasoningTrace,
    Signal,
    SignalEvidence,
    SignalMetadata,
    SignalStrength,
    SignalType,
    TimeSpan,
)
from ..core.mathutils import clamp01, mean, pstdev
from ..core.timeutils import utcnow
from .clustering import (
    extract_entities,
    extract_keywords,
    group_by_time_buckets,
    max_entity_count,
    momentum,
    sort_by_time,
    source_distribution,
    velocity,
)
from .reasoning import build_trace

MIN_SENTIMENT_SHIFT = 0.3
SPIKE_MULTIPLIER = 3.0
MIN_SPIKE_BUCKETS = 3
MIN_PATTERN_STRENGTH = 0.5
OUTLIER_STDDEVS = 2.0


# ---------- shared helpers -----------------------------------------------------

def determine_strength(confidence: float, factor: float) -> SignalStrength:
    combined = (confidence + min(1.0, factor)) / 2
    if combined >= 0.8:
        return SignalStrength.VERY_STRONG
    if combined >= 0.65:
        return SignalStrength.STRONG
    if combined >= 0.5:
        return SignalStrength.MODERATE
    return SignalStrength.WEAK


def build_evidence(points: List[DataPoint]) -> List[SignalEvidence]:
    return [
        SignalEvidence(
            data_point_id=p.id,
            source_type=p.source_type,
            snippet=p.content[:SNIPPET_CHARS],
            relevance_score=p.relevance_score or 0.5,
            timestamp=p.timestamp,
        )
        for p in points[:MAX_EVIDENCE]
    ]


def calculate_relevance(points: List[DataPoint]) -> float:
    """Mean relevance of the points that carry one; 0.5 when none do."""
    scores = [p.relevance_score for p in points if p.relevance_score is not None]
    return mean(scores, default=0.5)


def describe(signal_type: SignalType, keywords: List[str], entities: List[str]) -> str:
    kw = ", ".join(keywords[:5])
    ent = ", ".join(entities[:3])
    if signal_type == SignalType.EMERGING_TREND:
        return f"An emerging trend has been detected around {kw}. Key entities: {ent}."
    if signal_type == SignalType.SENTIMENT_SHIFT:
        return f"A significant sentiment shift has been observed for {kw}. Entities involved: {ent}."
    if signal_type == SignalType.VOLUME_SPIKE:
        return f"A volume spike detected for {kw}. Related entities: {ent}."
    if signal_type == SignalType.PATTERN_DETECTED:
        return f"A recurring pattern identified involving {kw}. Key entities: {ent}."
    if signal_type == SignalType.ANOMALY:
        return f"An anomaly has been detected in data related to {kw}. Entities: {ent}."
    if signal_type == SignalType.CORRELATION:
        return f"A strong correlation found between {ent}."
    return f"Signal detected for {kw}."


# ---------- detectors ----------------------------------------------------------

class BaseSignalDetector(ABC):
    """Common construction for all per-type detectors."""

    signal_type: SignalType

    def __init__(self, config: DetectionConfig):
        self.config = config

    @abstractmethod
    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        ...

    def _trace(self, points: List[DataPoint]) -> ReasoningTrace:
        return build_trace(points, self.signal_type, self.config.enable_neurosymbolic_reasoning)

    def _below_threshold(self, confidence: float) -> bool:
        return confidence < self.config.confidence_threshold

    def _signal(
        self,
        points: List[DataPoint],
        title: str,
        keywords: List[str],
        entities: List[str],
        confidence: float,
        strength_factor: float,
        reasoning: ReasoningTrace,
        time_span: TimeSpan,
        velocity_value: float,
        momentum_value: float,
    ) -> Signal:
        confidence = clamp01(confidence)
        now = utcnow()
        return Signal(
            id=str(uuid.uuid4()),
            type=self.signal_type,
            title=title,
            description=describe(self.signal_type, keywords, entities),
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            relevance=clamp01(calculate_relevance(points)),
            strength=determine_strength(confidence, strength_factor),
            evidence=build_evidence(points),
            reasoning=reasoning,
            metadata=SignalMetadata(
                data_point_count=len(points),
                source_distribution=source_distribution(points),
                time_span=time_span,
                velocity=velocity_value,
                momentum=momentum_value,
            ),
            created_at=now,
            updated_at=now,
        )


class EmergingTrendDetector(BaseSignalDetector):
    signal_type = SignalType.EMERGING_TREND

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        keywords = extract_keywords(points)
        if len(keywords) < 2:
            return None
        entities = extract_entities(points)
        ordered = sort_by_time(points)
        vel = velocity(ordered)
        mom = momentum(ordered)
        reasoning = self._trace(points)
        confidence = (reasoning.overall + min(1.0, vel / 10) + min(1.0, abs(mom) / 5)) / 3
        if self._below_threshold(confidence):
            return None
        return self._signal(
            points,
            title=f"Emerging Trend: {', '.join(keywords[:3])}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=vel,
            reasoning=reasoning,
            time_span=TimeSpan(ordered[0].timestamp, ordered[-1].timestamp),
            velocity_value=vel,
            momentum_value=mom,
        )


class SentimentShiftDetector(BaseSignalDetector):
    signal_type = SignalType.SENTIMENT_SHIFT

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        with_sentiment = [p for p in points if p.sentiment is not None]
        if len(with_sentiment) < max(2, self.config.min_evidence_points):
            return None
        ordered = sort_by_time(with_sentiment)
        mid = len(ordered) // 2
        early_avg = mean([p.sentiment for p in ordered[:mid]])
        late_avg = mean([p.sentiment for p in ordered[mid:]])
        shift = abs(late_avg - early_avg)
        if shift < MIN_SENTIMENT_SHIFT:
            return None
        keywords = extract_keywords(points)
        entities = extract_entities(points)
        reasoning = self._trace(points)
        confidence = min(1.0, shift * 1.5 + reasoning.overall)
        if self._below_threshold(confidence):
            return None
        return self._signal(
            points,
            title=f"Sentiment Shift: {'Positive' if late_avg > early_avg else 'Negative'}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=shift,
            reasoning=reasoning,
            time_span=TimeSpan(ordered[0].timestamp, ordered[-1].timestamp),
            velocity_value=velocity(ordered),
            momentum_value=shift,
        )


class VolumeSpikeDetector(BaseSignalDetector):
    signal_type = SignalType.VOLUME_SPIKE

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        buckets = group_by_time_buckets(points)
        if len(buckets) < MIN_SPIKE_BUCKETS:
            return None
        counts = [len(b) for b in buckets]
        avg = mean(counts)
        peak = max(counts)
        if peak < avg * SPIKE_MULTIPLIER:
            return None
        spike = buckets[counts.index(peak)]
        ratio = peak / avg
        keywords = extract_keywords(spike)
        entities = extract_entities(spike)
        reasoning = self._trace(spike)
        confidence = min(1.0, ratio / 5)
        if self._below_threshold(confidence):
            return None
        return self._signal(
            spike,
            title=f"Volume Spike: {', '.join(keywords[:3])}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=ratio,
            reasoning=reasoning,
            time_span=TimeSpan(spike[0].timestamp, spike[-1].timestamp),
            velocity_value=ratio,
            momentum_value=confidence,
        )


class PatternDetector(BaseSignalDetector):
    signal_type = SignalType.PATTERN_DETECTED

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        pattern_strength = max_entity_count(points) / len(points)
        if pattern_strength < MIN_PATTERN_STRENGTH:
            return None
        keywords = extract_keywords(points)
        entities = extract_entities(points)
        reasoning = self._trace(points)
        confidence = (pattern_strength + reasoning.overall) / 2
        if self._below_threshold(confidence):
            return None
        return self._signal(
            points,
            title=f"Pattern Detected: {', '.join(keywords[:3])}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=pattern_strength,
            reasoning=reasoning,
            time_span=TimeSpan(points[0].timestamp, points[-1].timestamp),
            velocity_value=pattern_strength,
            momentum_value=confidence,
        )


class AnomalyDetector(BaseSignalDetector):
    signal_type = SignalType.ANOMALY

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        scores = [p.relevance_score for p in points if p.relevance_score is not None]
        if len(scores) < self.config.min_evidence_points:
            return None
        avg = mean(scores)
        std = pstdev(scores)
        # a relevance of exactly 0 is treated as "unscored"
        outliers = [
            p for p in points
            if p.relevance_score and abs(p.relevance_score - avg) > OUTLIER_STDDEVS * std
        ]
        if not outliers:
            return None
        keywords = extract_keywords(outliers)
        entities = extract_entities(outliers)
        reasoning = self._trace(outliers)
        confidence = min(1.0, (len(outliers) / len(points)) * 3)
        if self._below_threshold(confidence):
            return None
        return self._signal(
            outliers,
            title=f"Anomaly Detected: {', '.join(keywords[:3])}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=std,
            reasoning=reasoning,
            time_span=TimeSpan(outliers[0].timestamp, outliers[-1].timestamp),
            velocity_value=std,
            momentum_value=confidence,
        )


class CorrelationDetector(BaseSignalDetector):
    signal_type = SignalType.CORRELATION

    @staticmethod
    def _best_pair(points: List[DataPoint]) -> Tuple[Optional[Tuple[str, str]], int]:
        # ordered pairs as they appear within each point's entity list
        co: Dict[str, Dict[str, int]] = {}
        for p in points:
            ents = p.entities
            for i in range(len(ents)):
                for j in range(i + 1, len(ents)):
                    row = co.setdefault(ents[i], {})
                    row[ents[j]] = row.get(ents[j], 0) + 1
        best_pair = None
        best_count = 0
        for e1, row in co.items():
            for e2, count in row.items():
                if count > best_count:
                    best_count = count
                    best_pair = (e1, e2)
        return best_pair, best_count

    def detect(self, points: List[DataPoint]) -> Optional[Signal]:
        pair, count = self._best_pair(points)
        if pair is None or count < self.config.min_evidence_points:
            return None
        keywords = extract_keywords(points)
        entities = [pair[0], pair[1]]
        reasoning = self._trace(points)
        share = count / len(points)
        confidence = min(1.0, share)
        if self._below_threshold(confidence):
            return None
        return self._signal(
            points,
            title=f"Correlation: {pair[0]} & {pair[1]}",
            keywords=keywords,
            entities=entities,
            confidence=confidence,
            strength_factor=share,
            reasoning=reasoning,
            time_span=TimeSpan(points[0].timestamp, points[-1].timestamp),
            velocity_value=share,
            momentum_value=confidence,
        )


DETECTORS: Dict[SignalType, Type[BaseSignalDetector]] = {
    SignalType.EMERGING_TREND: EmergingTrendDetector,
    SignalType.SENTIMENT_SHIFT: SentimentShiftDetector,
    SignalType.VOLUME_SPIKE: VolumeSpikeDetector,
    SignalType.PATTERN_DETECTED: PatternDetector,
    SignalType.ANOMALY: AnomalyDetector,
    SignalType.CORRELATION: CorrelationDetector,
}


def build_detectors(config: DetectionConfig) -> Dict[SignalType, BaseSignalDetector]:
    return {signal_type: cls(config) for signal_type, cls in DETECTORS.items()}
