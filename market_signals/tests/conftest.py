"""
Pytest Fixtures for the market_signals Test Suite

Shared builders for data points, detection configs and an engine wired to
in-memory sources. Point timestamps are anchored on a fixed recent instant so
that detector math (spans, velocity, momentum) is reproducible.
"""
from datetime import timedelta
from typing import List, Optional

import pytest

from market_signals.core.custom_types import (
    DataPoint,
    DataSourceType,
    DetectionConfig,
    ReasoningTrace,
    Signal,
    SignalMetadata,
    SignalStrength,
    SignalType,
    TimeSpan,
)
from market_signals.core.timeutils import utcnow

ROTATING_SOURCES = [
    DataSourceType.REDDIT,
    DataSourceType.TWITTER,
    DataSourceType.NEWS,
    DataSourceType.EDGAR,
]


def make_point(
    i: int,
    *,
    anchor=None,
    minutes: float = 0.0,
    source_type: DataSourceType = DataSourceType.REDDIT,
    content: Optional[str] = None,
    entities: Optional[List[str]] = None,
    sentiment: Optional[float] = 0.7,
    relevance: Optional[float] = 0.8,
) -> DataPoint:
    anchor = anchor or utcnow() - timedelta(hours=2)
    return DataPoint(
        id=f"p{i}",
        source_type=source_type,
        source_id=f"src-{i}",
        content=content if content is not None else f"AI technology breakthrough innovation {i}",
        timestamp=anchor + timedelta(minutes=minutes),
        entities=list(entities) if entities is not None else ["AI", "tech"],
        sentiment=sentiment,
        relevance_score=relevance,
    )


@pytest.fixture
def point_factory():
    return make_point


def make_signal(sid, keywords, entities, signal_type=SignalType.EMERGING_TREND, *,
                confidence=0.7, relevance=0.7, strength=SignalStrength.MODERATE,
                distribution=None, created_at=None) -> Signal:
    now = created_at or utcnow()
    return Signal(
        id=sid,
        type=signal_type,
        title=sid,
        description="",
        keywords=list(keywords),
        entities=list(entities),
        confidence=confidence,
        relevance=relevance,
        strength=strength,
        evidence=[],
        reasoning=ReasoningTrace(),
        metadata=SignalMetadata(
            data_point_count=5,
            source_distribution=distribution or {DataSourceType.REDDIT: 5},
            time_span=TimeSpan(now - timedelta(hours=1), now),
            velocity=0.0,
            momentum=0.0,
        ),
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def signal_factory():
    return make_signal


@pytest.fixture
def trend_points() -> List[DataPoint]:
    """20 points over ~1h from four source types, all sharing ['AI', 'tech']."""
    anchor = utcnow() - timedelta(hours=2)
    return [
        make_point(i, anchor=anchor, minutes=i * 3, source_type=ROTATING_SOURCES[i % 4])
        for i in range(20)
    ]


@pytest.fixture
def shift_points() -> List[DataPoint]:
    """10 points; sentiment flips from -0.5 to 0.6 halfway through."""
    anchor = utcnow() - timedelta(hours=2)
    return [
        make_point(i, anchor=anchor, minutes=i * 5, sentiment=-0.5 if i < 5 else 0.6)
        for i in range(10)
    ]


@pytest.fixture
def detection_config():
    def _build(*types: SignalType, **overrides) -> DetectionConfig:
        params = {"min_evidence_points": 5}
        if types:
            params["signal_types"] = list(types)
        params.update(overrides)
        return DetectionConfig(**params)
    return _build


@pytest.fixture
def settings_dict():
    """A minimal, valid settings mapping."""
    return {
        "detection": {"confidence_threshold": 0.6, "min_evidence_points": 5},
        "scoring": {"confidence": 0.25, "relevance": 0.20, "novelty": 0.15,
                    "diversity": 0.15, "velocity": 0.15, "consistency": 0.10},
        "aggregation": {"cache_ttl_sec": 60, "default_hours": 12, "min_data_points": 3},
        "sources": {
            "reddit": {"enabled": True, "config": {"subreddits": ["technology"]}},
            "twitter": {"enabled": False, "rate_limit": {"max_requests": 10, "window_ms": 1000}},
        },
        "logging": {"level": "DEBUG"},
    }
