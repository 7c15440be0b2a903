"""
Custom Type Definitions
-----------------------

Centralized types shared by the aggregator, the detector and the scorer.

- Enums: source types, signal types, signal strength and the evolution /
  trending classifications.
- Inputs (Pydantic models): DataPoint, SourceConfiguration, AggregationConfig,
  DetectionConfig, ScoringWeights and SearchQuery. These arrive from external
  callers (sources, API layer, YAML settings) and are validated on entry.
- Outputs (dataclasses): Signal and everything hanging off it, SignalScore,
  SignalEvolution, TrendingSignal, SearchResult and EngineHealth. These are
  produced by the engine itself and expose `to_dict()` for the JSON surfaces.
"""
from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .timeutils import ensure_utc, hours_between

# Maximum number of evidence snippets attached to a signal.
MAX_EVIDENCE = 10
# Evidence snippets are truncated to this many characters.
SNIPPET_CHARS = 200
# Evolution history keeps at most this many snapshots per signal.
MAX_SNAPSHOTS = 100


class DataSourceType(str, Enum):
    REDDIT = "reddit"
    TWITTER = "twitter"
    USPTO = "uspto"
    EDGAR = "edgar"
    NEWS = "news"
    SOCIAL_MEDIA = "social_media"
    BLOCKCHAIN = "blockchain"
    MARKET_DATA = "market_data"


# Denominator for every source-diversity ratio.
KNOWN_SOURCE_TYPES = len(DataSourceType)


class SignalType(str, Enum):
    EMERGING_TREND = "emerging_trend"
    SENTIMENT_SHIFT = "sentiment_shift"
    VOLUME_SPIKE = "volume_spike"
    PATTERN_DETECTED = "pattern_detected"
    ANOMALY = "anomaly"
    CORRELATION = "correlation"


class SignalStrength(str, Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very_strong"


class Trajectory(str, Enum):
    GROWING = "growing"
    DECLINING = "declining"
    STABLE = "stable"
    VOLATILE = "volatile"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADING = "degrading"
    STALE = "stale"


class TrendDirection(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class EngineStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def _jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and datetimes into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, BaseModel):
        return _jsonable(value.model_dump())
    if isinstance(value, dict):
        return {_jsonable(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, deque)):
        return [_jsonable(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

class DataPoint(BaseModel):
    """One timestamped unit of source content.

    Produced by a DataSource fetch and only kept inside the aggregation cache.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_type: DataSourceType
    source_id: str = ""
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    entities: List[str] = Field(default_factory=list)
    sentiment: Optional[float] = Field(None, ge=-1.0, le=1.0)        # polarity, -1 bearish .. +1 bullish
    relevance_score: Optional[float] = Field(None, ge=0.0, le=1.0)   # source-assigned relevance

    @field_validator("timestamp")
    def _timestamp_utc(cls, v):
        return ensure_utc(v)


class RateLimit(BaseModel):
    """Per-source throttle. Every fetch is delayed by window_ms / max_requests."""

    max_requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)

    @property
    def delay_sec(self) -> float:
        return self.window_ms / self.max_requests / 1000.0


class SourceConfiguration(BaseModel):
    """Registry record for one source type, owned by the DataAggregator."""

    source_type: DataSourceType
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)
    rate_limit: Optional[RateLimit] = None


class TimeWindow(BaseModel):
    start: datetime
    end: datetime

    @field_validator("start", "end")
    def _window_utc(cls, v):
        return ensure_utc(v)

    def contains(self, ts: datetime) -> bool:
        ts = ensure_utc(ts)
        return self.start <= ts <= self.end


class AggregationConfig(BaseModel):
    """A single aggregation request. Short results are advisory, never an error."""

    sources: List[DataSourceType] = Field(default_factory=list)
    time_window: TimeWindow
    min_data_points: int = Field(0, ge=0)
    keywords: Optional[List[str]] = None
    entities: Optional[List[str]] = None


def _all_signal_types() -> List[SignalType]:
    return list(SignalType)


class DetectionConfig(BaseModel):
    confidence_threshold: float = Field(0.6, ge=0.0, le=1.0)
    relevance_threshold: float = Field(0.5, ge=0.0, le=1.0)
    min_evidence_points: int = Field(5, ge=1)
    enable_neurosymbolic_reasoning: bool = True
    signal_types: List[SignalType] = Field(default_factory=_all_signal_types)   # evaluation order matters under the cap
    max_signals_per_run: int = Field(50, ge=1)


class ScoringWeights(BaseModel):
    confidence: float = Field(0.25, ge=0.0)
    relevance: float = Field(0.20, ge=0.0)
    novelty: float = Field(0.15, ge=0.0)
    diversity: float = Field(0.15, ge=0.0)
    velocity: float = Field(0.15, ge=0.0)
    consistency: float = Field(0.10, ge=0.0)

    def total(self) -> float:
        return sum(self.model_dump().values())

    def normalized(self) -> "ScoringWeights":
        """Return a copy whose six weights sum to 1. A zero total leaves the weights as-is."""
        total = self.total()
        if total <= 0:
            return self.model_copy()
        return ScoringWeights(**{k: v / total for k, v in self.model_dump().items()})


class SearchQuery(BaseModel):
    keywords: Optional[List[str]] = None
    entities: Optional[List[str]] = None
    signal_types: Optional[List[SignalType]] = None
    min_confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    min_relevance: Optional[float] = Field(None, ge=0.0, le=1.0)
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    limit: int = Field(10, gt=0)
    offset: int = Field(0, ge=0)

    @field_validator("date_start", "date_end")
    def _dates_utc(cls, v):
        return ensure_utc(v)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class SignalEvidence:
    data_point_id: str
    source_type: DataSourceType
    snippet: str
    relevance_score: float
    timestamp: datetime


@dataclass
class ReasoningTrace:
    """Declarative rules plus the derived confidence factors explaining a signal."""

    rules: List[str] = field(default_factory=list)
    inferences: List[str] = field(default_factory=list)
    confidence_factors: Dict[str, float] = field(default_factory=dict)
    knowledge_graph_entities: List[str] = field(default_factory=list)
    logical_chain: List[str] = field(default_factory=list)

    @property
    def overall(self) -> float:
        return self.confidence_factors.get("overall", 0.5)


@dataclass
class TimeSpan:
    start: datetime
    end: datetime

    @property
    def hours(self) -> float:
        return hours_between(self.start, self.end)


@dataclass
class SignalMetadata:
    data_point_count: int
    source_distribution: Dict[DataSourceType, int]
    time_span: TimeSpan
    velocity: float   # rate of signal growth
    momentum: float   # acceleration of signal


@dataclass
class Signal:
    """A scored, typed claim derived from one cluster of data points."""

    id: str
    type: SignalType
    title: str
    description: str
    keywords: List[str]
    entities: List[str]
    confidence: float
    relevance: float
    strength: SignalStrength
    evidence: List[SignalEvidence]
    reasoning: ReasoningTrace
    metadata: SignalMetadata
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime] = None   # carried for the API layer; never enforced

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and ensure_utc(now) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)


@dataclass
class SignalScore:
    signal_id: str
    overall_score: float
    components: Dict[str, float]
    weights: Dict[str, float]
    calculated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)


@dataclass
class SignalSnapshot:
    timestamp: datetime
    confidence: float
    relevance: float
    data_point_count: int
    strength: SignalStrength


@dataclass
class SignalEvolution:
    signal_id: str
    snapshots: Deque[SignalSnapshot] = field(default_factory=lambda: deque(maxlen=MAX_SNAPSHOTS))
    trajectory: Trajectory = Trajectory.GROWING
    health_status: HealthStatus = HealthStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)


@dataclass
class TrendingSignal:
    signal: Signal
    score: SignalScore
    direction: TrendDirection = TrendDirection.RISING
    change_rate: float = 0.0
    peak_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)


@dataclass
class SearchResult:
    signals: List[Signal]
    total: int
    page: int
    page_size: int
    has_more: bool


@dataclass
class EngineHealth:
    status: EngineStatus
    timestamp: datetime
    sources: Dict[DataSourceType, bool]
    active_signals: int
    signals_last_24h: int
    avg_confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(self)
