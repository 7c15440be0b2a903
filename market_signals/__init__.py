"""Market Signal Detection & Scoring Engine.

This package ingests short, timestamped, free-text data points collected from
heterogeneous sources (social posts, filings, patents, market feeds), groups
related points into clusters and turns those clusters into discrete, scored
signals (emerging trends, sentiment shifts, volume spikes, recurring patterns,
anomalies and entity correlations).

Public Entry Points:
  - DataAggregator (source registry, concurrent fetch, TTL cache)
  - SignalDetector (clustering, per-type detection, evolution, trending)
  - SignalScorer (six-component weighted score with novelty history)
  - load_settings() for YAML + environment configuration
"""

from .sources.aggregator import DataAggregator  # noqa: F401
from .signals.detector import SignalDetector  # noqa: F401
from .signals.scoring import SignalScorer  # noqa: F401
from .core.config import load_settings  # noqa: F401
