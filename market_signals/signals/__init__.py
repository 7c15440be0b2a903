"""Signal detection and scoring.

  - clustering: seed-based grouping of data points and temporal helpers
  - detectors:  the six per-type detection algorithms
  - reasoning:  reasoning trace builder shared by all detectors
  - scoring:    six-component weighted SignalScorer
  - evolution:  per-signal snapshot history and trajectory classification
  - detector:   SignalDetector orchestrator
"""

from .detector import SignalDetector  # noqa: F401
from .scoring import SignalScorer  # noqa: F401
