"""
Core Statistical Utilities
--------------------------

Pure helpers used by the detectors and the scorer. Population statistics
(ddof=0) are used throughout so that a cluster is treated as the whole
population being described, not as a sample of a larger one.

Design Principles:
- Pure Functions: no side effects, deterministic for a given input.
- Empty-safe: every function defines a value for empty input instead of
  raising or returning NaN.
"""
from typing import Hashable, Iterable, Sequence

import numpy as np


def clamp01(value: float) -> float:
    """Clamp `value` into [0, 1]."""
    return float(np.clip(value, 0.0, 1.0))


def mean(values: Sequence[float], default: float = 0.0) -> float:
    if len(values) == 0:
        return default
    return float(np.mean(np.asarray(values, dtype=float)))


def pstdev(values: Sequence[float]) -> float:
    """Population standard deviation; 0.0 for empty input."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def pvariance(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


def jaccard(a: Iterable[Hashable], b: Iterable[Hashable]) -> float:
    """
    Jaccard index of two collections treated as sets.

    Returns 0.0 when both are empty.
    """
    sa, sb = set(a), set(b)
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)
