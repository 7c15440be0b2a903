"""Per-signal evolution history.

Every acceptance of a signal id appends a snapshot (bounded FIFO). Once three
snapshots exist the trajectory is classified from the mean confidence delta
across the last three:

  delta > +0.1        -> growing
  delta < -0.1        -> declining
  abs(delta) < 0.05   -> stable
  otherwise           -> volatile

Health: latest confidence < 0.4 -> stale; declining -> degrading; else healthy.
Below three snapshots the initial classification (growing / healthy) stands.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from ..core.custom_types import (
    HealthStatus,
    Signal,
    SignalEvolution,
    SignalSnapshot,
    Trajectory,
)
from ..core.timeutils import utcnow

GROWTH_DELTA = 0.1
STABLE_DELTA = 0.05
STALE_CONFIDENCE = 0.4


def classify_trajectory(snapshots: List[SignalSnapshot]) -> Optional[Trajectory]:
    if len(snapshots) < 3:
        return None
    recent = snapshots[-3:]
    delta = (recent[2].confidence - recent[0].confidence) / 2
    if delta > GROWTH_DELTA:
        return Trajectory.GROWING
    if delta < -GROWTH_DELTA:
        return Trajectory.DECLINING
    if abs(delta) < STABLE_DELTA:
        return Trajectory.STABLE
    return Trajectory.VOLATILE


def classify_health(latest_confidence: float, trajectory: Trajectory) -> HealthStatus:
    if latest_confidence < STALE_CONFIDENCE:
        return HealthStatus.STALE
    if trajectory == Trajectory.DECLINING:
        return HealthStatus.DEGRADING
    return HealthStatus.HEALTHY


class EvolutionTracker:
    """Owns the signal-id -> SignalEvolution map. Not thread-safe on its own;
    the SignalDetector serializes access."""

    def __init__(self):
        self._history: Dict[str, SignalEvolution] = {}

    def track(self, signal: Signal) -> SignalEvolution:
        evo = self._history.get(signal.id)
        if evo is None:
            evo = SignalEvolution(signal_id=signal.id)
            self._history[signal.id] = evo
        evo.snapshots.append(SignalSnapshot(
            timestamp=utcnow(),
            confidence=signal.confidence,
            relevance=signal.relevance,
            data_point_count=signal.metadata.data_point_count,
            strength=signal.strength,
        ))
        snaps = list(evo.snapshots)
        trajectory = classify_trajectory(snaps)
        if trajectory is not None:
            evo.trajectory = trajectory
            evo.health_status = classify_health(snaps[-1].confidence, trajectory)
        return evo

    def get(self, signal_id: str) -> Optional[SignalEvolution]:
        return self._history.get(signal_id)

    def clear(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)
