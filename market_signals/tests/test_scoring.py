from datetime import timedelta

import pytest

from market_signals.core.custom_types import DataSourceType, ScoringWeights, SignalStrength, SignalType
from market_signals.core.timeutils import utcnow
from market_signals.signals.scoring import (
    SignalScorer,
    consistency_score,
    diversity_score,
    relevance_score,
    similarity,
)


def test_novelty_drops_for_similar_history(signal_factory):
    scorer = SignalScorer()
    scorer.add_to_history(signal_factory("old", ["chips", "nvidia", "supply"], ["NVDA"]))

    similar = signal_factory("new", ["chips", "nvidia", "demand"], ["NVDA"])
    assert scorer.calculate_score(similar, []).components["novelty"] < 1.0

    unrelated = signal_factory("other", ["weather", "rain"], ["NOAA"])
    assert scorer.calculate_score(unrelated, []).components["novelty"] == pytest.approx(1.0)


def test_novelty_needs_two_shared_keywords(signal_factory):
    scorer = SignalScorer()
    scorer.add_to_history(signal_factory("old", ["chips", "supply"], ["NVDA"]))
    one_shared = signal_factory("new", ["chips", "demand"], ["NVDA"])
    assert scorer.calculate_score(one_shared, []).components["novelty"] == 1.0


def test_novelty_ignores_own_history_entry(signal_factory):
    scorer = SignalScorer()
    sig = signal_factory("same", ["chips", "nvidia"], ["NVDA"])
    scorer.add_to_history(sig)
    assert scorer.calculate_score(sig, []).components["novelty"] == 1.0


def test_similarity_weights(signal_factory):
    a = signal_factory("a", ["x1", "x2"], ["E1"])
    b = signal_factory("b", ["x1", "x2"], ["E2"], SignalType.ANOMALY)
    assert similarity(a, b) == pytest.approx(0.4)
    assert similarity(a, a) == pytest.approx(1.0)


def test_components_and_overall_in_unit_range(point_factory, signal_factory):
    scorer = SignalScorer()
    sig = signal_factory("s", ["a1", "a2"], ["E"], confidence=1.0, relevance=1.0,
                      strength=SignalStrength.VERY_STRONG)
    pts = [point_factory(i, minutes=i * 5, sentiment=(-1) ** i) for i in range(6)]
    score = scorer.calculate_score(sig, pts)
    assert 0.0 <= score.overall_score <= 1.0
    assert all(0.0 <= v <= 1.0 for v in score.components.values())
    assert set(score.components) == set(score.weights)
    assert score.signal_id == "s"


def test_neutral_components_without_points(signal_factory):
    score = SignalScorer().calculate_score(signal_factory("s", ["k1"], ["E"]), [])
    assert score.components["velocity"] == 0.5
    assert score.components["consistency"] == 0.5


def test_consistency_falls_back_to_entities(point_factory):
    pts = [point_factory(i, sentiment=None, entities=["A"] if i < 3 else ["B"]) for i in range(4)]
    assert consistency_score(pts) == pytest.approx(0.75)


def test_diversity_rewards_balanced_sources(signal_factory):
    balanced = signal_factory("b", [], [], distribution={DataSourceType.REDDIT: 3, DataSourceType.NEWS: 3})
    skewed = signal_factory("s", [], [], distribution={DataSourceType.REDDIT: 5, DataSourceType.NEWS: 1})
    assert diversity_score(balanced) == pytest.approx(2 / 8 + 0.3)
    assert diversity_score(skewed) < diversity_score(balanced)


def test_relevance_age_and_strength_adjustments(signal_factory):
    now = utcnow()
    fresh = signal_factory("f", [], [], relevance=0.5, strength=SignalStrength.STRONG, created_at=now)
    old = signal_factory("o", [], [], relevance=0.5, created_at=now - timedelta(hours=100))
    assert relevance_score(fresh, now) == pytest.approx(0.5 * 1.10 * 1.08)
    assert relevance_score(old, now) == pytest.approx(0.45)


def test_default_weights_sum_to_one():
    weights = SignalScorer().get_weights()
    assert sum(weights.values()) == pytest.approx(1.0)
    assert weights["confidence"] == pytest.approx(0.25)


def test_constructor_weights_are_normalized():
    scorer = SignalScorer({"confidence": 2, "relevance": 2, "novelty": 0, "diversity": 0,
                           "velocity": 0, "consistency": 0})
    assert scorer.get_weights()["confidence"] == pytest.approx(0.5)
    assert SignalScorer(ScoringWeights(confidence=1.0)).get_weights()["confidence"] == pytest.approx(1.0 / 1.75)


def test_update_weights_renormalizes():
    scorer = SignalScorer()
    scorer.update_weights({"confidence": 0.75})
    weights = scorer.get_weights()
    assert sum(weights.values()) == pytest.approx(1.0)
    assert weights["confidence"] == pytest.approx(0.75 / 1.5)

    before = scorer.get_weights()
    scorer.update_weights({})
    assert scorer.get_weights() == pytest.approx(before)


def test_zero_weights_keep_previous():
    scorer = SignalScorer()
    before = scorer.get_weights()
    scorer.update_weights({k: 0.0 for k in before})
    assert scorer.get_weights() == before


def test_history_bounded_per_type(signal_factory):
    scorer = SignalScorer()
    for i in range(105):
        scorer.add_to_history(signal_factory(f"s{i}", [], []))
    scorer.add_to_history(signal_factory("a", [], [], SignalType.ANOMALY))
    assert scorer.history_size(SignalType.EMERGING_TREND) == 100
    assert scorer.history_size(SignalType.ANOMALY) == 1
    assert scorer.history_size() == 101
