"""Tests for TrustScoringEngine."""

import pytest

from oversight.config import GovernanceConfig
from oversight.errors import ValidationError
from oversight.governance.models import TrustChangeReason
from oversight.governance.scoring import TrustScoringEngine, clamp_score


@pytest.fixture
def engine():
    return TrustScoringEngine(GovernanceConfig())


class TestDeltas:
    def test_signs(self, engine):
        assert engine.delta_for(TrustChangeReason.APPROVED) == pytest.approx(0.05)
        assert engine.delta_for(TrustChangeReason.REJECTED) == pytest.approx(-0.10)
        assert engine.delta_for(TrustChangeReason.AUTO_APPROVED) == pytest.approx(0.01)
        assert engine.delta_for(TrustChangeReason.REVERTED) == pytest.approx(-0.15)

    @pytest.mark.parametrize(
        "success_score,expected",
        [(1.0, 0.10), (0.0, -0.10), (0.5, 0.0), (0.75, 0.05), (0.25, -0.05)],
    )
    def test_outcome_scales_with_distance_from_neutral(self, engine, success_score, expected):
        assert engine.outcome_delta(success_score) == pytest.approx(expected)

    def test_outcome_requires_score(self, engine):
        with pytest.raises(ValidationError):
            engine.delta_for(TrustChangeReason.IMPACT_MEASURED)

    def test_outcome_rejects_out_of_range(self, engine):
        with pytest.raises(ValidationError):
            engine.outcome_delta(1.5)

    def test_custom_magnitudes(self):
        engine = TrustScoringEngine(GovernanceConfig(delta_approve=0.2, delta_revert=0.3))
        assert engine.approve_delta() == pytest.approx(0.2)
        assert engine.revert_delta() == pytest.approx(-0.3)


class TestScore:
    def test_applies_delta(self, engine):
        change = engine.score(0.5, TrustChangeReason.APPROVED)
        assert change.previous_score == 0.5
        assert change.new_score == pytest.approx(0.55)
        assert change.reason is TrustChangeReason.APPROVED

    def test_clamps_high(self, engine):
        change = engine.score(0.98, TrustChangeReason.APPROVED)
        assert change.new_score == 1.0
        assert change.applied_delta == pytest.approx(0.02)

    def test_clamps_low(self, engine):
        change = engine.score(0.05, TrustChangeReason.REVERTED)
        assert change.new_score == 0.0
        assert change.delta == pytest.approx(-0.15)

    def test_neutral_outcome_leaves_score(self, engine):
        change = engine.score(0.4, TrustChangeReason.IMPACT_MEASURED, success_score=0.5)
        assert change.new_score == 0.4

    def test_rounds_to_stored_precision(self, engine):
        change = engine.score(0.1, TrustChangeReason.APPROVED)
        assert change.new_score == 0.15

    def test_deterministic(self, engine):
        first = engine.score(0.33, TrustChangeReason.IMPACT_MEASURED, success_score=0.9)
        second = engine.score(0.33, TrustChangeReason.IMPACT_MEASURED, success_score=0.9)
        assert first == second


def test_clamp_score():
    assert clamp_score(-0.2) == 0.0
    assert clamp_score(1.7) == 1.0
    assert clamp_score(0.1234567891) == 0.123457
