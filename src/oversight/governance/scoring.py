"""
TrustScoringEngine - Computes trust deltas from proposal outcomes.

Pure: no I/O, no clock. Given the same configuration and inputs it always
returns the same ScoreChange.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from oversight.config import GovernanceConfig
from oversight.config.defaults import TRUST_NEUTRAL_OUTCOME, TRUST_SCORE_PRECISION
from oversight.errors import ValidationError

from .models import TrustChangeReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreChange:
    previous_score: float
    delta: float
    new_score: float
    reason: TrustChangeReason

    @property
    def applied_delta(self) -> float:
        """Delta after clamping to [0, 1]."""
        return self.new_score - self.previous_score


def clamp_score(value: float) -> float:
    """Clamp to [0, 1] and round to the stored precision."""
    return round(max(0.0, min(1.0, value)), TRUST_SCORE_PRECISION)


def validate_unit_interval(name: str, value: float) -> float:
    if value is None or not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be within [0, 1], got {value}")
    return value


class TrustScoringEngine:
    """
    Map each trust-affecting event to a signed delta and apply it.

    Magnitudes come from GovernanceConfig; the sign is fixed per event:
    approvals and auto-approvals raise trust, rejections and reverts lower
    it, measured outcomes move it in proportion to their distance from a
    neutral 0.5.
    """

    def __init__(self, config: Optional[GovernanceConfig] = None):
        self.config = config or GovernanceConfig()

    def approve_delta(self) -> float:
        return self.config.delta_approve

    def reject_delta(self) -> float:
        return -self.config.delta_reject

    def auto_approve_delta(self) -> float:
        return self.config.delta_auto_approve_bonus

    def revert_delta(self) -> float:
        return -self.config.delta_revert

    def outcome_delta(self, success_score: float) -> float:
        """
        Delta for a measured implementation outcome.

        sign(score - 0.5) * |score - 0.5| * 2 * delta_outcome, so 0.5 is
        neutral, 1.0 gives +delta_outcome and 0.0 gives -delta_outcome.
        """
        validate_unit_interval("success_score", success_score)
        return (success_score - TRUST_NEUTRAL_OUTCOME) * 2 * self.config.delta_outcome

    def delta_for(
        self,
        reason: TrustChangeReason,
        success_score: Optional[float] = None,
    ) -> float:
        """Signed delta for an event."""
        if reason is TrustChangeReason.APPROVED:
            return self.approve_delta()
        if reason is TrustChangeReason.REJECTED:
            return self.reject_delta()
        if reason is TrustChangeReason.AUTO_APPROVED:
            return self.auto_approve_delta()
        if reason is TrustChangeReason.REVERTED:
            return self.revert_delta()
        if reason is TrustChangeReason.IMPACT_MEASURED:
            if success_score is None:
                raise ValidationError("success_score is required for a measured impact")
            return self.outcome_delta(success_score)
        raise ValidationError(f"Unknown trust change reason: {reason}")

    def score(
        self,
        previous_score: float,
        reason: TrustChangeReason,
        success_score: Optional[float] = None,
    ) -> ScoreChange:
        """Compute the post-event score: clamp(previous + delta, 0, 1)."""
        delta = self.delta_for(reason, success_score)
        new_score = clamp_score(previous_score + delta)
        logger.debug(
            f"Trust {reason.value}: {previous_score:.4f} {delta:+.4f} -> {new_score:.4f}"
        )
        return ScoreChange(
            previous_score=previous_score,
            delta=delta,
            new_score=new_score,
            reason=reason,
        )
