"""
AutoApprovalGate - decides at submission time whether a proposal skips
human review.

Evaluated exactly once per proposal, inside the submission transaction.
A proposal left pending is never re-gated, even if its capability later
crosses the threshold.
"""

from __future__ import annotations

from dataclasses import dataclass

from .models import Capability


@dataclass(frozen=True)
class GateDecision:
    auto_approve: bool
    reason: str


class AutoApprovalGate:
    """Pure function of (trust_score, auto_approve_threshold, requires_review)."""

    def evaluate(self, capability: Capability) -> GateDecision:
        return self.decide(
            capability.trust_score,
            capability.auto_approve_threshold,
            capability.requires_review,
        )

    @staticmethod
    def decide(
        trust_score: float,
        auto_approve_threshold: float,
        requires_review: bool,
    ) -> GateDecision:
        if requires_review:
            return GateDecision(False, "capability requires human review")
        if trust_score >= auto_approve_threshold:
            return GateDecision(
                True,
                f"trust {trust_score:.2f} >= threshold {auto_approve_threshold:.2f}",
            )
        return GateDecision(
            False,
            f"trust {trust_score:.2f} below threshold {auto_approve_threshold:.2f}",
        )
