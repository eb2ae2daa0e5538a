"""
ProposalLifecycle - Server-side state machine for proposals.

    pending -> auto_approved | approved | rejected
    approved -> implemented -> reverted
    auto_approved -> implemented -> reverted

Every transition is one read-compute-write attempt:

1. under the capability lock, read the proposal and capability
2. validate the current status (InvalidTransitionError otherwise)
3. compute the new score with TrustScoringEngine
4. in one transaction: compare-and-swap the capability, append the trust
   history entry, compare-and-swap the proposal

Step 4 is all-or-nothing. A compare-and-swap miss rolls back and the whole
attempt is retried up to the configured bound.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from oversight.config.defaults import TRUST_NEUTRAL_OUTCOME
from oversight.errors import GovernanceError, InvalidTransitionError, NotFoundError
from oversight.retry import RetryConfig, RetryStats, with_retry_async

from .auditor import GovernanceAuditor
from .constants import (
    DEFAULT_APPROVE_NOTES,
    DEFAULT_REJECT_NOTES,
    TOPIC_CAPABILITIES,
    TOPIC_PROPOSALS,
)
from .gate import AutoApprovalGate, GateDecision
from .models import (
    Capability,
    Decision,
    Proposal,
    ProposalStatus,
    TrustChangeReason,
    TrustHistoryEntry,
    can_transition,
    utc_now,
)
from .notifier import ChangeEvent, ChangeNotifier
from .registry import CapabilityRegistry
from .requests import (
    HumanDecisionRequest,
    MarkImplementedRequest,
    RecordImpactRequest,
    RevertRequest,
    SubmitProposalRequest,
    parse_request,
)
from .scoring import ScoreChange, TrustScoringEngine
from .store import GovernanceStore

logger = logging.getLogger(__name__)

AUTO_APPROVAL_ACTOR = "auto_approval_gate"


@dataclass
class TransitionPlan:
    """Validated, not yet committed, outcome of one transition attempt."""
    proposal: Proposal
    expected_status: Optional[ProposalStatus]  # None for a new proposal
    capability: Optional[Capability]  # None when the capability row is untouched
    expected_version: int
    score_change: Optional[ScoreChange] = None
    actor: Optional[str] = None
    expected_measured: Optional[bool] = None
    stamp_fields: Tuple[str, ...] = ()


@dataclass
class TransitionResult:
    """Committed state after a transition."""
    proposal: Proposal
    capability: Capability
    history_entry: Optional[TrustHistoryEntry] = None
    gate: Optional[GateDecision] = None
    attempts: int = 1


class ProposalLifecycle:
    """Validates and commits proposal transitions."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        scoring: Optional[TrustScoringEngine] = None,
        gate: Optional[AutoApprovalGate] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.registry = registry
        self.store: GovernanceStore = registry.store
        self.scoring = scoring or TrustScoringEngine(registry.config)
        self.gate = gate or AutoApprovalGate()
        self.retry_config = retry_config or registry.retry_config
        self.notifier: ChangeNotifier = registry.notifier
        self.auditor: GovernanceAuditor = registry.auditor

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def submit(
        self,
        agent_name: str,
        capability_kind: Any,
        title: str,
        proposed_change: Any,
        rationale: str,
        predicted_impact: Optional[str] = None,
        supporting_evidence: Optional[Any] = None,
        affected_extraction_ids: Optional[List[str]] = None,
    ) -> TransitionResult:
        """Create a proposal and gate it in the same transaction."""
        request = parse_request(
            SubmitProposalRequest,
            agent_name=agent_name,
            capability_kind=capability_kind,
            title=title,
            proposed_change=proposed_change,
            rationale=rationale,
            predicted_impact=predicted_impact,
            supporting_evidence=supporting_evidence,
            affected_extraction_ids=affected_extraction_ids,
        )
        capability = await self.registry.get_or_create(
            request.agent_name, request.capability_kind
        )
        proposal_id = str(uuid.uuid4())

        def plan(current: Capability) -> Tuple[TransitionPlan, GateDecision]:
            decision = self.gate.evaluate(current)
            proposal = Proposal(
                id=proposal_id,
                capability_id=current.id,
                title=request.title,
                proposed_change=request.proposed_change,
                rationale=request.rationale,
                predicted_impact=request.predicted_impact,
                supporting_evidence=request.supporting_evidence,
                affected_extraction_ids=request.affected_extraction_ids,
            )
            updated = replace(current, total_proposals=current.total_proposals + 1)
            score_change = None
            actor = None
            if decision.auto_approve:
                score_change = self.scoring.score(
                    current.trust_score, TrustChangeReason.AUTO_APPROVED
                )
                proposal.status = ProposalStatus.AUTO_APPROVED
                proposal.auto_applied = True
                updated.auto_approved_count += 1
                updated.trust_score = score_change.new_score
                actor = AUTO_APPROVAL_ACTOR
            return (
                TransitionPlan(
                    proposal=proposal,
                    expected_status=None,
                    capability=updated,
                    expected_version=current.version,
                    score_change=score_change,
                    actor=actor,
                    stamp_fields=("created_at",),
                ),
                decision,
            )

        async def attempt() -> TransitionResult:
            async with self.registry.locked(capability.id):
                current = await self.registry.read_for_decision(capability.id)
                transition, decision = plan(current)
                result = await self._commit(transition, current)
            result.gate = decision
            return result

        result = await self._run("submit", attempt, actor=request.agent_name)
        await self.auditor.log_gate(
            result.capability.id, result.proposal.id, result.gate.auto_approve, result.gate.reason
        )
        await self._after_commit(result, from_status=None, created=True)
        return result

    async def record_human_decision(
        self,
        proposal_id: str,
        decision: Any,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Approve or reject a pending proposal."""
        request = parse_request(
            HumanDecisionRequest,
            proposal_id=proposal_id,
            decision=decision,
            reviewer_id=reviewer_id,
            notes=notes,
        )
        approve = request.decision is Decision.APPROVE
        target = ProposalStatus.APPROVED if approve else ProposalStatus.REJECTED
        reason = TrustChangeReason.APPROVED if approve else TrustChangeReason.REJECTED

        def plan(proposal: Proposal, capability: Capability) -> TransitionPlan:
            self._require(proposal, target, request.decision.value)
            score_change = self.scoring.score(capability.trust_score, reason)
            updated = replace(capability, trust_score=score_change.new_score)
            if approve:
                updated.approved_count += 1
            else:
                updated.rejected_count += 1
            new_proposal = replace(
                proposal,
                status=target,
                reviewed_by=request.reviewer_id,
                review_notes=request.notes
                or (DEFAULT_APPROVE_NOTES if approve else DEFAULT_REJECT_NOTES),
            )
            return TransitionPlan(
                proposal=new_proposal,
                expected_status=proposal.status,
                capability=updated,
                expected_version=capability.version,
                score_change=score_change,
                actor=request.reviewer_id,
                stamp_fields=("reviewed_at",),
            )

        return await self._transition(
            request.decision.value, request.proposal_id, plan, actor=request.reviewer_id
        )

    async def mark_implemented(
        self,
        proposal_id: str,
        details: Optional[Any] = None,
        implemented_by: Optional[str] = None,
    ) -> TransitionResult:
        """Record that an approved proposal was applied. No trust effect."""
        request = parse_request(MarkImplementedRequest, proposal_id=proposal_id, details=details)

        def plan(proposal: Proposal, capability: Capability) -> TransitionPlan:
            self._require(proposal, ProposalStatus.IMPLEMENTED, "implement")
            new_proposal = replace(
                proposal,
                status=ProposalStatus.IMPLEMENTED,
                implementation_details=request.details,
            )
            return TransitionPlan(
                proposal=new_proposal,
                expected_status=proposal.status,
                capability=None,
                expected_version=capability.version,
                actor=implemented_by,
                stamp_fields=("implemented_at",),
            )

        return await self._transition(
            "implement", request.proposal_id, plan, actor=implemented_by
        )

    async def record_impact(
        self,
        proposal_id: str,
        success_score: float,
        actual_impact: str,
        details: Optional[Any] = None,
        measured_by: Optional[str] = None,
    ) -> TransitionResult:
        """Record the measured outcome of an implemented proposal, once."""
        request = parse_request(
            RecordImpactRequest,
            proposal_id=proposal_id,
            success_score=success_score,
            actual_impact=actual_impact,
            details=details,
            measured_by=measured_by,
        )

        def plan(proposal: Proposal, capability: Capability) -> TransitionPlan:
            if proposal.status is not ProposalStatus.IMPLEMENTED:
                raise InvalidTransitionError(
                    proposal.id, proposal.status.value, "record impact for"
                )
            if proposal.success_measured:
                raise InvalidTransitionError(
                    proposal.id,
                    proposal.status.value,
                    "record impact for",
                    detail="impact already measured",
                )
            score_change = self.scoring.score(
                capability.trust_score,
                TrustChangeReason.IMPACT_MEASURED,
                success_score=request.success_score,
            )
            updated = replace(capability, trust_score=score_change.new_score)
            if request.success_score >= TRUST_NEUTRAL_OUTCOME:
                updated.successful_implementations += 1
            else:
                updated.failed_implementations += 1
            new_proposal = replace(
                proposal,
                success_measured=True,
                success_score=request.success_score,
                actual_impact=request.actual_impact,
                measurement_details=request.details,
            )
            return TransitionPlan(
                proposal=new_proposal,
                expected_status=ProposalStatus.IMPLEMENTED,
                capability=updated,
                expected_version=capability.version,
                score_change=score_change,
                actor=request.measured_by,
                expected_measured=False,
                stamp_fields=("measured_at",),
            )

        return await self._transition(
            "record_impact", request.proposal_id, plan, actor=request.measured_by
        )

    async def revert(
        self,
        proposal_id: str,
        reason: str,
        reverted_by: Optional[str] = None,
    ) -> TransitionResult:
        """Undo an implemented proposal. Always penalizes trust."""
        request = parse_request(
            RevertRequest, proposal_id=proposal_id, reason=reason, reverted_by=reverted_by
        )

        def plan(proposal: Proposal, capability: Capability) -> TransitionPlan:
            self._require(proposal, ProposalStatus.REVERTED, "revert")
            score_change = self.scoring.score(capability.trust_score, TrustChangeReason.REVERTED)
            updated = replace(capability, trust_score=score_change.new_score)
            counted_success = (
                proposal.success_measured
                and proposal.success_score is not None
                and proposal.success_score >= TRUST_NEUTRAL_OUTCOME
            )
            if counted_success and updated.successful_implementations > 0:
                updated.successful_implementations -= 1
                updated.failed_implementations += 1
            elif not proposal.success_measured:
                updated.failed_implementations += 1
            new_proposal = replace(
                proposal,
                status=ProposalStatus.REVERTED,
                revert_reason=request.reason,
            )
            return TransitionPlan(
                proposal=new_proposal,
                expected_status=proposal.status,
                capability=updated,
                expected_version=capability.version,
                score_change=score_change,
                actor=request.reverted_by,
                stamp_fields=("reverted_at",),
            )

        return await self._transition(
            "revert", request.proposal_id, plan, actor=request.reverted_by
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _require(proposal: Proposal, target: ProposalStatus, operation: str) -> None:
        if not can_transition(proposal.status, target):
            raise InvalidTransitionError(proposal.id, proposal.status.value, operation)

    async def _load_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.store.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError("proposal", proposal_id)
        return proposal

    async def _transition(
        self,
        operation: str,
        proposal_id: str,
        plan: Callable[[Proposal, Capability], TransitionPlan],
        actor: Optional[str] = None,
    ) -> TransitionResult:
        from_status: List[ProposalStatus] = []

        async def attempt() -> TransitionResult:
            located = await self._load_proposal(proposal_id)
            async with self.registry.locked(located.capability_id):
                # Re-read under the lock; the first read only located the capability.
                proposal = await self._load_proposal(proposal_id)
                capability = await self.registry.read_for_decision(proposal.capability_id)
                transition = plan(proposal, capability)
                result = await self._commit(transition, capability)
            from_status[:] = [proposal.status]
            return result

        result = await self._run(operation, attempt, proposal_id=proposal_id, actor=actor)
        await self._after_commit(result, from_status=from_status[0], created=False)
        return result

    async def _commit(self, plan: TransitionPlan, snapshot: Capability) -> TransitionResult:
        """Write capability, history and proposal in one transaction."""
        proposal = plan.proposal
        capability = plan.capability or snapshot
        entry: Optional[TrustHistoryEntry] = None

        async with self.store.transaction() as conn:
            now = utc_now()
            for name in plan.stamp_fields:
                setattr(proposal, name, now)
            proposal.updated_at = now

            if plan.capability is not None:
                capability.updated_at = now
                capability.version = await self.store.cas_update_capability(
                    conn, capability, plan.expected_version
                )

            if plan.expected_status is None:
                await self.store.insert_proposal(conn, proposal)

            if plan.score_change is not None:
                entry = await self.store.append_trust_history(
                    conn,
                    TrustHistoryEntry(
                        id=str(uuid.uuid4()),
                        capability_id=capability.id,
                        previous_score=plan.score_change.previous_score,
                        new_score=plan.score_change.new_score,
                        change_reason=plan.score_change.reason.value,
                        proposal_id=proposal.id,
                        changed_by=plan.actor,
                        created_at=now,
                    ),
                )

            if plan.expected_status is not None:
                await self.store.cas_update_proposal(
                    conn, proposal, plan.expected_status, plan.expected_measured
                )

        return TransitionResult(proposal=proposal, capability=capability, history_entry=entry)

    async def _run(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[TransitionResult]],
        proposal_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> TransitionResult:
        stats = RetryStats()
        try:
            result = await with_retry_async(
                attempt,
                task_id=f"{operation}:{proposal_id or 'new'}",
                config=self.retry_config,
                stats=stats,
            )
        except GovernanceError as e:
            logger.warning(f"{operation} failed for proposal {proposal_id}: {e}")
            await self.auditor.log_rejected(operation, e, proposal_id=proposal_id, actor=actor)
            raise
        result.attempts = stats.attempts
        return result

    async def _after_commit(
        self,
        result: TransitionResult,
        from_status: Optional[ProposalStatus],
        created: bool,
    ) -> None:
        proposal = result.proposal
        entry = result.history_entry
        logger.info(
            f"Proposal {proposal.id}: {from_status.value if from_status else 'new'} -> "
            f"{proposal.status.value}"
            + (f" (trust {entry.previous_score:.4f} -> {entry.new_score:.4f})" if entry else "")
        )
        await self.auditor.log_transition(
            proposal_id=proposal.id,
            capability_id=proposal.capability_id,
            from_status=from_status.value if from_status else None,
            to_status=proposal.status.value,
            actor=entry.changed_by if entry else None,
            previous_score=entry.previous_score if entry else None,
            new_score=entry.new_score if entry else None,
            attempts=result.attempts,
        )
        await self.notifier.emit_async(
            ChangeEvent(
                topic=TOPIC_PROPOSALS,
                action="insert" if created else "update",
                record_id=proposal.id,
                capability_id=proposal.capability_id,
                status=proposal.status.value,
            )
        )
        if entry is not None or created:
            await self.notifier.emit_async(
                ChangeEvent(
                    topic=TOPIC_CAPABILITIES,
                    action="update",
                    record_id=proposal.capability_id,
                    capability_id=proposal.capability_id,
                )
            )
