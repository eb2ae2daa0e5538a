"""Tests for ProposalLifecycle transitions."""

from unittest.mock import patch

import pytest

from oversight.config import GovernanceConfig
from oversight.errors import InvalidTransitionError, NotFoundError, ValidationError
from oversight.governance.constants import DEFAULT_APPROVE_NOTES, DEFAULT_REJECT_NOTES
from oversight.governance.models import ProposalStatus

AUTO_CONFIG = GovernanceConfig(
    default_trust_score=0.95,
    default_auto_approve_threshold=0.9,
    default_requires_review=False,
)


async def approved_proposal(api, submit):
    result = await submit(api)
    return await api.record_decision(result.proposal.id, "approve", "reviewer-1")


async def implemented_proposal(api, submit):
    approved = await approved_proposal(api, submit)
    return await api.mark_implemented(approved.proposal.id, details={"commit": "abc123"})


class TestSubmit:
    @pytest.mark.asyncio
    async def test_pending_without_history(self, api, submit):
        result = await submit(
            api,
            predicted_impact="Precision +5%",
            supporting_evidence={"samples": 12},
            affected_extraction_ids=["ex-9"],
        )

        proposal = result.proposal
        assert proposal.status is ProposalStatus.PENDING
        assert proposal.auto_applied is False
        assert proposal.predicted_impact == "Precision +5%"
        assert result.history_entry is None
        assert result.gate.auto_approve is False
        assert result.capability.total_proposals == 1

        stored = await api.get_proposal(proposal.id)
        assert stored.supporting_evidence == {"samples": 12}
        assert stored.affected_extraction_ids == ["ex-9"]
        assert await api.trust_history(proposal.capability_id) == []

    @pytest.mark.asyncio
    async def test_auto_approval_is_atomic_with_submission(self, make_api, submit):
        api = await make_api(AUTO_CONFIG)
        result = await submit(api)

        stored = await api.get_proposal(result.proposal.id)
        assert stored.status is ProposalStatus.AUTO_APPROVED
        assert stored.auto_applied is True

        capability = await api.get_capability(stored.capability_id)
        assert capability.auto_approved_count == 1
        assert capability.total_proposals == 1
        assert capability.trust_score == pytest.approx(0.96)

        history = await api.trust_history(capability.id)
        assert len(history) == 1
        assert history[0].change_reason == "auto_approved"
        assert history[0].proposal_id == stored.id

    @pytest.mark.asyncio
    async def test_gate_not_reevaluated_for_pending(self, api, submit):
        result = await submit(api)
        await api.update_capability_policy(
            result.capability.id, auto_approve_threshold=0.0, requires_review=False
        )

        stored = await api.get_proposal(result.proposal.id)
        assert stored.status is ProposalStatus.PENDING

        later = await submit(api)
        assert later.proposal.status is ProposalStatus.AUTO_APPROVED

    @pytest.mark.asyncio
    async def test_missing_payload_rejected_before_write(self, api, submit):
        with pytest.raises(ValidationError):
            await submit(api, proposed_change=None)
        with pytest.raises(ValidationError):
            await submit(api, rationale="   ")
        with pytest.raises(ValidationError):
            await submit(api, capability_kind="not_a_kind")
        assert await api.list_capabilities() == []


class TestHumanDecision:
    @pytest.mark.asyncio
    async def test_approve(self, api, submit):
        submitted = await submit(api)
        result = await api.record_decision(submitted.proposal.id, "approve", "reviewer-1")

        assert result.proposal.status is ProposalStatus.APPROVED
        assert result.proposal.reviewed_by == "reviewer-1"
        assert result.proposal.reviewed_at is not None
        assert result.proposal.review_notes == DEFAULT_APPROVE_NOTES
        assert result.capability.approved_count == 1
        assert result.capability.trust_score == pytest.approx(0.15)
        assert result.history_entry.change_reason == "approved"
        assert result.history_entry.changed_by == "reviewer-1"

    @pytest.mark.asyncio
    async def test_reject(self, api, submit):
        submitted = await submit(api)
        result = await api.record_decision(
            submitted.proposal.id, "reject", "reviewer-2", notes="Too broad"
        )

        assert result.proposal.status is ProposalStatus.REJECTED
        assert result.proposal.review_notes == "Too broad"
        assert result.capability.rejected_count == 1
        assert result.capability.trust_score == 0.0
        assert result.history_entry.new_score == 0.0

    @pytest.mark.asyncio
    async def test_default_reject_notes(self, api, submit):
        submitted = await submit(api)
        result = await api.record_decision(submitted.proposal.id, "reject", "reviewer-2")
        assert result.proposal.review_notes == DEFAULT_REJECT_NOTES

    @pytest.mark.asyncio
    @pytest.mark.parametrize("second", ["approve", "reject"])
    async def test_decision_on_decided_proposal(self, api, submit, second):
        submitted = await submit(api)
        await api.record_decision(submitted.proposal.id, "approve", "reviewer-1")

        with pytest.raises(InvalidTransitionError) as excinfo:
            await api.record_decision(submitted.proposal.id, second, "reviewer-2")

        assert excinfo.value.current == "approved"
        assert len(await api.trust_history(submitted.capability.id)) == 1

    @pytest.mark.asyncio
    async def test_decision_on_auto_approved(self, make_api, submit):
        api = await make_api(AUTO_CONFIG)
        submitted = await submit(api)

        with pytest.raises(InvalidTransitionError):
            await api.record_decision(submitted.proposal.id, "reject", "reviewer-1")

        history = await api.trust_history(submitted.capability.id)
        assert [e.change_reason for e in history] == ["auto_approved"]

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, api):
        with pytest.raises(NotFoundError):
            await api.record_decision("missing", "approve", "reviewer-1")

    @pytest.mark.asyncio
    async def test_invalid_decision(self, api, submit):
        submitted = await submit(api)
        with pytest.raises(ValidationError):
            await api.record_decision(submitted.proposal.id, "maybe", "reviewer-1")


class TestImplementation:
    @pytest.mark.asyncio
    async def test_mark_implemented_has_no_trust_effect(self, api, submit):
        approved = await approved_proposal(api, submit)
        result = await api.mark_implemented(approved.proposal.id, details={"commit": "abc123"})

        assert result.proposal.status is ProposalStatus.IMPLEMENTED
        assert result.proposal.implemented_at is not None
        assert result.proposal.implementation_details == {"commit": "abc123"}
        assert result.history_entry is None
        assert result.capability.trust_score == approved.capability.trust_score
        assert len(await api.trust_history(approved.capability.id)) == 1

    @pytest.mark.asyncio
    async def test_mark_implemented_from_auto_approved(self, make_api, submit):
        api = await make_api(AUTO_CONFIG)
        submitted = await submit(api)
        result = await api.mark_implemented(submitted.proposal.id)
        assert result.proposal.status is ProposalStatus.IMPLEMENTED

    @pytest.mark.asyncio
    async def test_mark_implemented_from_pending(self, api, submit):
        submitted = await submit(api)
        with pytest.raises(InvalidTransitionError):
            await api.mark_implemented(submitted.proposal.id)

    @pytest.mark.asyncio
    async def test_mark_implemented_from_rejected(self, api, submit):
        submitted = await submit(api)
        await api.record_decision(submitted.proposal.id, "reject", "reviewer-1")
        with pytest.raises(InvalidTransitionError):
            await api.mark_implemented(submitted.proposal.id)


class TestImpact:
    @pytest.mark.asyncio
    async def test_success_raises_trust(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        result = await api.record_impact(
            implemented.proposal.id, 1.0, "Precision +8%", details={"n": 200}, measured_by="job"
        )

        assert result.proposal.status is ProposalStatus.IMPLEMENTED
        assert result.proposal.success_measured is True
        assert result.proposal.success_score == 1.0
        assert result.proposal.measured_at is not None
        assert result.capability.trust_score == pytest.approx(0.25)
        assert result.capability.successful_implementations == 1
        assert result.history_entry.change_reason == "impact_measured"
        assert result.history_entry.changed_by == "job"

    @pytest.mark.asyncio
    async def test_neutral_outcome_counts_success_without_trust_change(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        result = await api.record_impact(implemented.proposal.id, 0.5, "No change")
        assert result.capability.trust_score == pytest.approx(0.15)
        assert result.history_entry.new_score == result.history_entry.previous_score
        assert result.capability.successful_implementations == 1

    @pytest.mark.asyncio
    async def test_failure_lowers_trust(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        result = await api.record_impact(implemented.proposal.id, 0.2, "Recall dropped")
        assert result.capability.trust_score == pytest.approx(0.09)
        assert result.capability.failed_implementations == 1

    @pytest.mark.asyncio
    async def test_impact_only_once(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        await api.record_impact(implemented.proposal.id, 0.9, "Better")

        with pytest.raises(InvalidTransitionError, match="already measured"):
            await api.record_impact(implemented.proposal.id, 0.1, "Worse")

        assert len(await api.trust_history(implemented.capability.id)) == 2

    @pytest.mark.asyncio
    async def test_impact_requires_implemented(self, api, submit):
        approved = await approved_proposal(api, submit)
        with pytest.raises(InvalidTransitionError):
            await api.record_impact(approved.proposal.id, 0.9, "Better")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("score", [-0.01, 1.01])
    async def test_score_out_of_range(self, api, submit, score):
        implemented = await implemented_proposal(api, submit)
        with pytest.raises(ValidationError):
            await api.record_impact(implemented.proposal.id, score, "Bad input")

        stored = await api.get_proposal(implemented.proposal.id)
        assert stored.success_measured is False
        assert len(await api.trust_history(implemented.capability.id)) == 1


class TestRevert:
    @pytest.mark.asyncio
    async def test_revert_penalizes(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        result = await api.revert_proposal(
            implemented.proposal.id, "Broke date parsing", reverted_by="oncall"
        )

        assert result.proposal.status is ProposalStatus.REVERTED
        assert result.proposal.revert_reason == "Broke date parsing"
        assert result.proposal.reverted_at is not None
        assert result.capability.trust_score == pytest.approx(0.0)
        assert result.capability.failed_implementations == 1
        assert result.history_entry.change_reason == "reverted"

    @pytest.mark.asyncio
    async def test_revert_after_success_moves_counter(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        await api.record_impact(implemented.proposal.id, 1.0, "Better")
        result = await api.revert_proposal(implemented.proposal.id, "Regression found later")

        assert result.capability.successful_implementations == 0
        assert result.capability.failed_implementations == 1
        assert result.capability.trust_score == pytest.approx(0.10)

    @pytest.mark.asyncio
    async def test_revert_after_failure_counts_once(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        await api.record_impact(implemented.proposal.id, 0.0, "Worse")
        result = await api.revert_proposal(implemented.proposal.id, "Rolled back")
        assert result.capability.failed_implementations == 1

    @pytest.mark.asyncio
    async def test_reverted_is_terminal(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        await api.revert_proposal(implemented.proposal.id, "Rolled back")

        with pytest.raises(InvalidTransitionError):
            await api.revert_proposal(implemented.proposal.id, "Again")
        with pytest.raises(InvalidTransitionError):
            await api.mark_implemented(implemented.proposal.id)
        with pytest.raises(InvalidTransitionError):
            await api.record_impact(implemented.proposal.id, 1.0, "Late")

    @pytest.mark.asyncio
    async def test_revert_requires_implemented(self, api, submit):
        approved = await approved_proposal(api, submit)
        with pytest.raises(InvalidTransitionError):
            await api.revert_proposal(approved.proposal.id, "Never shipped")

    @pytest.mark.asyncio
    async def test_revert_requires_reason(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        with pytest.raises(ValidationError):
            await api.revert_proposal(implemented.proposal.id, "")


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_history_failure_rolls_back_everything(self, api, submit):
        submitted = await submit(api)
        before = await api.get_capability(submitted.capability.id)

        with patch.object(
            api.store, "append_trust_history", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(RuntimeError):
                await api.record_decision(submitted.proposal.id, "approve", "reviewer-1")

        after = await api.get_capability(submitted.capability.id)
        assert after.trust_score == before.trust_score
        assert after.approved_count == before.approved_count
        assert after.version == before.version
        assert (await api.get_proposal(submitted.proposal.id)).status is ProposalStatus.PENDING
        assert await api.trust_history(submitted.capability.id) == []

        # The proposal is still decidable once storage recovers
        result = await api.record_decision(submitted.proposal.id, "approve", "reviewer-1")
        assert result.proposal.status is ProposalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_failed_auto_approval_leaves_no_proposal(self, make_api, submit):
        api = await make_api(AUTO_CONFIG)
        with patch.object(
            api.store, "append_trust_history", side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(RuntimeError):
                await submit(api)

        assert await api.list_proposals() == []
        capability = (await api.list_capabilities())[0]
        assert capability.total_proposals == 0
        assert capability.trust_score == 0.95

    @pytest.mark.asyncio
    async def test_proposal_write_failure_rolls_back_history(self, api, submit):
        implemented = await implemented_proposal(api, submit)
        before = await api.get_capability(implemented.capability.id)

        with patch.object(
            api.store, "cas_update_proposal", side_effect=RuntimeError("constraint")
        ):
            with pytest.raises(RuntimeError):
                await api.revert_proposal(implemented.proposal.id, "Rolled back")

        after = await api.get_capability(implemented.capability.id)
        assert after.trust_score == before.trust_score
        assert len(await api.trust_history(implemented.capability.id)) == 1
