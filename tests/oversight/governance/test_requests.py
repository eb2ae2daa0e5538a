"""Tests for boundary request validation."""

from datetime import datetime

import pytest

from oversight.errors import ValidationError
from oversight.governance.models import CapabilityKind, Decision
from oversight.governance.requests import (
    HumanDecisionRequest,
    MarkImplementedRequest,
    PolicyUpdateRequest,
    RecordImpactRequest,
    SubmitProposalRequest,
    parse_request,
)


class TestSubmitProposalRequest:
    def test_valid(self):
        request = parse_request(
            SubmitProposalRequest,
            agent_name=" extractor ",
            capability_kind="validation_rule",
            title="Require ISO dates",
            proposed_change={"rule": "date must be ISO-8601"},
            rationale="Mixed date formats",
        )
        assert request.agent_name == "extractor"
        assert request.capability_kind is CapabilityKind.VALIDATION_RULE

    def test_payload_may_be_any_document(self):
        request = parse_request(
            SubmitProposalRequest,
            agent_name="extractor",
            capability_kind="prompt_update",
            title="t",
            proposed_change=["step one", "step two"],
            rationale="r",
        )
        assert request.proposed_change == ["step one", "step two"]

    def test_errors_carry_fields(self):
        with pytest.raises(ValidationError) as excinfo:
            parse_request(
                SubmitProposalRequest,
                agent_name="",
                capability_kind="bogus",
                title="t",
                proposed_change={},
                rationale="r",
            )
        fields = {e["field"] for e in excinfo.value.errors}
        assert {"agent_name", "capability_kind"} <= fields

    @pytest.mark.parametrize("field", ["proposed_change", "supporting_evidence"])
    def test_payload_must_be_json(self, field):
        data = {
            "agent_name": "extractor",
            "capability_kind": "prompt_update",
            "title": "t",
            "proposed_change": {"prompt": "v2"},
            "rationale": "r",
        }
        data[field] = {"when": datetime(2026, 1, 1)}
        with pytest.raises(ValidationError) as excinfo:
            parse_request(SubmitProposalRequest, **data)
        assert excinfo.value.errors[0]["field"] == field


class TestOtherRequests:
    def test_decision_enum(self):
        request = parse_request(
            HumanDecisionRequest, proposal_id="p1", decision="reject", reviewer_id="r1"
        )
        assert request.decision is Decision.REJECT

    @pytest.mark.parametrize("score", [0.0, 0.5, 1.0])
    def test_impact_score_bounds_inclusive(self, score):
        request = parse_request(
            RecordImpactRequest, proposal_id="p1", success_score=score, actual_impact="x"
        )
        assert request.success_score == score

    def test_impact_requires_actual_impact(self):
        with pytest.raises(ValidationError):
            parse_request(RecordImpactRequest, proposal_id="p1", success_score=0.5)

    def test_policy_update_needs_a_change(self):
        with pytest.raises(ValidationError, match="at least one"):
            parse_request(PolicyUpdateRequest, capability_id="c1")

    def test_policy_update_threshold(self):
        request = parse_request(PolicyUpdateRequest, capability_id="c1", auto_approve_threshold=1.0)
        assert request.auto_approve_threshold == 1.0

    def test_details_must_be_json(self):
        with pytest.raises(ValidationError, match="JSON"):
            parse_request(MarkImplementedRequest, proposal_id="p1", details={"at": datetime(2026, 1, 1)})
        with pytest.raises(ValidationError, match="JSON"):
            parse_request(
                RecordImpactRequest,
                proposal_id="p1",
                success_score=0.5,
                actual_impact="x",
                details={1, 2},
            )
