"""Tests for GovernanceAuditor."""

import json

import pytest

from oversight.errors import InvalidTransitionError
from oversight.governance.auditor import AuditLevel, GovernanceAuditor


def read_events(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


@pytest.mark.asyncio
async def test_writes_jsonl(temp_root):
    path = temp_root / "logs" / "audit.jsonl"
    auditor = GovernanceAuditor(path)

    await auditor.log_transition(
        proposal_id="p1",
        capability_id="c1",
        from_status="pending",
        to_status="approved",
        actor="reviewer-1",
        previous_score=0.1,
        new_score=0.15,
    )
    await auditor.log_policy_update("c1", {"auto_approve_threshold": 0.7}, actor="admin")

    events = read_events(path)
    assert [e["event"] for e in events] == ["governance_transition", "governance_policy_update"]
    assert events[0]["to_status"] == "approved"
    assert events[0]["level"] == "info"
    assert events[1]["changes"] == {"auto_approve_threshold": 0.7}


@pytest.mark.asyncio
async def test_level_filtering(temp_root):
    path = temp_root / "audit.jsonl"
    auditor = GovernanceAuditor(path, level=AuditLevel.WARN)

    await auditor.log_gate("c1", "p1", auto_approve=False, reason="below threshold")
    await auditor.log_transition("p1", "c1", "pending", "approved")
    await auditor.log_rejected("approve", InvalidTransitionError("p1", "approved", "approve"))

    events = read_events(path)
    assert [e["event"] for e in events] == ["governance_rejected"]
    assert events[0]["error_type"] == "InvalidTransitionError"

    auditor.set_level(AuditLevel.DEBUG)
    await auditor.log_gate("c1", "p2", auto_approve=True, reason="trusted")
    assert read_events(path)[-1]["event"] == "governance_gate"


@pytest.mark.asyncio
async def test_unwritable_path_logs_error(temp_root, caplog):
    blocker = temp_root / "blocker"
    blocker.write_text("")
    auditor = GovernanceAuditor(blocker / "logs" / "audit.jsonl")

    await auditor.log_transition("p1", "c1", "pending", "approved")

    assert "Failed to write audit log" in caplog.text


@pytest.mark.asyncio
async def test_no_path_is_a_no_op():
    auditor = GovernanceAuditor()
    await auditor.log_transition("p1", "c1", None, "pending")
