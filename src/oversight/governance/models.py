"""
Shared dataclasses and enums for the governance subsystem.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class CapabilityKind(str, Enum):
    """Kinds of change an agent can propose."""
    PROMPT_UPDATE = "prompt_update"
    THRESHOLD_CHANGE = "threshold_change"
    METHOD_IMPROVEMENT = "method_improvement"
    TOOL_CONFIGURATION = "tool_configuration"
    ONTOLOGY_EXPANSION = "ontology_expansion"
    VALIDATION_RULE = "validation_rule"


class ProposalStatus(str, Enum):
    """Proposal lifecycle states."""
    PENDING = "pending"
    AUTO_APPROVED = "auto_approved"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"
    REVERTED = "reverted"


# The only legal edges. Anything absent is rejected server-side.
TRANSITIONS: Dict[ProposalStatus, FrozenSet[ProposalStatus]] = {
    ProposalStatus.PENDING: frozenset(
        {ProposalStatus.AUTO_APPROVED, ProposalStatus.APPROVED, ProposalStatus.REJECTED}
    ),
    ProposalStatus.APPROVED: frozenset({ProposalStatus.IMPLEMENTED}),
    ProposalStatus.AUTO_APPROVED: frozenset({ProposalStatus.IMPLEMENTED}),
    ProposalStatus.IMPLEMENTED: frozenset({ProposalStatus.REVERTED}),
    ProposalStatus.REJECTED: frozenset(),
    ProposalStatus.REVERTED: frozenset(),
}


def can_transition(current: ProposalStatus, target: ProposalStatus) -> bool:
    """True if current -> target is an edge of the lifecycle graph."""
    return target in TRANSITIONS[current]


class Decision(str, Enum):
    """Human reviewer decision."""
    APPROVE = "approve"
    REJECT = "reject"


class TrustChangeReason(str, Enum):
    """Stored as trust_history.change_reason."""
    AUTO_APPROVED = "auto_approved"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPACT_MEASURED = "impact_measured"
    REVERTED = "reverted"


@dataclass
class Capability:
    """Trust record for one (agent, capability kind) pair."""
    id: str
    agent_name: str
    capability_kind: CapabilityKind
    trust_score: float
    auto_approve_threshold: float
    requires_review: bool
    initial_trust_score: float
    description: Optional[str] = None
    total_proposals: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    auto_approved_count: int = 0
    successful_implementations: int = 0
    failed_implementations: int = 0
    version: int = 1
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["capability_kind"] = self.capability_kind.value
        return result


@dataclass
class Proposal:
    """A single change proposed by an agent against a capability."""
    id: str
    capability_id: str
    title: str
    proposed_change: Any
    rationale: str
    status: ProposalStatus = ProposalStatus.PENDING
    predicted_impact: Optional[str] = None
    supporting_evidence: Optional[Any] = None
    affected_extraction_ids: Optional[List[str]] = None
    auto_applied: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    implemented_at: Optional[str] = None
    implementation_details: Optional[Any] = None
    success_measured: bool = False
    success_score: Optional[float] = None
    actual_impact: Optional[str] = None
    measurement_details: Optional[Any] = None
    measured_at: Optional[str] = None
    reverted_at: Optional[str] = None
    revert_reason: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["status"] = self.status.value
        return result


@dataclass(frozen=True)
class TrustHistoryEntry:
    """Immutable record of one trust score change and its cause."""
    id: str
    capability_id: str
    previous_score: float
    new_score: float
    change_reason: str
    proposal_id: Optional[str] = None
    changed_by: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    seq: Optional[int] = None
    prev_hash: Optional[str] = None
    entry_hash: Optional[str] = None

    @property
    def delta(self) -> float:
        return self.new_score - self.previous_score

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProposalFilter:
    """Filter for proposal listings. Unset fields match everything."""
    status: Optional[ProposalStatus] = None
    agent_name: Optional[str] = None
    capability_kind: Optional[CapabilityKind] = None
    capability_id: Optional[str] = None
    limit: Optional[int] = None
