"""Trust bands, capability labels and agent/fleet rollups for dashboards."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from oversight.config.defaults import (
    TRUST_LEVEL_HIGH,
    TRUST_LEVEL_LOW,
    TRUST_LEVEL_MEDIUM,
    TRUST_LEVEL_TRUSTED,
)

from .models import Capability, CapabilityKind, ProposalStatus

CAPABILITY_LABELS: Dict[CapabilityKind, str] = {
    CapabilityKind.PROMPT_UPDATE: "Prompt Updates",
    CapabilityKind.THRESHOLD_CHANGE: "Thresholds",
    CapabilityKind.METHOD_IMPROVEMENT: "Methods",
    CapabilityKind.TOOL_CONFIGURATION: "Tools",
    CapabilityKind.ONTOLOGY_EXPANSION: "Ontology",
    CapabilityKind.VALIDATION_RULE: "Validation Rules",
}


@dataclass(frozen=True)
class TrustLevel:
    label: str
    description: str


# Highest band first
TRUST_BANDS = (
    (TRUST_LEVEL_TRUSTED, TrustLevel("Trusted", "Auto-approves most changes")),
    (TRUST_LEVEL_HIGH, TrustLevel("High", "Minimal review needed")),
    (TRUST_LEVEL_MEDIUM, TrustLevel("Medium", "Standard review")),
    (TRUST_LEVEL_LOW, TrustLevel("Low", "Careful review needed")),
)
NEW_LEVEL = TrustLevel("New", "All changes need review")


def trust_level(score: float) -> TrustLevel:
    """Band a trust score falls into."""
    for floor, level in TRUST_BANDS:
        if score >= floor:
            return level
    return NEW_LEVEL


def capability_label(kind: CapabilityKind) -> str:
    return CAPABILITY_LABELS[CapabilityKind(kind)]


@dataclass
class AgentSummary:
    agent_name: str
    capabilities: int
    mean_trust: float
    total_proposals: int
    total_approved: int  # human approvals + auto-approvals

    @property
    def level(self) -> TrustLevel:
        return trust_level(self.mean_trust)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["level"] = self.level.label
        return result


@dataclass
class FleetSummary:
    agents: List[AgentSummary] = field(default_factory=list)
    mean_trust: float = 0.0
    pending: int = 0
    auto_approved: int = 0
    implemented: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agents": [a.to_dict() for a in self.agents],
            "mean_trust": self.mean_trust,
            "pending": self.pending,
            "auto_approved": self.auto_approved,
            "implemented": self.implemented,
        }


def summarize_agent(agent_name: str, capabilities: List[Capability]) -> AgentSummary:
    count = len(capabilities)
    return AgentSummary(
        agent_name=agent_name,
        capabilities=count,
        mean_trust=sum(c.trust_score for c in capabilities) / count if count else 0.0,
        total_proposals=sum(c.total_proposals for c in capabilities),
        total_approved=sum(c.approved_count + c.auto_approved_count for c in capabilities),
    )


def summarize_fleet(
    by_agent: Dict[str, List[Capability]],
    status_counts: Dict[str, int],
) -> FleetSummary:
    """
    Roll capabilities up per agent and across the fleet.

    Fleet mean trust is over capabilities, not over agent means.
    status_counts maps proposal status values to counts.
    """
    all_capabilities = [c for caps in by_agent.values() for c in caps]
    return FleetSummary(
        agents=[summarize_agent(name, caps) for name, caps in sorted(by_agent.items())],
        mean_trust=(
            sum(c.trust_score for c in all_capabilities) / len(all_capabilities)
            if all_capabilities
            else 0.0
        ),
        pending=status_counts.get(ProposalStatus.PENDING.value, 0),
        auto_approved=status_counts.get(ProposalStatus.AUTO_APPROVED.value, 0),
        implemented=status_counts.get(ProposalStatus.IMPLEMENTED.value, 0),
    )
