"""
Agent trust and proposal governance.

Agents propose changes per capability; trust scores decide whether a
proposal is auto-approved or routed to a human, and measured outcomes
feed back into trust. Every trust change is recorded in an append-only,
hash-chained history.
"""

from .api import GovernanceAPI
from .audit import AuditTrail, ReplayReport
from .auditor import AuditLevel, GovernanceAuditor
from .gate import AutoApprovalGate, GateDecision
from .lifecycle import ProposalLifecycle, TransitionResult
from .models import (
    Capability,
    CapabilityKind,
    Decision,
    Proposal,
    ProposalFilter,
    ProposalStatus,
    TrustChangeReason,
    TrustHistoryEntry,
)
from .notifier import ChangeEvent, ChangeNotifier
from .registry import CapabilityRegistry
from .scoring import ScoreChange, TrustScoringEngine
from .store import GovernanceStore
from .summary import FleetSummary, capability_label, trust_level

__all__ = [
    "GovernanceAPI",
    "AuditTrail",
    "ReplayReport",
    "AuditLevel",
    "GovernanceAuditor",
    "AutoApprovalGate",
    "GateDecision",
    "ProposalLifecycle",
    "TransitionResult",
    "Capability",
    "CapabilityKind",
    "Decision",
    "Proposal",
    "ProposalFilter",
    "ProposalStatus",
    "TrustChangeReason",
    "TrustHistoryEntry",
    "ChangeEvent",
    "ChangeNotifier",
    "CapabilityRegistry",
    "ScoreChange",
    "TrustScoringEngine",
    "GovernanceStore",
    "FleetSummary",
    "capability_label",
    "trust_level",
]
