"""
GovernanceAPI - Boundary surface of the governance engine.

Composes the registry, lifecycle, gate, scoring engine and audit trail.
Each call maps to exactly one component operation; no business logic
lives here.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from oversight.config import GovernanceConfig, get_audit_path, get_db_path
from oversight.config.defaults import PROPOSAL_LIST_DEFAULT_LIMIT
from oversight.errors import NotFoundError, ValidationError
from oversight.retry import RetryConfig

from .audit import AuditTrail, ReplayReport
from .auditor import AuditLevel, GovernanceAuditor
from .gate import AutoApprovalGate
from .lifecycle import ProposalLifecycle, TransitionResult
from .models import (
    Capability,
    CapabilityKind,
    Proposal,
    ProposalFilter,
    ProposalStatus,
    TrustHistoryEntry,
)
from .notifier import ChangeNotifier, Subscriber
from .registry import CapabilityRegistry
from .scoring import TrustScoringEngine
from .store import GovernanceStore
from .summary import FleetSummary, summarize_fleet

logger = logging.getLogger(__name__)


class GovernanceAPI:
    """
    Single entry point for governance operations.

    Usage:
        api = GovernanceAPI(root=Path.cwd())
        await api.initialize()
        result = await api.submit_proposal(agent_name="extractor", ...)
        await api.shutdown()
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        db_path: Optional[Path] = None,
        config: Optional[GovernanceConfig] = None,
        audit_path: Optional[Path] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self.root = root or Path.cwd()
        self.config = config or GovernanceConfig()

        self.store = GovernanceStore(db_path or get_db_path(self.root))
        self.auditor = GovernanceAuditor(
            audit_path if audit_path is not None else get_audit_path(self.root),
            level=AuditLevel[self.config.audit_level],
        )
        self.notifier = ChangeNotifier()
        self.retry_config = retry_config or RetryConfig(max_attempts=self.config.max_attempts)

        self.registry = CapabilityRegistry(
            self.store,
            config=self.config,
            retry_config=self.retry_config,
            notifier=self.notifier,
            auditor=self.auditor,
        )
        self.scoring = TrustScoringEngine(self.config)
        self.gate = AutoApprovalGate()
        self.lifecycle = ProposalLifecycle(self.registry, scoring=self.scoring, gate=self.gate)
        self.audit = AuditTrail(self.store, self.registry)

    async def initialize(self) -> None:
        """Create the schema if needed."""
        await self.store.initialize()
        logger.info("GovernanceAPI initialized")

    async def shutdown(self) -> None:
        await self.store.close()
        logger.info("GovernanceAPI shut down")

    async def __aenter__(self) -> "GovernanceAPI":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Proposal lifecycle
    # ------------------------------------------------------------------

    async def submit_proposal(
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
        return await self.lifecycle.submit(
            agent_name=agent_name,
            capability_kind=capability_kind,
            title=title,
            proposed_change=proposed_change,
            rationale=rationale,
            predicted_impact=predicted_impact,
            supporting_evidence=supporting_evidence,
            affected_extraction_ids=affected_extraction_ids,
        )

    async def record_decision(
        self,
        proposal_id: str,
        decision: Any,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        return await self.lifecycle.record_human_decision(
            proposal_id, decision, reviewer_id, notes
        )

    async def mark_implemented(
        self,
        proposal_id: str,
        details: Optional[Any] = None,
        implemented_by: Optional[str] = None,
    ) -> TransitionResult:
        return await self.lifecycle.mark_implemented(
            proposal_id, details, implemented_by=implemented_by
        )

    async def record_impact(
        self,
        proposal_id: str,
        success_score: float,
        actual_impact: str,
        details: Optional[Any] = None,
        measured_by: Optional[str] = None,
    ) -> TransitionResult:
        return await self.lifecycle.record_impact(
            proposal_id, success_score, actual_impact, details, measured_by
        )

    async def revert_proposal(
        self,
        proposal_id: str,
        reason: str,
        reverted_by: Optional[str] = None,
    ) -> TransitionResult:
        return await self.lifecycle.revert(proposal_id, reason, reverted_by)

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def update_capability_policy(
        self,
        capability_id: str,
        auto_approve_threshold: Optional[float] = None,
        requires_review: Optional[bool] = None,
        description: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> Capability:
        return await self.registry.apply_policy_update(
            capability_id,
            auto_approve_threshold=auto_approve_threshold,
            requires_review=requires_review,
            description=description,
            updated_by=updated_by,
        )

    async def get_capability(self, capability_id: str) -> Capability:
        return await self.registry.get(capability_id)

    async def list_capabilities(self, agent_name: Optional[str] = None) -> List[Capability]:
        return await self.registry.list(agent_name)

    async def capabilities_by_agent(self) -> Dict[str, List[Capability]]:
        return await self.registry.by_agent()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.store.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError("proposal", proposal_id)
        return proposal

    async def list_proposals(
        self,
        filter: Optional[ProposalFilter] = None,
        status: Optional[Any] = None,
        agent_name: Optional[str] = None,
        capability_kind: Optional[Any] = None,
        capability_id: Optional[str] = None,
        limit: Optional[int] = PROPOSAL_LIST_DEFAULT_LIMIT,
    ) -> List[Proposal]:
        """Proposals newest first. Pass a ProposalFilter or keyword filters."""
        if filter is None:
            try:
                filter = ProposalFilter(
                    status=ProposalStatus(status) if status is not None else None,
                    agent_name=agent_name,
                    capability_kind=(
                        CapabilityKind(capability_kind) if capability_kind is not None else None
                    ),
                    capability_id=capability_id,
                    limit=limit,
                )
            except ValueError as e:
                raise ValidationError(f"Invalid proposal filter: {e}") from e
        return await self.store.list_proposals(filter)

    async def trust_history(self, capability_id: str) -> List[TrustHistoryEntry]:
        return await self.audit.list_for_capability(capability_id)

    async def recent_trust_history(self, limit: Optional[int] = None) -> List[TrustHistoryEntry]:
        return await self.audit.recent(limit)

    async def verify_trust(self, capability_id: str) -> ReplayReport:
        return await self.audit.verify(capability_id)

    async def fleet_summary(self) -> FleetSummary:
        by_agent = await self.registry.by_agent()
        counts = await self.store.count_proposals_by_status()
        return summarize_fleet(by_agent, counts)

    def subscribe(self, topic: str, callback: Subscriber) -> Callable[[], None]:
        """Receive a ChangeEvent after each committed change on topic."""
        return self.notifier.subscribe(topic, callback)
