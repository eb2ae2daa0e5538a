"""
CapabilityRegistry - Catalog of (agent, capability kind) trust records.

Creation is idempotent. Policy updates (threshold, review override,
description) are human-only and never touch trust_score or counters.

Every trust-affecting event on a capability runs under that capability's
lock (see locked()), so events on the same capability serialize inside a
process while different capabilities proceed in parallel. Writers in other
processes are caught by the version compare-and-swap in the store.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from oversight.config import GovernanceConfig
from oversight.errors import GovernanceError, NotFoundError
from oversight.retry import RetryConfig, RetryStats, with_retry_async

from .auditor import GovernanceAuditor
from .constants import TOPIC_CAPABILITIES
from .models import Capability, CapabilityKind, utc_now
from .notifier import ChangeEvent, ChangeNotifier
from .requests import PolicyUpdateRequest, parse_request
from .store import GovernanceStore

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Owns capability rows and their per-capability locks."""

    def __init__(
        self,
        store: GovernanceStore,
        config: Optional[GovernanceConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        notifier: Optional[ChangeNotifier] = None,
        auditor: Optional[GovernanceAuditor] = None,
    ):
        self.store = store
        self.config = config or GovernanceConfig()
        self.retry_config = retry_config or RetryConfig(max_attempts=self.config.max_attempts)
        self.notifier = notifier or ChangeNotifier()
        self.auditor = auditor or GovernanceAuditor()
        self._locks: Dict[str, asyncio.Lock] = {}

    def locked(self, capability_id: str) -> asyncio.Lock:
        """Lock serializing trust-affecting events on one capability."""
        lock = self._locks.get(capability_id)
        if lock is None:
            lock = self._locks.setdefault(capability_id, asyncio.Lock())
        return lock

    async def get_or_create(
        self,
        agent_name: str,
        kind: CapabilityKind,
        description: Optional[str] = None,
    ) -> Capability:
        """Return the capability for (agent, kind), creating it with defaults if absent.

        Calling twice returns the same id and never resets trust_score.
        """
        kind = CapabilityKind(kind)
        existing = await self.store.get_capability_by_key(agent_name, kind)
        if existing:
            return existing

        now = utc_now()
        candidate = Capability(
            id=str(uuid.uuid4()),
            agent_name=agent_name,
            capability_kind=kind,
            trust_score=self.config.default_trust_score,
            auto_approve_threshold=self.config.default_auto_approve_threshold,
            requires_review=self.config.default_requires_review,
            initial_trust_score=self.config.default_trust_score,
            description=description,
            created_at=now,
            updated_at=now,
        )
        inserted = await with_retry_async(
            self.store.insert_capability_if_absent,
            candidate,
            task_id=f"create_capability:{agent_name}/{kind.value}",
            config=self.retry_config,
        )
        capability = await self.store.get_capability_by_key(agent_name, kind)
        if capability is None:
            raise GovernanceError(f"Capability {agent_name}/{kind.value} vanished after insert")

        if inserted:
            logger.info(
                f"Created capability {agent_name}/{kind.value} "
                f"(trust={capability.trust_score}, threshold={capability.auto_approve_threshold})"
            )
            await self.notifier.emit_async(
                ChangeEvent(
                    topic=TOPIC_CAPABILITIES,
                    action="insert",
                    record_id=capability.id,
                    capability_id=capability.id,
                )
            )
        return capability

    async def get(self, capability_id: str) -> Capability:
        """Get a capability or raise NotFoundError."""
        capability = await self.store.get_capability(capability_id)
        if capability is None:
            raise NotFoundError("capability", capability_id)
        return capability

    async def read_for_decision(self, capability_id: str) -> Capability:
        """Snapshot used by the gate and lifecycle.

        Call while holding locked(capability_id). The snapshot's version is
        re-checked by the compare-and-swap at commit time, so a threshold or
        trust change that slips in from another process forces a retry
        instead of a decision on stale data.
        """
        return await self.get(capability_id)

    async def list(self, agent_name: Optional[str] = None) -> List[Capability]:
        return await self.store.list_capabilities(agent_name)

    async def by_agent(self) -> Dict[str, List[Capability]]:
        """Capabilities grouped by agent name."""
        grouped: Dict[str, List[Capability]] = {}
        for capability in await self.store.list_capabilities():
            grouped.setdefault(capability.agent_name, []).append(capability)
        return grouped

    async def apply_policy_update(
        self,
        capability_id: str,
        auto_approve_threshold: Optional[float] = None,
        requires_review: Optional[bool] = None,
        description: Optional[str] = None,
        updated_by: Optional[str] = None,
    ) -> Capability:
        """
        Change a capability's review policy.

        Raises:
            ValidationError: Threshold outside [0, 1] or nothing to change
            NotFoundError: Unknown capability id
            TransientError: Concurrent writers kept winning
        """
        request = parse_request(
            PolicyUpdateRequest,
            capability_id=capability_id,
            auto_approve_threshold=auto_approve_threshold,
            requires_review=requires_review,
            description=description,
            updated_by=updated_by,
        )
        changes = request.model_dump(
            exclude_none=True, exclude={"capability_id", "updated_by"}
        )

        async def attempt() -> Capability:
            async with self.locked(request.capability_id):
                current = await self.read_for_decision(request.capability_id)
                updated = replace(current, **changes)
                async with self.store.transaction() as conn:
                    updated.updated_at = utc_now()
                    updated.version = await self.store.cas_update_capability(
                        conn, updated, current.version
                    )
                return updated

        stats = RetryStats()
        try:
            updated = await with_retry_async(
                attempt,
                task_id=f"policy_update:{capability_id}",
                config=self.retry_config,
                stats=stats,
            )
        except GovernanceError as e:
            await self.auditor.log_rejected(
                "update_policy", e, capability_id=capability_id, actor=updated_by
            )
            raise

        logger.info(f"Updated policy of capability {capability_id}: {changes}")
        await self.auditor.log_policy_update(capability_id, changes, actor=updated_by)
        await self.notifier.emit_async(
            ChangeEvent(
                topic=TOPIC_CAPABILITIES,
                action="update",
                record_id=capability_id,
                capability_id=capability_id,
            )
        )
        return updated
