"""
AuditTrail - Read side of the append-only trust history.

The store refuses UPDATE and DELETE on trust_history, and every entry is
hash-chained to the previous entry of the same capability. verify() replays
a capability's entries from its initial score and re-walks the chain, so
both a diverged trust_score and an edited entry are reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from oversight.config.defaults import TRUST_HISTORY_RECENT_LIMIT

from .constants import GENESIS_HASH, REPLAY_EPSILON
from .models import TrustHistoryEntry
from .registry import CapabilityRegistry
from .scoring import clamp_score
from .store import GovernanceStore, compute_entry_hash

logger = logging.getLogger(__name__)


@dataclass
class ReplayReport:
    """Result of replaying one capability's trust history."""
    capability_id: str
    initial_score: float
    replayed_score: float
    stored_score: float
    entries: int
    chain_valid: bool = True
    broken_links: List[str] = field(default_factory=list)
    discontinuities: List[str] = field(default_factory=list)

    @property
    def score_matches(self) -> bool:
        return abs(self.replayed_score - self.stored_score) <= REPLAY_EPSILON

    @property
    def ok(self) -> bool:
        return self.score_matches and self.chain_valid and not self.discontinuities

    def to_dict(self) -> Dict[str, Any]:
        return {
            "capability_id": self.capability_id,
            "initial_score": self.initial_score,
            "replayed_score": self.replayed_score,
            "stored_score": self.stored_score,
            "entries": self.entries,
            "score_matches": self.score_matches,
            "chain_valid": self.chain_valid,
            "broken_links": list(self.broken_links),
            "discontinuities": list(self.discontinuities),
            "ok": self.ok,
        }


class AuditTrail:
    """Ordered, read-only view of trust history."""

    def __init__(self, store: GovernanceStore, registry: CapabilityRegistry):
        self.store = store
        self.registry = registry

    async def list_for_capability(self, capability_id: str) -> List[TrustHistoryEntry]:
        """Entries for a capability by timestamp, ties broken by insertion order.

        Raises:
            NotFoundError: Unknown capability id
        """
        await self.registry.get(capability_id)
        return await self.store.list_trust_history(capability_id)

    async def recent(self, limit: Optional[int] = None) -> List[TrustHistoryEntry]:
        """Latest entries across all capabilities, newest first."""
        return await self.store.recent_trust_history(limit or TRUST_HISTORY_RECENT_LIMIT)

    async def verify(self, capability_id: str) -> ReplayReport:
        """Replay history from the initial score and check the hash chain."""
        capability = await self.registry.get(capability_id)
        entries = await self.store.list_trust_history(capability_id)

        report = ReplayReport(
            capability_id=capability_id,
            initial_score=capability.initial_trust_score,
            replayed_score=capability.initial_trust_score,
            stored_score=capability.trust_score,
            entries=len(entries),
        )

        running = capability.initial_trust_score
        prev_hash = GENESIS_HASH
        for entry in entries:
            if abs(entry.previous_score - running) > REPLAY_EPSILON:
                report.discontinuities.append(entry.id)
            running = clamp_score(running + entry.delta)

            if entry.prev_hash != prev_hash or entry.entry_hash != compute_entry_hash(
                prev_hash, entry
            ):
                report.chain_valid = False
                report.broken_links.append(entry.id)
            prev_hash = entry.entry_hash

        report.replayed_score = running
        if not report.ok:
            logger.warning(
                f"Trust history of {capability_id} failed verification: "
                f"replayed={report.replayed_score} stored={report.stored_score} "
                f"broken={len(report.broken_links)} gaps={len(report.discontinuities)}"
            )
        return report
