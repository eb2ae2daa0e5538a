"""
GovernanceAuditor - Operational audit log with levels.

One JSON line per engine event, written asynchronously. This log explains
what callers attempted (including rejected transitions); the trust_history
table remains the authoritative record of trust changes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Any, Optional

import aiofiles

logger = logging.getLogger(__name__)


class AuditLevel(IntEnum):
    """Audit event levels with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40


class GovernanceAuditor:
    """
    Append governance events to a JSONL file.

    - DEBUG: gate evaluations
    - INFO: committed transitions and policy updates
    - WARN: rejected transitions, exhausted retries
    """

    def __init__(
        self,
        audit_path: Optional[Path] = None,
        level: AuditLevel = AuditLevel.INFO,
    ):
        self.audit_path = audit_path
        self.level = level
        self._lock = asyncio.Lock()

    def set_level(self, level: AuditLevel) -> None:
        """Change audit level at runtime."""
        self.level = level

    async def log(
        self,
        event: str,
        level: AuditLevel = AuditLevel.INFO,
        **kwargs: Any,
    ) -> None:
        """Log audit event if it meets the configured level."""
        if level < self.level:
            return
        if not self.audit_path:
            return

        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": f"governance_{event}",
            "level": level.name.lower(),
            **kwargs,
        }

        # Callers log after commit; a broken audit path must not fail them.
        async with self._lock:
            try:
                self.audit_path.parent.mkdir(parents=True, exist_ok=True)
                async with aiofiles.open(self.audit_path, "a") as f:
                    await f.write(json.dumps(record, default=str) + "\n")
            except Exception as e:
                logger.error(f"Failed to write audit log: {e}")

    async def log_gate(
        self,
        capability_id: str,
        proposal_id: str,
        auto_approve: bool,
        reason: str,
    ) -> None:
        """Log an auto-approval gate evaluation."""
        await self.log(
            "gate",
            AuditLevel.DEBUG,
            capability_id=capability_id,
            proposal_id=proposal_id,
            auto_approve=auto_approve,
            reason=reason,
        )

    async def log_transition(
        self,
        proposal_id: str,
        capability_id: str,
        from_status: Optional[str],
        to_status: str,
        actor: Optional[str] = None,
        previous_score: Optional[float] = None,
        new_score: Optional[float] = None,
        attempts: int = 1,
    ) -> None:
        """Log a committed proposal transition."""
        await self.log(
            "transition",
            AuditLevel.INFO,
            proposal_id=proposal_id,
            capability_id=capability_id,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            previous_score=previous_score,
            new_score=new_score,
            attempts=attempts,
        )

    async def log_rejected(
        self,
        operation: str,
        error: Exception,
        proposal_id: Optional[str] = None,
        capability_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> None:
        """Log an operation that failed with a typed error."""
        await self.log(
            "rejected",
            AuditLevel.WARN,
            operation=operation,
            error_type=type(error).__name__,
            error=str(error),
            proposal_id=proposal_id,
            capability_id=capability_id,
            actor=actor,
        )

    async def log_policy_update(
        self,
        capability_id: str,
        changes: dict,
        actor: Optional[str] = None,
    ) -> None:
        """Log a human policy change on a capability."""
        await self.log(
            "policy_update",
            AuditLevel.INFO,
            capability_id=capability_id,
            changes=changes,
            actor=actor,
        )
