"""Typed errors raised by the governance engine.

Callers can rely on the class to decide what to do:

- NotFoundError: unknown capability/proposal id. Surface, do not retry.
- InvalidTransitionError: status precondition failed. The caller should
  re-fetch and re-decide.
- OptimisticLockConflict: a concurrent writer won. Retried internally.
- TransientError: retries exhausted. Safe to try again later.
- ValidationError: bad input, rejected before any write.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GovernanceError(Exception):
    """Base class for all governance engine errors."""


class NotFoundError(GovernanceError):
    """Raised when a capability or proposal id does not exist."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class InvalidTransitionError(GovernanceError):
    """Raised when a proposal is not in a status that allows the operation."""

    def __init__(
        self,
        proposal_id: str,
        current: str,
        attempted: str,
        detail: Optional[str] = None,
    ):
        message = f"Cannot {attempted} proposal {proposal_id} in status '{current}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.proposal_id = proposal_id
        self.current = current
        self.attempted = attempted


class OptimisticLockConflict(GovernanceError):
    """Raised when a conditional write finds the row changed since it was read."""


class TransientError(GovernanceError):
    """Raised when a transition could not commit within the retry budget."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class ValidationError(GovernanceError):
    """Raised when a request or configuration value is out of range."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: Exception) -> "ValidationError":
        """Wrap a pydantic ValidationError, keeping its field errors."""
        errors = []
        if hasattr(exc, "errors"):
            errors = [
                {
                    "field": ".".join(str(p) for p in err.get("loc", ())),
                    "message": err.get("msg", ""),
                }
                for err in exc.errors()
            ]
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors) or str(exc)
        return cls(f"Invalid request: {summary}", errors)
