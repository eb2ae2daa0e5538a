"""Configuration for the governance engine.

Policy constants are tunable: every field of GovernanceConfig can be set
in code or through an OVERSIGHT_* environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from oversight.config.defaults import (
    AUDIT_DEFAULT_LEVEL,
    AUDIT_LOG_FILENAME,
    CAPABILITY_DEFAULT_AUTO_APPROVE_THRESHOLD,
    CAPABILITY_DEFAULT_REQUIRES_REVIEW,
    CAPABILITY_DEFAULT_TRUST_SCORE,
    DATA_DIR_NAME,
    GOVERNANCE_DB_FILENAME,
    RETRY_MAX_ATTEMPTS,
    TRUST_DELTA_APPROVE,
    TRUST_DELTA_AUTO_APPROVE_BONUS,
    TRUST_DELTA_OUTCOME,
    TRUST_DELTA_REJECT,
    TRUST_DELTA_REVERT,
)
from oversight.errors import ValidationError

_UNIT_INTERVAL_FIELDS = (
    "default_trust_score",
    "default_auto_approve_threshold",
    "delta_approve",
    "delta_reject",
    "delta_auto_approve_bonus",
    "delta_outcome",
    "delta_revert",
)

_ENV_NAMES = {
    "default_trust_score": "OVERSIGHT_DEFAULT_TRUST_SCORE",
    "default_auto_approve_threshold": "OVERSIGHT_DEFAULT_THRESHOLD",
    "default_requires_review": "OVERSIGHT_DEFAULT_REQUIRES_REVIEW",
    "delta_approve": "OVERSIGHT_DELTA_APPROVE",
    "delta_reject": "OVERSIGHT_DELTA_REJECT",
    "delta_auto_approve_bonus": "OVERSIGHT_DELTA_AUTO_APPROVE_BONUS",
    "delta_outcome": "OVERSIGHT_DELTA_OUTCOME",
    "delta_revert": "OVERSIGHT_DELTA_REVERT",
    "max_attempts": "OVERSIGHT_MAX_ATTEMPTS",
    "audit_level": "OVERSIGHT_AUDIT_LEVEL",
}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GovernanceConfig:
    """Tunable policy constants and retry bound.

    Attributes:
        default_trust_score: Trust score of a newly created capability.
        default_auto_approve_threshold: Threshold of a newly created capability.
        default_requires_review: Review override of a newly created capability.
        delta_approve: Trust gained when a human approves a proposal.
        delta_reject: Trust lost when a human rejects a proposal.
        delta_auto_approve_bonus: Trust gained on an auto-approval.
        delta_outcome: Full-scale trust change for a measured outcome.
        delta_revert: Trust lost when an implemented proposal is reverted.
        max_attempts: Attempts per transition before raising TransientError.
        audit_level: Minimum level written to the JSONL audit log.
    """

    default_trust_score: float = CAPABILITY_DEFAULT_TRUST_SCORE
    default_auto_approve_threshold: float = CAPABILITY_DEFAULT_AUTO_APPROVE_THRESHOLD
    default_requires_review: bool = CAPABILITY_DEFAULT_REQUIRES_REVIEW
    delta_approve: float = TRUST_DELTA_APPROVE
    delta_reject: float = TRUST_DELTA_REJECT
    delta_auto_approve_bonus: float = TRUST_DELTA_AUTO_APPROVE_BONUS
    delta_outcome: float = TRUST_DELTA_OUTCOME
    delta_revert: float = TRUST_DELTA_REVERT
    max_attempts: int = RETRY_MAX_ATTEMPTS
    audit_level: str = AUDIT_DEFAULT_LEVEL

    def __post_init__(self):
        for name in _UNIT_INTERVAL_FIELDS:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"{name} must be within [0, 1], got {value}")
        if self.max_attempts < 1:
            raise ValidationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        self.audit_level = self.audit_level.upper()
        if self.audit_level not in ("DEBUG", "INFO", "WARN", "ERROR"):
            raise ValidationError(f"Unknown audit level: {self.audit_level}")

    @classmethod
    def from_env(cls) -> "GovernanceConfig":
        """Create config from environment variables with defaults as fallbacks."""
        kwargs = {}
        for f in fields(cls):
            raw = os.environ.get(_ENV_NAMES[f.name])
            if raw is None:
                continue
            try:
                if f.name == "default_requires_review":
                    kwargs[f.name] = _parse_bool(raw)
                elif f.name == "max_attempts":
                    kwargs[f.name] = int(raw)
                elif f.name == "audit_level":
                    kwargs[f.name] = raw
                else:
                    kwargs[f.name] = float(raw)
            except ValueError as e:
                raise ValidationError(f"{_ENV_NAMES[f.name]}: {e}") from e
        return cls(**kwargs)


def get_data_dir(root: Optional[Path] = None) -> Path:
    """Return the directory holding the database and audit log."""
    return (root or Path.cwd()) / DATA_DIR_NAME


def get_db_path(root: Optional[Path] = None) -> Path:
    """Database path, honouring OVERSIGHT_DB_PATH."""
    env_path = os.environ.get("OVERSIGHT_DB_PATH")
    if env_path:
        return Path(env_path)
    return get_data_dir(root) / GOVERNANCE_DB_FILENAME


def get_audit_path(root: Optional[Path] = None) -> Path:
    """Audit log path, honouring OVERSIGHT_AUDIT_PATH."""
    env_path = os.environ.get("OVERSIGHT_AUDIT_PATH")
    if env_path:
        return Path(env_path)
    return get_data_dir(root) / AUDIT_LOG_FILENAME


__all__ = [
    "GovernanceConfig",
    "get_data_dir",
    "get_db_path",
    "get_audit_path",
]
