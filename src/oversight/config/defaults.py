"""Default configuration values for Oversight.

This module centralizes the policy constants of the governance engine
(trust deltas, default capability settings, retry bounds, file names).
All modules should import these constants instead of hard-coding values.

Usage:
    from oversight.config.defaults import (
        TRUST_DELTA_APPROVE,
        RETRY_MAX_ATTEMPTS,
    )
"""

from __future__ import annotations

# =============================================================================
# New Capability Defaults
# =============================================================================

# A capability starts in the "New" band and always under human review
CAPABILITY_DEFAULT_TRUST_SCORE = 0.1
CAPABILITY_DEFAULT_AUTO_APPROVE_THRESHOLD = 0.9
CAPABILITY_DEFAULT_REQUIRES_REVIEW = True


# =============================================================================
# Trust Deltas (magnitudes; sign applied by the scoring engine)
# =============================================================================

TRUST_DELTA_APPROVE = 0.05
TRUST_DELTA_REJECT = 0.10
TRUST_DELTA_AUTO_APPROVE_BONUS = 0.01
TRUST_DELTA_OUTCOME = 0.10
TRUST_DELTA_REVERT = 0.15

# Outcome score that produces no trust change
TRUST_NEUTRAL_OUTCOME = 0.5

# Scores are rounded to this many places before storage
TRUST_SCORE_PRECISION = 6


# =============================================================================
# Trust Level Bands (lower bounds)
# =============================================================================

TRUST_LEVEL_TRUSTED = 0.9
TRUST_LEVEL_HIGH = 0.7
TRUST_LEVEL_MEDIUM = 0.5
TRUST_LEVEL_LOW = 0.3


# =============================================================================
# Optimistic Locking Retry Defaults
# =============================================================================

RETRY_MAX_ATTEMPTS = 5
RETRY_BASE_DELAY_MS = 5.0
RETRY_MAX_DELAY_MS = 200.0
RETRY_BACKOFF_MULTIPLIER = 2.0
RETRY_JITTER_FACTOR = 0.5


# =============================================================================
# Listing Defaults
# =============================================================================

PROPOSAL_LIST_DEFAULT_LIMIT = 100
TRUST_HISTORY_RECENT_LIMIT = 50


# =============================================================================
# Audit Defaults
# =============================================================================

AUDIT_DEFAULT_LEVEL = "INFO"  # "DEBUG", "INFO", "WARN", "ERROR"


# =============================================================================
# File Names
# =============================================================================

DATA_DIR_NAME = ".oversight"
GOVERNANCE_DB_FILENAME = "governance.db"
AUDIT_LOG_FILENAME = "audit.jsonl"
