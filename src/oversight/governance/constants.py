"""
Internal constants for the governance subsystem.

Topic names and the genesis hash are part of the persisted format.
"""

from __future__ import annotations

# === Notification topics ===
TOPIC_CAPABILITIES = "capabilities"
TOPIC_PROPOSALS = "proposals"

# === Hash chain ===
GENESIS_HASH = "0" * 64

# === Reviewer defaults ===
DEFAULT_APPROVE_NOTES = "Approved via dashboard"
DEFAULT_REJECT_NOTES = "Rejected via dashboard"

# Floating point tolerance for replay checks
REPLAY_EPSILON = 1e-9
