"""
GovernanceStore - Async SQLite persistence for capabilities, proposals and
trust history.

Writes happen inside explicit transactions (BEGIN IMMEDIATE) and are
conditional: capability rows are compare-and-swapped on `version`, proposal
rows on their expected status. A miss raises OptimisticLockConflict and the
whole transaction rolls back.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional

import aiosqlite

from oversight.errors import OptimisticLockConflict

from .constants import GENESIS_HASH
from .models import (
    Capability,
    CapabilityKind,
    Proposal,
    ProposalFilter,
    ProposalStatus,
    TrustHistoryEntry,
)

logger = logging.getLogger(__name__)

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS capability (
        id TEXT PRIMARY KEY,
        agent_name TEXT NOT NULL,
        capability_kind TEXT NOT NULL,
        trust_score REAL NOT NULL CHECK (trust_score BETWEEN 0 AND 1),
        auto_approve_threshold REAL NOT NULL
            CHECK (auto_approve_threshold BETWEEN 0 AND 1),
        requires_review INTEGER NOT NULL DEFAULT 1,
        initial_trust_score REAL NOT NULL,
        description TEXT,
        total_proposals INTEGER NOT NULL DEFAULT 0 CHECK (total_proposals >= 0),
        approved_count INTEGER NOT NULL DEFAULT 0 CHECK (approved_count >= 0),
        rejected_count INTEGER NOT NULL DEFAULT 0 CHECK (rejected_count >= 0),
        auto_approved_count INTEGER NOT NULL DEFAULT 0 CHECK (auto_approved_count >= 0),
        successful_implementations INTEGER NOT NULL DEFAULT 0
            CHECK (successful_implementations >= 0),
        failed_implementations INTEGER NOT NULL DEFAULT 0
            CHECK (failed_implementations >= 0),
        version INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (agent_name, capability_kind),
        CHECK (approved_count + rejected_count + auto_approved_count <= total_proposals)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS proposal (
        id TEXT PRIMARY KEY,
        capability_id TEXT NOT NULL REFERENCES capability(id),
        title TEXT NOT NULL,
        proposed_change TEXT NOT NULL,  -- JSON
        rationale TEXT NOT NULL,
        predicted_impact TEXT,
        supporting_evidence TEXT,  -- JSON
        affected_extraction_ids TEXT,  -- JSON
        status TEXT NOT NULL CHECK (status IN (
            'pending', 'auto_approved', 'approved', 'rejected',
            'implemented', 'reverted'
        )),
        auto_applied INTEGER NOT NULL DEFAULT 0,
        reviewed_by TEXT,
        reviewed_at TEXT,
        review_notes TEXT,
        implemented_at TEXT,
        implementation_details TEXT,  -- JSON
        success_measured INTEGER NOT NULL DEFAULT 0,
        success_score REAL CHECK (success_score IS NULL OR success_score BETWEEN 0 AND 1),
        actual_impact TEXT,
        measurement_details TEXT,  -- JSON
        measured_at TEXT,
        reverted_at TEXT,
        revert_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS trust_history (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        capability_id TEXT NOT NULL REFERENCES capability(id),
        previous_score REAL NOT NULL,
        new_score REAL NOT NULL,
        change_reason TEXT NOT NULL,
        proposal_id TEXT REFERENCES proposal(id),
        changed_by TEXT,
        created_at TEXT NOT NULL,
        prev_hash TEXT NOT NULL,
        entry_hash TEXT NOT NULL
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trust_history_no_update
    BEFORE UPDATE ON trust_history
    BEGIN
        SELECT RAISE(ABORT, 'trust_history is append-only');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trust_history_no_delete
    BEFORE DELETE ON trust_history
    BEGIN
        SELECT RAISE(ABORT, 'trust_history is append-only');
    END
    """,
    "CREATE INDEX IF NOT EXISTS idx_capability_agent ON capability(agent_name)",
    "CREATE INDEX IF NOT EXISTS idx_proposal_status ON proposal(status)",
    "CREATE INDEX IF NOT EXISTS idx_proposal_capability ON proposal(capability_id)",
    "CREATE INDEX IF NOT EXISTS idx_proposal_created ON proposal(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_history_capability ON trust_history(capability_id, seq)",
]

_PROPOSAL_JSON_FIELDS = (
    "proposed_change",
    "supporting_evidence",
    "affected_extraction_ids",
    "implementation_details",
    "measurement_details",
)

_CAPABILITY_MUTABLE_FIELDS = (
    "trust_score",
    "auto_approve_threshold",
    "requires_review",
    "description",
    "total_proposals",
    "approved_count",
    "rejected_count",
    "auto_approved_count",
    "successful_implementations",
    "failed_implementations",
    "updated_at",
)

_PROPOSAL_COLUMNS = (
    "id",
    "capability_id",
    "title",
    "proposed_change",
    "rationale",
    "predicted_impact",
    "supporting_evidence",
    "affected_extraction_ids",
    "status",
    "auto_applied",
    "reviewed_by",
    "reviewed_at",
    "review_notes",
    "implemented_at",
    "implementation_details",
    "success_measured",
    "success_score",
    "actual_impact",
    "measurement_details",
    "measured_at",
    "reverted_at",
    "revert_reason",
    "created_at",
    "updated_at",
)


def compute_entry_hash(prev_hash: str, entry: TrustHistoryEntry) -> str:
    """SHA-256 over the previous link and the entry's content fields."""
    payload = json.dumps(
        [
            prev_hash,
            entry.id,
            entry.capability_id,
            entry.previous_score,
            entry.new_score,
            entry.change_reason,
            entry.proposal_id,
            entry.changed_by,
            entry.created_at,
        ],
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode()).hexdigest()


def _is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class GovernanceStore:
    """
    Async SQLite CRUD for governance data.

    One shared connection guarded by an asyncio.Lock. Reads take the lock
    too, so they never observe another coroutine's open transaction.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = db_path
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self._connection: Optional[aiosqlite.Connection] = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create a shared connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(
                str(self.db_path), timeout=self.timeout, isolation_level=None
            )
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """Create schema if not exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            conn = await self._get_connection()
            await conn.execute("PRAGMA journal_mode = WAL")
            for statement in _SCHEMA:
                await conn.execute(statement)
            logger.info(f"Initialized governance store at {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """All-or-nothing write scope.

        Commits when the block exits normally, rolls back on any exception.
        SQLite lock timeouts surface as OptimisticLockConflict.
        """
        async with self._lock:
            conn = await self._get_connection()
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                if _is_lock_error(e):
                    raise OptimisticLockConflict(f"Database busy: {e}") from e
                raise
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            try:
                await conn.execute("COMMIT")
            except sqlite3.OperationalError as e:
                await conn.execute("ROLLBACK")
                if _is_lock_error(e):
                    raise OptimisticLockConflict(f"Commit failed: {e}") from e
                raise

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def insert_capability_if_absent(self, capability: Capability) -> bool:
        """Insert a capability unless (agent, kind) exists. Returns True if inserted."""
        async with self.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO capability (
                    id, agent_name, capability_kind, trust_score,
                    auto_approve_threshold, requires_review, initial_trust_score,
                    description, total_proposals, approved_count, rejected_count,
                    auto_approved_count, successful_implementations,
                    failed_implementations, version, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    capability.id,
                    capability.agent_name,
                    capability.capability_kind.value,
                    capability.trust_score,
                    capability.auto_approve_threshold,
                    int(capability.requires_review),
                    capability.initial_trust_score,
                    capability.description,
                    capability.total_proposals,
                    capability.approved_count,
                    capability.rejected_count,
                    capability.auto_approved_count,
                    capability.successful_implementations,
                    capability.failed_implementations,
                    capability.version,
                    capability.created_at,
                    capability.updated_at,
                ),
            )
            return cursor.rowcount == 1

    async def get_capability(self, capability_id: str) -> Optional[Capability]:
        """Get a capability by id."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                "SELECT * FROM capability WHERE id = ?", (capability_id,)
            )
            row = await cursor.fetchone()
        return self._row_to_capability(row) if row else None

    async def get_capability_by_key(
        self, agent_name: str, kind: CapabilityKind
    ) -> Optional[Capability]:
        """Get the capability for an (agent, kind) pair."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                "SELECT * FROM capability WHERE agent_name = ? AND capability_kind = ?",
                (agent_name, kind.value),
            )
            row = await cursor.fetchone()
        return self._row_to_capability(row) if row else None

    async def list_capabilities(self, agent_name: Optional[str] = None) -> List[Capability]:
        """All capabilities ordered by agent then kind."""
        query = "SELECT * FROM capability"
        params: tuple = ()
        if agent_name is not None:
            query += " WHERE agent_name = ?"
            params = (agent_name,)
        query += " ORDER BY agent_name, capability_kind"
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [self._row_to_capability(r) for r in rows]

    async def cas_update_capability(
        self,
        conn: aiosqlite.Connection,
        capability: Capability,
        expected_version: int,
    ) -> int:
        """Write mutable capability fields if the row is still at expected_version.

        Returns the new version. Must be called inside transaction().
        """
        assignments = ", ".join(f"{name} = ?" for name in _CAPABILITY_MUTABLE_FIELDS)
        values: List[Any] = [getattr(capability, name) for name in _CAPABILITY_MUTABLE_FIELDS]
        values[_CAPABILITY_MUTABLE_FIELDS.index("requires_review")] = int(
            capability.requires_review
        )
        cursor = await conn.execute(
            f"""
            UPDATE capability SET {assignments}, version = version + 1
            WHERE id = ? AND version = ?
        """,
            (*values, capability.id, expected_version),
        )
        if cursor.rowcount != 1:
            raise OptimisticLockConflict(
                f"Capability {capability.id} changed since version {expected_version}"
            )
        return expected_version + 1

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def insert_proposal(self, conn: aiosqlite.Connection, proposal: Proposal) -> None:
        """Insert a new proposal. Must be called inside transaction()."""
        placeholders = ", ".join("?" for _ in _PROPOSAL_COLUMNS)
        await conn.execute(
            f"INSERT INTO proposal ({', '.join(_PROPOSAL_COLUMNS)}) VALUES ({placeholders})",
            self._proposal_values(proposal),
        )

    async def cas_update_proposal(
        self,
        conn: aiosqlite.Connection,
        proposal: Proposal,
        expected_status: ProposalStatus,
        expected_measured: Optional[bool] = None,
    ) -> None:
        """Write a proposal if it still has expected_status (and measured flag).

        Must be called inside transaction().
        """
        columns = [c for c in _PROPOSAL_COLUMNS if c not in ("id", "capability_id", "created_at")]
        values = dict(zip(_PROPOSAL_COLUMNS, self._proposal_values(proposal)))
        assignments = ", ".join(f"{c} = ?" for c in columns)
        query = f"UPDATE proposal SET {assignments} WHERE id = ? AND status = ?"
        params: List[Any] = [values[c] for c in columns] + [proposal.id, expected_status.value]
        if expected_measured is not None:
            query += " AND success_measured = ?"
            params.append(int(expected_measured))
        cursor = await conn.execute(query, params)
        if cursor.rowcount != 1:
            raise OptimisticLockConflict(
                f"Proposal {proposal.id} is no longer '{expected_status.value}'"
            )

    async def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        """Get a proposal by id."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute("SELECT * FROM proposal WHERE id = ?", (proposal_id,))
            row = await cursor.fetchone()
        return self._row_to_proposal(row) if row else None

    async def list_proposals(self, filter: Optional[ProposalFilter] = None) -> List[Proposal]:
        """Proposals matching filter, newest first."""
        filter = filter or ProposalFilter()
        clauses = []
        params: List[Any] = []
        if filter.status is not None:
            clauses.append("p.status = ?")
            params.append(filter.status.value)
        if filter.agent_name is not None:
            clauses.append("c.agent_name = ?")
            params.append(filter.agent_name)
        if filter.capability_kind is not None:
            clauses.append("c.capability_kind = ?")
            params.append(filter.capability_kind.value)
        if filter.capability_id is not None:
            clauses.append("p.capability_id = ?")
            params.append(filter.capability_id)

        query = "SELECT p.* FROM proposal p JOIN capability c ON c.id = p.capability_id"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY p.created_at DESC, p.rowid DESC"
        if filter.limit is not None:
            query += " LIMIT ?"
            params.append(filter.limit)

        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [self._row_to_proposal(r) for r in rows]

    async def count_proposals_by_status(self) -> dict:
        """Map of status value -> proposal count."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                "SELECT status, COUNT(*) AS n FROM proposal GROUP BY status"
            )
            rows = await cursor.fetchall()
        return {row["status"]: row["n"] for row in rows}

    # ------------------------------------------------------------------
    # Trust history
    # ------------------------------------------------------------------

    async def append_trust_history(
        self, conn: aiosqlite.Connection, entry: TrustHistoryEntry
    ) -> TrustHistoryEntry:
        """Append one entry, chaining it to the capability's last entry hash.

        Must be called inside transaction(). Returns the stored entry.
        """
        cursor = await conn.execute(
            """
            SELECT entry_hash FROM trust_history
            WHERE capability_id = ? ORDER BY seq DESC LIMIT 1
        """,
            (entry.capability_id,),
        )
        row = await cursor.fetchone()
        prev_hash = row["entry_hash"] if row else GENESIS_HASH
        entry_hash = compute_entry_hash(prev_hash, entry)

        cursor = await conn.execute(
            """
            INSERT INTO trust_history (
                id, capability_id, previous_score, new_score, change_reason,
                proposal_id, changed_by, created_at, prev_hash, entry_hash
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                entry.id,
                entry.capability_id,
                entry.previous_score,
                entry.new_score,
                entry.change_reason,
                entry.proposal_id,
                entry.changed_by,
                entry.created_at,
                prev_hash,
                entry_hash,
            ),
        )
        return TrustHistoryEntry(
            id=entry.id,
            capability_id=entry.capability_id,
            previous_score=entry.previous_score,
            new_score=entry.new_score,
            change_reason=entry.change_reason,
            proposal_id=entry.proposal_id,
            changed_by=entry.changed_by,
            created_at=entry.created_at,
            seq=cursor.lastrowid,
            prev_hash=prev_hash,
            entry_hash=entry_hash,
        )

    async def list_trust_history(self, capability_id: str) -> List[TrustHistoryEntry]:
        """Entries for one capability in commit order.

        created_at is stamped inside the write transaction, so seq order
        and timestamp order agree; seq also breaks timestamp ties.
        """
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                """
                SELECT * FROM trust_history WHERE capability_id = ?
                ORDER BY seq
            """,
                (capability_id,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_history(r) for r in rows]

    async def recent_trust_history(self, limit: int) -> List[TrustHistoryEntry]:
        """Most recent entries across all capabilities, newest first."""
        async with self._lock:
            conn = await self._get_connection()
            cursor = await conn.execute(
                "SELECT * FROM trust_history ORDER BY seq DESC LIMIT ?", (limit,)
            )
            rows = await cursor.fetchall()
        return [self._row_to_history(r) for r in rows]

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    def _proposal_values(self, proposal: Proposal) -> tuple:
        values = []
        for column in _PROPOSAL_COLUMNS:
            value = getattr(proposal, column)
            if column in _PROPOSAL_JSON_FIELDS:
                value = json.dumps(value) if value is not None else None
            elif column == "status":
                value = proposal.status.value
            elif column in ("auto_applied", "success_measured"):
                value = int(value)
            values.append(value)
        return tuple(values)

    def _row_to_capability(self, row: aiosqlite.Row) -> Capability:
        """Convert DB row to Capability."""
        return Capability(
            id=row["id"],
            agent_name=row["agent_name"],
            capability_kind=CapabilityKind(row["capability_kind"]),
            trust_score=row["trust_score"],
            auto_approve_threshold=row["auto_approve_threshold"],
            requires_review=bool(row["requires_review"]),
            initial_trust_score=row["initial_trust_score"],
            description=row["description"],
            total_proposals=row["total_proposals"],
            approved_count=row["approved_count"],
            rejected_count=row["rejected_count"],
            auto_approved_count=row["auto_approved_count"],
            successful_implementations=row["successful_implementations"],
            failed_implementations=row["failed_implementations"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_proposal(self, row: aiosqlite.Row) -> Proposal:
        """Convert DB row to Proposal."""
        data = {column: row[column] for column in _PROPOSAL_COLUMNS}
        for column in _PROPOSAL_JSON_FIELDS:
            if data[column] is not None:
                data[column] = json.loads(data[column])
        data["status"] = ProposalStatus(data["status"])
        data["auto_applied"] = bool(data["auto_applied"])
        data["success_measured"] = bool(data["success_measured"])
        return Proposal(**data)

    def _row_to_history(self, row: aiosqlite.Row) -> TrustHistoryEntry:
        """Convert DB row to TrustHistoryEntry."""
        return TrustHistoryEntry(
            id=row["id"],
            capability_id=row["capability_id"],
            previous_score=row["previous_score"],
            new_score=row["new_score"],
            change_reason=row["change_reason"],
            proposal_id=row["proposal_id"],
            changed_by=row["changed_by"],
            created_at=row["created_at"],
            seq=row["seq"],
            prev_hash=row["prev_hash"],
            entry_hash=row["entry_hash"],
        )
