"""Sync store: DuckDB persistence for capsules, sync history and metrics.

Indexed timestamp columns hold naive UTC; records round-trip through their
JSON payload with timezone information intact. Every
DuckDB failure, and any use before ``initialize``, surfaces as
``StoreUnavailableError``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import duckdb

from cuesync.errors import StoreUnavailableError
from cuesync.models.capsule import ContextCapsule, SyncHistoryEntry, SyncStatus

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS capsules (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR,
        source_platform VARCHAR,
        created_at TIMESTAMP,
        sync_status VARCHAR NOT NULL,
        priority VARCHAR,
        is_archived BOOLEAN DEFAULT FALSE,
        payload VARCHAR,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_history (
        id VARCHAR PRIMARY KEY,
        capsule_id VARCHAR NOT NULL,
        target_platform VARCHAR NOT NULL,
        timestamp TIMESTAMP NOT NULL,
        success BOOLEAN NOT NULL,
        score INTEGER,
        total_sync_time_ms DOUBLE,
        payload VARCHAR NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS performance_metrics (
        capsule_id VARCHAR NOT NULL,
        recorded_at TIMESTAMP NOT NULL,
        total_sync_time_ms DOUBLE,
        target_count INTEGER,
        success_count INTEGER,
        average_score DOUBLE,
        payload VARCHAR
    )
    """,
    "CREATE INDEX IF NOT EXISTS sync_history_timestamp_idx ON sync_history (timestamp)",
)


def _to_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class SyncStore:
    """DuckDB-backed store for capsule state and sync history."""

    def __init__(self, database_path: str | Path = ":memory:") -> None:
        """Initialize sync store.

        Args:
            database_path: DuckDB database path (":memory:" for in-memory)
        """
        self.db_path = database_path
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._lock = asyncio.Lock()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[duckdb.DuckDBPyConnection]:
        if self.conn is None:
            raise StoreUnavailableError(f"Sync store not initialized ({operation})")
        try:
            yield self.conn
        except duckdb.Error as e:
            logger.error(f"Sync store {operation} failed: {e}")
            raise StoreUnavailableError(f"Sync store {operation} failed: {e}") from e

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        async with self._lock:
            try:
                self.conn = duckdb.connect(str(self.db_path))
                for statement in _SCHEMA:
                    self.conn.execute(statement)
            except duckdb.Error as e:
                self.conn = None
                raise StoreUnavailableError(f"Cannot open sync store at {self.db_path}: {e}") from e
            logger.info(f"Sync store initialized ({self.db_path})")

    async def save_capsule(self, capsule: ContextCapsule) -> None:
        """Insert or replace the full capsule record."""
        payload = capsule.model_dump_json(exclude={"sync_history"})
        async with self._lock:
            with self._guard("save_capsule") as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO capsules
                        (id, user_id, source_platform, created_at, sync_status,
                         priority, is_archived, payload, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        capsule.id,
                        capsule.user_id,
                        capsule.source_platform,
                        _to_db_time(capsule.created_at),
                        capsule.sync_status.value,
                        capsule.priority.value,
                        capsule.is_archived,
                        payload,
                        _to_db_time(datetime.now(UTC)),
                    ],
                )

    async def upsert_capsule_status(self, capsule_id: str, status: SyncStatus) -> None:
        async with self._lock:
            with self._guard("upsert_capsule_status") as conn:
                conn.execute(
                    """
                    INSERT INTO capsules (id, sync_status, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT (id) DO UPDATE SET
                        sync_status = excluded.sync_status,
                        updated_at = excluded.updated_at
                    """,
                    [capsule_id, status.value, _to_db_time(datetime.now(UTC))],
                )

    async def append_sync_history(self, entry: SyncHistoryEntry) -> None:
        """Append one immutable history entry."""
        async with self._lock:
            with self._guard("append_sync_history") as conn:
                conn.execute(
                    """
                    INSERT INTO sync_history
                        (id, capsule_id, target_platform, timestamp, success, score,
                         total_sync_time_ms, payload)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        entry.id,
                        entry.capsule_id,
                        entry.target_platform,
                        _to_db_time(entry.timestamp),
                        entry.success,
                        entry.context_preservation_score,
                        entry.performance.total_sync_time_ms,
                        entry.model_dump_json(),
                    ],
                )

    async def append_performance_metrics(
        self,
        capsule_id: str,
        total_sync_time_ms: float,
        target_count: int,
        success_count: int,
        average_score: float,
        recorded_at: datetime | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        async with self._lock:
            with self._guard("append_performance_metrics") as conn:
                conn.execute(
                    """
                    INSERT INTO performance_metrics
                        (capsule_id, recorded_at, total_sync_time_ms, target_count,
                         success_count, average_score, payload)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        capsule_id,
                        _to_db_time(recorded_at or datetime.now(UTC)),
                        total_sync_time_ms,
                        target_count,
                        success_count,
                        average_score,
                        json.dumps(extra or {}),
                    ],
                )

    async def query_sync_history(
        self,
        start: datetime,
        end: datetime,
        capsule_id: str | None = None,
    ) -> list[SyncHistoryEntry]:
        """History entries with ``start <= timestamp <= end``, oldest first."""
        query = "SELECT payload FROM sync_history WHERE timestamp >= ? AND timestamp <= ?"
        params: list[Any] = [_to_db_time(start), _to_db_time(end)]
        if capsule_id is not None:
            query += " AND capsule_id = ?"
            params.append(capsule_id)
        query += " ORDER BY timestamp, id"

        async with self._lock:
            with self._guard("query_sync_history") as conn:
                rows = conn.execute(query, params).fetchall()
        return [SyncHistoryEntry.model_validate_json(row[0]) for row in rows]

    async def get_capsule_status(self, capsule_id: str) -> SyncStatus | None:
        async with self._lock:
            with self._guard("get_capsule_status") as conn:
                row = conn.execute(
                    "SELECT sync_status FROM capsules WHERE id = ?", [capsule_id]
                ).fetchone()
        return SyncStatus(row[0]) if row else None

    async def get_capsule(self, capsule_id: str) -> ContextCapsule | None:
        """Load a capsule with its current status, archive flag and full history."""
        async with self._lock:
            with self._guard("get_capsule") as conn:
                row = conn.execute(
                    "SELECT payload, sync_status, is_archived FROM capsules WHERE id = ?",
                    [capsule_id],
                ).fetchone()
                history_rows = conn.execute(
                    "SELECT payload FROM sync_history WHERE capsule_id = ? ORDER BY timestamp, id",
                    [capsule_id],
                ).fetchall()

        if row is None or row[0] is None:
            return None
        capsule = ContextCapsule.model_validate_json(row[0])
        return capsule.model_copy(
            update={
                "sync_status": SyncStatus(row[1]),
                "is_archived": bool(row[2]),
                "sync_history": [SyncHistoryEntry.model_validate_json(h[0]) for h in history_rows],
            }
        )

    async def archive_capsule(self, capsule_id: str) -> bool:
        """Soft-delete a capsule. Returns False when it does not exist."""
        async with self._lock:
            with self._guard("archive_capsule") as conn:
                row = conn.execute(
                    """
                    UPDATE capsules SET is_archived = TRUE, updated_at = ?
                    WHERE id = ?
                    RETURNING id
                    """,
                    [_to_db_time(datetime.now(UTC)), capsule_id],
                ).fetchone()
        return row is not None

    async def count_history(self) -> int:
        async with self._lock:
            with self._guard("count_history") as conn:
                row = conn.execute("SELECT COUNT(*) FROM sync_history").fetchone()
        return int(row[0]) if row else 0

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Sync store closed")
