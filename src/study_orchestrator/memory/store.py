"""SQLite persistence for memory records and provider usage counters.

Uses aiosqlite with WAL mode. Embeddings are stored as little-endian
float32 BLOBs and may be attached after the record is appended.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from loguru import logger

from ..exceptions import StorageError
from .embedding import deserialize_embedding, serialize_embedding
from .models import (
    MemoryPriority,
    MemoryRecord,
    MemoryScope,
    RetentionClass,
)

_RECORD_COLUMNS = (
    "id, user_id, scope, conversation_id, content, embedding, priority, "
    "retention, tags, created_at, expires_at"
)


def _to_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SQLiteMemoryStore:
    """Memory store partitioned by scope.

    ``append`` never waits for an embedding. Universal records without a
    vector are invisible to :meth:`query_universal_candidates` until one is
    attached.
    """

    def __init__(self, db_path: str = "./data/memory.db"):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    @property
    def initialized(self) -> bool:
        return self._db is not None

    async def initialize(self) -> None:
        """Open the connection and create tables and indexes if missing."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._create_tables()
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open memory store: {e}", self.db_path) from e
        logger.info(f"Memory store initialized: {self.db_path}")

    async def _create_tables(self) -> None:
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                scope TEXT NOT NULL CHECK (scope IN ('session', 'universal')),
                conversation_id TEXT,
                content TEXT NOT NULL,
                embedding BLOB,
                priority TEXT NOT NULL,
                retention TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                expires_at TEXT
            )
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memories_session
            ON memories(conversation_id, created_at)
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memories_user_scope
            ON memories(user_id, scope)
        """)
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memories_expiry
            ON memories(expires_at)
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS provider_usage (
                provider TEXT PRIMARY KEY,
                day_key TEXT NOT NULL,
                requests_today INTEGER NOT NULL DEFAULT 0,
                month_key TEXT NOT NULL,
                requests_this_month INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            )
        """)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Memory store connection closed")

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._db

    @staticmethod
    def _row_to_record(row: tuple) -> MemoryRecord:
        return MemoryRecord(
            id=row[0],
            user_id=row[1],
            scope=MemoryScope(row[2]),
            conversation_id=row[3],
            content=row[4],
            embedding=deserialize_embedding(row[5]) if row[5] else None,
            priority=MemoryPriority(row[6]),
            retention=RetentionClass(row[7]),
            tags=json.loads(row[8] or "[]"),
            created_at=_from_iso(row[9]),
            expires_at=_from_iso(row[10]),
        )

    # ------------------------------------------------------------------
    # Memory records
    # ------------------------------------------------------------------

    async def append(self, record: MemoryRecord) -> str:
        """Insert a record. Returns its id."""
        db = self._conn()
        await db.execute(
            f"INSERT INTO memories ({_RECORD_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.user_id,
                record.scope.value,
                record.conversation_id,
                record.content,
                serialize_embedding(record.embedding) if record.embedding else None,
                record.priority.value,
                record.retention.value,
                json.dumps(record.tags),
                _to_iso(record.created_at),
                _to_iso(record.expires_at),
            ),
        )
        await db.commit()
        logger.debug(f"Memory appended: {record.id} ({record.scope.value})")
        return record.id

    async def attach_embedding(self, record_id: str, embedding: list[float]) -> bool:
        db = self._conn()
        cursor = await db.execute(
            "UPDATE memories SET embedding = ? WHERE id = ?",
            (serialize_embedding(embedding), record_id),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def get(self, record_id: str) -> MemoryRecord | None:
        db = self._conn()
        async with db.execute(
            f"SELECT {_RECORD_COLUMNS} FROM memories WHERE id = ?", (record_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def query_by_session(
        self,
        conversation_id: str,
        limit: int = 5,
        user_id: str | None = None,
    ) -> list[MemoryRecord]:
        """Session records of one conversation, newest first."""
        db = self._conn()
        query = (
            f"SELECT {_RECORD_COLUMNS} FROM memories "
            "WHERE scope = 'session' AND conversation_id = ?"
        )
        params: list[Any] = [conversation_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def query_universal_candidates(self, user_id: str) -> list[MemoryRecord]:
        """Every universal record of ``user_id`` that carries an embedding."""
        db = self._conn()
        async with db.execute(
            f"SELECT {_RECORD_COLUMNS} FROM memories "
            "WHERE scope = 'universal' AND user_id = ? AND embedding IS NOT NULL",
            (user_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def get_missing_embeddings(self, limit: int = 32) -> list[MemoryRecord]:
        """Universal records still waiting for a vector, oldest first."""
        db = self._conn()
        async with db.execute(
            f"SELECT {_RECORD_COLUMNS} FROM memories "
            "WHERE scope = 'universal' AND embedding IS NULL "
            "ORDER BY created_at ASC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete non-permanent records whose expiry has passed."""
        db = self._conn()
        cursor = await db.execute(
            "DELETE FROM memories "
            "WHERE retention != 'permanent' "
            "AND expires_at IS NOT NULL AND expires_at < ?",
            (_to_iso(now or datetime.now(timezone.utc)),),
        )
        await db.commit()
        deleted = cursor.rowcount
        if deleted:
            logger.info(f"Expired {deleted} memories")
        return deleted

    async def delete_user_memories(self, user_id: str) -> int:
        db = self._conn()
        cursor = await db.execute("DELETE FROM memories WHERE user_id = ?", (user_id,))
        await db.commit()
        return cursor.rowcount

    async def count(
        self, user_id: str | None = None, scope: MemoryScope | None = None
    ) -> int:
        db = self._conn()
        query = "SELECT COUNT(*) FROM memories WHERE 1=1"
        params: list[Any] = []
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        if scope is not None:
            query += " AND scope = ?"
            params.append(scope.value)
        async with db.execute(query, params) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    # ------------------------------------------------------------------
    # Provider usage
    # ------------------------------------------------------------------

    async def save_provider_usage(self, row: dict[str, Any]) -> None:
        db = self._conn()
        await db.execute(
            """
            INSERT INTO provider_usage (
                provider, day_key, requests_today,
                month_key, requests_this_month, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(provider) DO UPDATE SET
                day_key = excluded.day_key,
                requests_today = excluded.requests_today,
                month_key = excluded.month_key,
                requests_this_month = excluded.requests_this_month,
                updated_at = excluded.updated_at
            """,
            (
                row["provider"],
                row["day_key"],
                row["requests_today"],
                row["month_key"],
                row["requests_this_month"],
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        await db.commit()

    async def load_provider_usage(self) -> list[dict[str, Any]]:
        db = self._conn()
        async with db.execute(
            "SELECT provider, day_key, requests_today, month_key, requests_this_month "
            "FROM provider_usage"
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            {
                "provider": row[0],
                "day_key": row[1],
                "requests_today": row[2],
                "month_key": row[3],
                "requests_this_month": row[4],
            }
            for row in rows
        ]
