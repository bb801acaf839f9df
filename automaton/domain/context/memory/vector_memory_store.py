from typing import List, Any, Optional, Tuple
import json

import numpy as np
from pydantic import BaseModel, Field

from automaton.domain.context.memory.embedding import Embedder, cosine_similarity
from automaton.domain.models.agent_state import utc_now_iso
from automaton.infrastructure.persistence.connection import AsyncSQLiteConnection


SCHEMA = """
CREATE TABLE IF NOT EXISTS memory_sessions (
    id TEXT PRIMARY KEY,
    resource_id TEXT NOT NULL,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS memory_messages (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT UNIQUE NOT NULL,
    session_id TEXT NOT NULL,
    resource_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memory_messages_session ON memory_messages(session_id, seq);
CREATE TABLE IF NOT EXISTS memory_embeddings (
    message_id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    vector TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS working_memory (
    session_id TEXT PRIMARY KEY,
    resource_id TEXT NOT NULL,
    content TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class MemoryRecord(BaseModel):
    """A role-tagged message stored for a session"""
    id: str
    session_id: str
    resource_id: str
    role: str = Field(description="user or assistant")
    content: str
    created_at: str = Field(default_factory=utc_now_iso)
    seq: Optional[int] = None


class VectorMemoryStore:
    """SQLite-backed session message store with embedding search"""

    def __init__(self, db_path: str, embedder: Optional[Embedder] = None):
        self.connection = AsyncSQLiteConnection(db_path)
        self.embedder = embedder

    async def init(self) -> None:
        self.connection.ensure_parent_dir()
        async with self.connection.acquire() as conn:
            await conn.executescript(SCHEMA)

    async def save_session(self, session_id: str, resource_id: str, title: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                "INSERT OR IGNORE INTO memory_sessions (id, resource_id, title, created_at) VALUES (?, ?, ?, ?)",
                (session_id, resource_id, title, utc_now_iso()),
            )

    async def add_messages(self, records: List[MemoryRecord]) -> None:
        """Store records and, when an embedder is configured, their vectors"""

        if not records:
            return

        vectors: List[List[float]] = []
        if self.embedder is not None:
            vectors = await self.embedder.embed([record.content for record in records])

        async with self.connection.acquire() as conn:
            await conn.executemany(
                """INSERT OR REPLACE INTO memory_messages
                   (id, session_id, resource_id, role, content, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (r.id, r.session_id, r.resource_id, r.role, r.content, r.created_at)
                    for r in records
                ],
            )
            if vectors:
                await conn.executemany(
                    "INSERT OR REPLACE INTO memory_embeddings (message_id, session_id, vector) VALUES (?, ?, ?)",
                    [
                        (r.id, r.session_id, json.dumps(vector))
                        for r, vector in zip(records, vectors)
                    ],
                )

    async def get_recent_messages(self, session_id: str, limit: int) -> List[MemoryRecord]:
        """Latest ``limit`` messages of a session, oldest first"""

        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM memory_messages WHERE session_id = ? ORDER BY seq DESC LIMIT ?",
                (session_id, limit),
            )
        return [self._row_to_record(row) for row in reversed(list(rows))]

    async def get_session_messages(self, session_id: str) -> List[MemoryRecord]:
        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM memory_messages WHERE session_id = ? ORDER BY seq ASC",
                (session_id,),
            )
        return [self._row_to_record(row) for row in rows]

    async def search(self, query: str, session_id: str, limit: int = 5) -> List[Tuple[str, float]]:
        """Nearest messages to ``query`` within a session as (message_id, score)"""

        if self.embedder is None:
            return []

        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT message_id, vector FROM memory_embeddings WHERE session_id = ?",
                (session_id,),
            )
        rows = list(rows)
        if not rows:
            return []

        query_vector = np.array((await self.embedder.embed([query]))[0], dtype=np.float64)
        matrix = np.array([json.loads(row["vector"]) for row in rows], dtype=np.float64)
        scores = cosine_similarity(query_vector, matrix)

        ranked = sorted(
            zip((row["message_id"] for row in rows), scores.tolist()),
            key=lambda item: item[1],
            reverse=True,
        )
        return [(message_id, score) for message_id, score in ranked[:limit] if score > 0]

    async def get_working_memory(self, session_id: str) -> Optional[str]:
        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT content FROM working_memory WHERE session_id = ?",
                (session_id,),
            )
        rows = list(rows)
        return rows[0]["content"] if rows else None

    async def set_working_memory(self, session_id: str, resource_id: str, content: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                """INSERT INTO working_memory (session_id, resource_id, content, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(session_id) DO UPDATE SET content = excluded.content,
                                                         updated_at = excluded.updated_at""",
                (session_id, resource_id, content, utc_now_iso()),
            )

    @staticmethod
    def _row_to_record(row: Any) -> MemoryRecord:
        return MemoryRecord(
            id=row["id"],
            session_id=row["session_id"],
            resource_id=row["resource_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
            seq=row["seq"],
        )
