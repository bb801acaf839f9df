"""
SQLite implementation of the durable operational store.

Tables: identity, kv, turns, action_results, inbox_messages. The agent state
lives in the kv table under ``agent_state``.
"""

import json
from typing import Any, List, Optional

import structlog

from automaton.domain.models.agent_state import (
    ActionResult, AgentState, InboxMessage, Turn, utc_now_iso
)
from automaton.domain.models.interfaces import AutomatonDatabase
from automaton.infrastructure.persistence.connection import AsyncSQLiteConnection

logger = structlog.get_logger(__name__)

AGENT_STATE_KEY = "agent_state"

SCHEMA = """
CREATE TABLE IF NOT EXISTS identity (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS turns (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT UNIQUE NOT NULL,
    timestamp TEXT NOT NULL,
    state TEXT NOT NULL,
    input TEXT,
    input_source TEXT,
    thinking TEXT NOT NULL,
    action_results TEXT NOT NULL,
    token_usage TEXT NOT NULL,
    cost_cents INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS action_results (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    turn_id TEXT NOT NULL,
    name TEXT NOT NULL,
    arguments TEXT NOT NULL,
    result TEXT NOT NULL,
    duration_ms INTEGER NOT NULL,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_action_results_turn ON action_results(turn_id);
CREATE TABLE IF NOT EXISTS inbox_messages (
    id TEXT PRIMARY KEY,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    content TEXT NOT NULL,
    signed_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    reply_to TEXT,
    received_at TEXT NOT NULL,
    processed_at TEXT
);
"""


class SQLiteDatabase(AutomatonDatabase):
    """Durable store backed by a single SQLite file"""

    def __init__(self, db_path: str):
        self.connection = AsyncSQLiteConnection(db_path)

    @classmethod
    async def create(cls, db_path: str) -> "SQLiteDatabase":
        db = cls(db_path)
        await db.init()
        return db

    async def init(self) -> None:
        self.connection.ensure_parent_dir()
        async with self.connection.acquire() as conn:
            await conn.executescript(SCHEMA)

    # Identity

    async def get_identity(self, key: str) -> Optional[str]:
        return await self._fetch_value("SELECT value FROM identity WHERE key = ?", (key,))

    async def set_identity(self, key: str, value: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO identity (key, value) VALUES (?, ?)",
                (key, value),
            )

    # Turns

    async def insert_turn(self, turn: Turn) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                """INSERT INTO turns
                   (id, timestamp, state, input, input_source, thinking,
                    action_results, token_usage, cost_cents)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    turn.id,
                    turn.timestamp,
                    turn.state,
                    turn.input,
                    turn.input_source,
                    turn.thinking,
                    json.dumps([r.to_record() for r in turn.action_results]),
                    json.dumps(turn.token_usage.to_record()),
                    turn.cost_cents,
                ),
            )

    async def get_recent_turns(self, limit: int) -> List[Turn]:
        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM turns ORDER BY seq DESC LIMIT ?",
                (limit,),
            )
        return [self._row_to_turn(row) for row in reversed(list(rows))]

    async def get_turn_by_id(self, turn_id: str) -> Optional[Turn]:
        async with self.connection.acquire() as conn:
            rows = list(await conn.execute_fetchall("SELECT * FROM turns WHERE id = ?", (turn_id,)))
        return self._row_to_turn(rows[0]) if rows else None

    async def get_turn_count(self) -> int:
        return int(await self._fetch_value("SELECT COUNT(*) FROM turns", ()) or 0)

    # Action results

    async def insert_action_result(self, turn_id: str, result: ActionResult) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                """INSERT INTO action_results
                   (id, turn_id, name, arguments, result, duration_ms, error)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    result.id,
                    turn_id,
                    result.name,
                    json.dumps(result.arguments),
                    result.result,
                    result.duration_ms,
                    result.error,
                ),
            )

    async def get_action_results_for_turn(self, turn_id: str) -> List[ActionResult]:
        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM action_results WHERE turn_id = ? ORDER BY seq ASC",
                (turn_id,),
            )
        return [
            ActionResult(
                id=row["id"],
                name=row["name"],
                arguments=json.loads(row["arguments"]),
                result=row["result"],
                duration_ms=row["duration_ms"],
                error=row["error"],
            )
            for row in rows
        ]

    # Key-value store

    async def get_kv(self, key: str) -> Optional[str]:
        return await self._fetch_value("SELECT value FROM kv WHERE key = ?", (key,))

    async def set_kv(self, key: str, value: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, utc_now_iso()),
            )

    async def delete_kv(self, key: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    # Inbox

    async def insert_inbox_message(self, message: InboxMessage) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                """INSERT OR IGNORE INTO inbox_messages
                   (id, from_address, to_address, content, signed_at, created_at, reply_to, received_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    message.id,
                    message.from_,
                    message.to,
                    message.content,
                    message.signed_at,
                    message.created_at,
                    message.reply_to,
                    utc_now_iso(),
                ),
            )

    async def get_unprocessed_inbox_messages(self, limit: int) -> List[InboxMessage]:
        async with self.connection.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM inbox_messages
                   WHERE processed_at IS NULL
                   ORDER BY received_at ASC, rowid ASC
                   LIMIT ?""",
                (limit,),
            )
        return [
            InboxMessage(
                id=row["id"],
                from_=row["from_address"],
                to=row["to_address"],
                content=row["content"],
                signed_at=row["signed_at"],
                created_at=row["created_at"],
                reply_to=row["reply_to"],
            )
            for row in rows
        ]

    async def mark_inbox_message_processed(self, message_id: str) -> None:
        async with self.connection.acquire() as conn:
            await conn.execute(
                "UPDATE inbox_messages SET processed_at = ? WHERE id = ? AND processed_at IS NULL",
                (utc_now_iso(), message_id),
            )

    # State

    async def get_agent_state(self) -> AgentState:
        value = await self.get_kv(AGENT_STATE_KEY)
        if value is None:
            return AgentState.SETUP
        try:
            return AgentState(value)
        except ValueError:
            logger.warning("Unknown agent state in store", value=value)
            return AgentState.SETUP

    async def set_agent_state(self, state: AgentState) -> None:
        await self.set_kv(AGENT_STATE_KEY, AgentState(state).value)

    async def close(self) -> None:
        # Connections are opened per operation
        pass

    async def _fetch_value(self, query: str, params: tuple) -> Optional[Any]:
        async with self.connection.acquire() as conn:
            rows = list(await conn.execute_fetchall(query, params))
        return rows[0][0] if rows else None

    @staticmethod
    def _row_to_turn(row: Any) -> Turn:
        return Turn(
            id=row["id"],
            timestamp=row["timestamp"],
            state=row["state"],
            input=row["input"],
            input_source=row["input_source"],
            thinking=row["thinking"],
            action_results=[ActionResult.model_validate(r) for r in json.loads(row["action_results"])],
            token_usage=json.loads(row["token_usage"]),
            cost_cents=row["cost_cents"],
        )
