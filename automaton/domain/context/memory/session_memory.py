"""
Session memory provider.

Stores each wake cycle as its own session, recalls by recency and, when an
embedder is configured, by similarity to the pending input. Also exposes
working memory: free-text operator notes for the active session.
"""

from typing import Dict, List, Optional
import uuid

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from automaton.domain.context.memory.embedding import Embedder
from automaton.domain.context.memory.provider import MemoryProvider, WorkingMemoryProvider
from automaton.domain.context.memory.vector_memory_store import MemoryRecord, VectorMemoryStore
from automaton.domain.models.agent_state import AutomatonIdentity, Turn, utc_now_iso

logger = structlog.get_logger(__name__)

DEFAULT_LAST_MESSAGES = 40
DEFAULT_SEMANTIC_TOP_K = 5
MESSAGE_RANGE_BEFORE = 2
MESSAGE_RANGE_AFTER = 1
RECENT_TURNS_CACHE_SIZE = 20
MAX_ACTION_RESULT_CHARS = 500


class SessionMemoryProvider(MemoryProvider, WorkingMemoryProvider):
    """Session-per-wake-cycle memory with optional semantic recall"""

    name = "session"

    def __init__(
        self,
        db_path: str,
        embedder: Optional[Embedder] = None,
        last_messages: int = DEFAULT_LAST_MESSAGES,
        top_k: int = DEFAULT_SEMANTIC_TOP_K,
    ):
        self.store = VectorMemoryStore(db_path, embedder=embedder)
        self.last_messages = last_messages
        self.top_k = top_k
        self.current_session_id: Optional[str] = None
        self.resource_id = "automaton"

        # Local bookkeeping; the store has no cheap turn count
        self.turn_count = 0
        self.recent_turns_cache: List[Turn] = []

    @property
    def semantic_recall_enabled(self) -> bool:
        return self.store.embedder is not None

    async def init(self) -> None:
        await self.store.init()

    async def save_turn(self, turn: Turn) -> None:
        if not self.current_session_id:
            return

        records = self._turn_to_records(turn, self.current_session_id)
        if records:
            try:
                await self.store.add_messages(records)
            except Exception as e:
                logger.warning("Session memory write failed", turn_id=turn.id, error=str(e))

        self.turn_count += 1
        self.recent_turns_cache.append(turn)
        if len(self.recent_turns_cache) > RECENT_TURNS_CACHE_SIZE:
            self.recent_turns_cache = self.recent_turns_cache[-RECENT_TURNS_CACHE_SIZE:]

    async def recall(self, hint: Optional[str] = None) -> List[BaseMessage]:
        if not self.current_session_id:
            return []

        try:
            records = await self._recall_records(self.current_session_id, hint)
        except Exception as e:
            logger.warning("Session memory recall failed", error=str(e))
            return []

        return [self._record_to_message(record) for record in records]

    async def get_turn_count(self) -> int:
        return self.turn_count

    async def get_recent_turns(self, limit: int) -> List[Turn]:
        if limit <= 0:
            return []
        return self.recent_turns_cache[-limit:]

    async def on_wake(self, identity: AutomatonIdentity) -> None:
        if self.current_session_id:
            return
        self.resource_id = identity.address

        session_id = f"wake-{uuid.uuid4().hex}"
        try:
            await self.store.save_session(session_id, self.resource_id, f"Wake cycle {utc_now_iso()}")
        except Exception as e:
            logger.warning("Session creation failed", session_id=session_id, error=str(e))
        self.current_session_id = session_id
        logger.info("Memory session started", session_id=session_id)

    async def on_sleep(self) -> None:
        if self.current_session_id:
            logger.info("Memory session ended", session_id=self.current_session_id)
        self.current_session_id = None

    async def get_working_memory(self) -> Optional[str]:
        if not self.current_session_id:
            return None

        try:
            return await self.store.get_working_memory(self.current_session_id)
        except Exception:
            # Nothing written yet or store unavailable
            return None

    async def update_working_memory(self, content: str) -> bool:
        """Replace the notes for the active session; False when asleep"""

        if not self.current_session_id:
            return False
        await self.store.set_working_memory(self.current_session_id, self.resource_id, content)
        return True

    async def close(self) -> None:
        self.current_session_id = None

    async def _recall_records(self, session_id: str, hint: Optional[str]) -> List[MemoryRecord]:
        recent = await self.store.get_recent_messages(session_id, self.last_messages)
        if not hint or not self.semantic_recall_enabled:
            return recent

        matches = await self.store.search(hint, session_id, limit=self.top_k)
        if not matches:
            return recent

        session_messages = await self.store.get_session_messages(session_id)
        position = {record.id: index for index, record in enumerate(session_messages)}

        selected: Dict[str, MemoryRecord] = {record.id: record for record in recent}
        for message_id, _score in matches:
            index = position.get(message_id)
            if index is None:
                continue
            start = max(0, index - MESSAGE_RANGE_BEFORE)
            for record in session_messages[start:index + MESSAGE_RANGE_AFTER + 1]:
                selected.setdefault(record.id, record)

        return sorted(selected.values(), key=lambda record: position.get(record.id, -1))

    def _turn_to_records(self, turn: Turn, session_id: str) -> List[MemoryRecord]:
        records = []

        if turn.input:
            records.append(self._record(
                f"{turn.id}-input", session_id, "user",
                f"[{turn.input_source or 'system'}] {turn.input}", turn.timestamp,
            ))

        if turn.thinking:
            records.append(self._record(
                f"{turn.id}-thinking", session_id, "assistant", turn.thinking, turn.timestamp,
            ))

        for index, result in enumerate(turn.action_results):
            body = f"Error: {result.error}" if result.error else result.result[:MAX_ACTION_RESULT_CHARS]
            records.append(self._record(
                f"{turn.id}-action-{index}", session_id, "assistant",
                f"[tool:{result.name}] {body}", turn.timestamp,
            ))

        return records

    def _record(self, record_id: str, session_id: str, role: str, content: str, created_at: str) -> MemoryRecord:
        return MemoryRecord(
            id=record_id,
            session_id=session_id,
            resource_id=self.resource_id,
            role=role,
            content=content,
            created_at=created_at,
        )

    @staticmethod
    def _record_to_message(record: MemoryRecord) -> BaseMessage:
        if record.role == "user":
            return HumanMessage(content=record.content)
        return AIMessage(content=record.content)
