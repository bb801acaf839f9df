from typing import List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage

from automaton.domain.context.memory.provider import MemoryProvider
from automaton.domain.models.agent_state import AutomatonIdentity, Turn
from automaton.domain.models.interfaces import AutomatonDatabase

MAX_CONTEXT_TURNS = 20


def trim_context(turns: List[Turn], max_turns: int = MAX_CONTEXT_TURNS) -> List[Turn]:
    """Keep only the most recent turns"""
    if len(turns) <= max_turns:
        return turns
    return turns[-max_turns:]


def build_context_messages(turns: List[Turn]) -> List[BaseMessage]:
    """Rebuild the conversation history from persisted turns"""

    messages: List[BaseMessage] = []

    for turn in turns:
        if turn.input:
            messages.append(HumanMessage(content=f"[{turn.input_source or 'system'}] {turn.input}"))

        if not turn.thinking:
            continue

        messages.append(AIMessage(
            content=turn.thinking,
            tool_calls=[
                {"id": result.id, "name": result.name, "args": result.arguments, "type": "tool_call"}
                for result in turn.action_results
            ],
        ))

        for result in turn.action_results:
            messages.append(ToolMessage(
                content=f"Error: {result.error}" if result.error else result.result,
                tool_call_id=result.id,
            ))

    return messages


class LegacyMemoryProvider(MemoryProvider):
    """Pass-through provider reading straight from the durable turn log"""

    name = "legacy"

    def __init__(self, db: AutomatonDatabase):
        self.db = db
        self._awake = False

    async def init(self) -> None:
        # Tables are owned by the durable store
        pass

    async def save_turn(self, turn: Turn) -> None:
        # The agent loop already wrote the turn to the durable store
        pass

    async def recall(self, hint: Optional[str] = None) -> List[BaseMessage]:
        if not self._awake:
            return []
        recent_turns = trim_context(await self.db.get_recent_turns(MAX_CONTEXT_TURNS))
        return build_context_messages(recent_turns)

    async def get_turn_count(self) -> int:
        return await self.db.get_turn_count()

    async def get_recent_turns(self, limit: int) -> List[Turn]:
        return await self.db.get_recent_turns(limit)

    async def on_wake(self, identity: AutomatonIdentity) -> None:
        self._awake = True

    async def on_sleep(self) -> None:
        self._awake = False

    async def close(self) -> None:
        # Database lifecycle is owned by the caller
        self._awake = False
