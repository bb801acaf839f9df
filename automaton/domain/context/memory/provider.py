from abc import ABC, abstractmethod
from typing import List, Optional

from langchain_core.messages import BaseMessage

from automaton.domain.models.agent_state import AutomatonIdentity, Turn


class MemoryProvider(ABC):
    """
    Conversation memory backend used by the agent loop.

    The loop talks to memory only through this interface, so backends can be
    swapped by name (see ``registry.create_memory_provider``).
    """

    name: str = ""

    @abstractmethod
    async def init(self) -> None:
        """Create tables, connections, etc."""
        pass

    @abstractmethod
    async def save_turn(self, turn: Turn) -> None:
        """
        Persist a completed turn.

        Must not fail on a turn with no input, no thinking and no actions.
        """
        pass

    @abstractmethod
    async def recall(self, hint: Optional[str] = None) -> List[BaseMessage]:
        """
        Context messages for the next reasoning call, oldest first.

        Never includes the system section. ``hint`` is text the provider may
        use for similarity search, usually the pending input.
        """
        pass

    @abstractmethod
    async def get_turn_count(self) -> int:
        pass

    @abstractmethod
    async def get_recent_turns(self, limit: int) -> List[Turn]:
        """Recent turns in raw form, for status display and the wake-up prompt"""
        pass

    @abstractmethod
    async def on_wake(self, identity: AutomatonIdentity) -> None:
        """A wake cycle is starting. Must be idempotent while already awake."""
        pass

    @abstractmethod
    async def on_sleep(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class WorkingMemoryProvider(ABC):
    """Optional extension: free-text notes injected into the system prompt"""

    @abstractmethod
    async def get_working_memory(self) -> Optional[str]:
        pass


def has_working_memory(provider: MemoryProvider) -> bool:
    return isinstance(provider, WorkingMemoryProvider)
