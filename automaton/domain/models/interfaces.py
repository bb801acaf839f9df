from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from langchain_core.messages import BaseMessage

from automaton.domain.models.agent_state import (
    AgentState, ActionResult, InboxMessage, TokenUsage, Turn
)


class InferenceToolCall(BaseModel):
    """An action requested by the reasoning backend"""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class InferenceResponse(BaseModel):
    """Decision returned by the reasoning backend"""
    id: str = ""
    model: str = ""
    content: str = ""
    tool_calls: List[InferenceToolCall] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    finish_reason: str = "stop"


class ExecResult(BaseModel):
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0


class InferenceClient(ABC):
    """Reasoning backend contract"""

    @abstractmethod
    async def chat(
        self,
        messages: List[BaseMessage],
        tools: Optional[List[Dict[str, Any]]] = None
    ) -> InferenceResponse:
        pass

    @abstractmethod
    def set_low_compute_mode(self, enabled: bool) -> None:
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        pass


class SandboxClient(ABC):
    """Execution backend the actions run against"""

    @abstractmethod
    async def exec(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        pass

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        pass

    @abstractmethod
    async def read_file(self, path: str) -> str:
        pass

    @abstractmethod
    async def get_credits_balance(self) -> float:
        """Remaining compute credits in cents"""
        pass


class WalletClient(ABC):
    """Read access to the on-chain balance"""

    @abstractmethod
    async def get_usdc_balance(self, address: str) -> float:
        pass


class SocialClient(ABC):
    """Peer messaging transport"""

    @abstractmethod
    async def send(self, to: str, content: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def poll(self, cursor: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def unread_count(self) -> int:
        pass


class AutomatonDatabase(ABC):
    """Durable operational store"""

    # Identity
    @abstractmethod
    async def get_identity(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_identity(self, key: str, value: str) -> None:
        pass

    # Turns
    @abstractmethod
    async def insert_turn(self, turn: Turn) -> None:
        pass

    @abstractmethod
    async def get_recent_turns(self, limit: int) -> List[Turn]:
        """Most recent turns, oldest first"""
        pass

    @abstractmethod
    async def get_turn_by_id(self, turn_id: str) -> Optional[Turn]:
        pass

    @abstractmethod
    async def get_turn_count(self) -> int:
        pass

    # Action results
    @abstractmethod
    async def insert_action_result(self, turn_id: str, result: ActionResult) -> None:
        pass

    @abstractmethod
    async def get_action_results_for_turn(self, turn_id: str) -> List[ActionResult]:
        pass

    # Key-value store
    @abstractmethod
    async def get_kv(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_kv(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete_kv(self, key: str) -> None:
        pass

    # Inbox
    @abstractmethod
    async def insert_inbox_message(self, message: InboxMessage) -> None:
        pass

    @abstractmethod
    async def get_unprocessed_inbox_messages(self, limit: int) -> List[InboxMessage]:
        pass

    @abstractmethod
    async def mark_inbox_message_processed(self, message_id: str) -> None:
        pass

    # State
    @abstractmethod
    async def get_agent_state(self) -> AgentState:
        pass

    @abstractmethod
    async def set_agent_state(self, state: AgentState) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
