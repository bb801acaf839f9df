"""
Pytest configuration and shared fakes
"""

from typing import Any, Dict, List, Optional

import pytest

from automaton.config import AutomatonConfig
from automaton.domain.action.action_registry import ActionContext
from automaton.domain.models.agent_state import AutomatonIdentity
from automaton.domain.models.interfaces import (
    ExecResult, InferenceClient, InferenceResponse, InferenceToolCall,
    SandboxClient, SocialClient
)
from automaton.infrastructure.persistence.database import SQLiteDatabase


def tool_call(name: str, call_id: str = "call_1", **arguments) -> InferenceToolCall:
    return InferenceToolCall(id=call_id, name=name, arguments=arguments)


def reply(content: str = "", tool_calls: Optional[List[InferenceToolCall]] = None, finish_reason: str = "stop") -> InferenceResponse:
    tool_calls = tool_calls or []
    return InferenceResponse(
        id="resp",
        model="gpt-4o",
        content=content,
        tool_calls=tool_calls,
        finish_reason="tool_calls" if tool_calls else finish_reason,
    )


class FakeInferenceClient(InferenceClient):
    """Returns scripted responses; an Exception in the script is raised instead"""

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.low_compute_mode = False
        self.low_compute_history: List[bool] = []

    async def chat(self, messages, tools=None) -> InferenceResponse:
        self.calls.append({"messages": messages, "tools": tools})
        if not self.responses:
            return reply("Nothing left to do.")
        next_response = self.responses.pop(0)
        if isinstance(next_response, Exception):
            raise next_response
        return next_response

    def set_low_compute_mode(self, enabled: bool) -> None:
        self.low_compute_mode = enabled
        self.low_compute_history.append(enabled)

    def get_default_model(self) -> str:
        return "gpt-4o-mini" if self.low_compute_mode else "gpt-4o"


class FakeSandbox(SandboxClient):
    """Records exec calls and serves files from a dict"""

    def __init__(self, credits_cents: float = 10_000, stdout: str = "ok"):
        self.credits_cents = credits_cents
        self.stdout = stdout
        self.exec_calls: List[str] = []
        self.files: Dict[str, str] = {}

    async def exec(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        self.exec_calls.append(command)
        return ExecResult(stdout=self.stdout, stderr="", exit_code=0)

    async def write_file(self, path: str, content: str) -> None:
        self.files[path] = content

    async def read_file(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def get_credits_balance(self) -> float:
        return self.credits_cents


class FakeSocial(SocialClient):
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def send(self, to: str, content: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        self.sent.append({"to": to, "content": content, "reply_to": reply_to})
        return {"id": f"msg-{len(self.sent)}"}

    async def poll(self, cursor: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        return {"messages": [], "next_cursor": None}

    async def unread_count(self) -> int:
        return 0


@pytest.fixture
def identity() -> AutomatonIdentity:
    return AutomatonIdentity(
        name="test-automaton",
        address="0xabc",
        creator_address="0xcreator",
        sandbox_id="sbx-123",
    )


@pytest.fixture
def config(tmp_path) -> AutomatonConfig:
    return AutomatonConfig(
        name="test-automaton",
        genesis_prompt="Build something useful.",
        creator_message="Hello from your creator.",
        creator_address="0xcreator",
        sandbox_id="sbx-123",
        db_path=str(tmp_path / "state.db"),
        memory_db_path=str(tmp_path / "memory.db"),
    )


@pytest.fixture
async def db(tmp_path) -> SQLiteDatabase:
    return await SQLiteDatabase.create(str(tmp_path / "state.db"))


@pytest.fixture
def sandbox() -> FakeSandbox:
    return FakeSandbox()


@pytest.fixture
def inference() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def action_context(identity, config, db, sandbox, inference) -> ActionContext:
    return ActionContext(
        identity=identity,
        config=config,
        db=db,
        sandbox=sandbox,
        inference=inference,
    )
