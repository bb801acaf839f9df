from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()


def parse_iso_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp as UTC-aware; accepts a trailing ``Z``"""
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class AgentState(str, Enum):
    """What the automaton is doing right now"""
    SETUP = "setup"
    WAKING = "waking"
    RUNNING = "running"
    SLEEPING = "sleeping"
    LOW_COMPUTE = "low_compute"
    CRITICAL = "critical"
    DEAD = "dead"


class SurvivalTier(str, Enum):
    """Coarse classification of the remaining compute budget"""
    NORMAL = "normal"
    LOW_COMPUTE = "low_compute"
    CRITICAL = "critical"
    DEAD = "dead"


class InputSource(str, Enum):
    """Provenance of a turn's input"""
    HEARTBEAT = "heartbeat"
    CREATOR = "creator"
    AGENT = "agent"
    SYSTEM = "system"
    WAKEUP = "wakeup"


class RecordModel(BaseModel):
    """Base for records persisted with camelCase keys"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AutomatonIdentity(RecordModel):
    """Stable identity of the running automaton"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    name: str = Field(description="Automaton name")
    address: str = Field(description="Wallet address")
    creator_address: str = Field(description="Address of the creator")
    sandbox_id: str = Field(description="Sandbox the automaton runs in")
    api_key: str = Field(default="", repr=False)
    created_at: str = Field(default_factory=utc_now_iso)


class TokenUsage(RecordModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ActionResult(RecordModel):
    """Outcome of one executed action request"""
    id: str = Field(description="Identifier of the originating action request")
    name: str = Field(description="Action name")
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: str = Field(default="", description="Result text, diagnostic only when error is set")
    duration_ms: int = Field(default=0)
    error: Optional[str] = Field(None, description="Error message if the action failed")


class Turn(RecordModel):
    """One completed think -> act -> persist cycle"""
    id: str = Field(description="Unique turn identifier")
    timestamp: str = Field(default_factory=utc_now_iso)
    state: AgentState
    input: Optional[str] = None
    input_source: Optional[InputSource] = None
    thinking: str = ""
    action_results: List[ActionResult] = Field(default_factory=list)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_cents: int = 0


class FinancialState(RecordModel):
    """Latest budget snapshot, recomputed every cycle"""
    credits_cents: float = 0
    usdc_balance: float = 0
    last_checked: str = Field(default_factory=utc_now_iso)


class InboxMessage(RecordModel):
    """Message received from a peer agent"""
    id: str
    from_: str = Field(alias="from")
    to: str
    content: str
    signed_at: str = Field(default_factory=utc_now_iso)
    created_at: str = Field(default_factory=utc_now_iso)
    reply_to: Optional[str] = None


class PendingInput(BaseModel):
    """Input waiting to be folded into the next prompt"""
    content: str
    source: InputSource

    def render(self) -> str:
        return f"[{self.source.value}] {self.content}"


class Skill(BaseModel):
    """Instruction bundle injected into the system prompt"""
    name: str
    description: str = ""
    instructions: str = ""
    auto_activate: bool = True
    enabled: bool = True
