from typing import Dict, List, Any, Optional, Callable, Awaitable
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel, ConfigDict, Field

from automaton.config import AutomatonConfig
from automaton.domain.models.agent_state import AutomatonIdentity
from automaton.domain.models.interfaces import (
    AutomatonDatabase, InferenceClient, SandboxClient, SocialClient
)
from automaton.domain.survival.classifier import format_credits


class ActionContext(BaseModel):
    """Everything an action may touch while it runs"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    identity: AutomatonIdentity
    config: AutomatonConfig
    db: AutomatonDatabase
    sandbox: SandboxClient
    inference: InferenceClient
    social: Optional[SocialClient] = None


ActionHandler = Callable[[Dict[str, Any], ActionContext], Awaitable[str]]


class Action(BaseModel):
    """A named capability the reasoning backend can request"""
    name: str = Field(description="Name the reasoning backend uses to request the action")
    description: str
    category: str = "general"
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    dangerous: bool = False
    execute: ActionHandler = Field(exclude=True)


class ActionRegistry:
    """Registry for the actions available to the agent loop"""

    def __init__(self):
        self.actions: Dict[str, Action] = {}

    def register_action(self, action: Action):
        """Register a new action"""

        self.actions[action.name] = action

    def get_action(self, name: str) -> Optional[Action]:
        return self.actions.get(name)

    def get_available_actions(self) -> List[Action]:
        return list(self.actions.values())


async def _exec(args: Dict[str, Any], context: ActionContext) -> str:
    command = str(args.get("command", ""))
    timeout = args.get("timeout", 30)
    result = await context.sandbox.exec(command, timeout)

    lines = [f"exit_code: {result.exit_code}", f"stdout: {result.stdout.strip()}"]
    if result.stderr:
        lines.append(f"stderr: {result.stderr.strip()}")
    return "\n".join(lines)


async def _read_file(args: Dict[str, Any], context: ActionContext) -> str:
    return await context.sandbox.read_file(str(args["path"]))


async def _write_file(args: Dict[str, Any], context: ActionContext) -> str:
    path = str(args["path"])
    content = str(args.get("content", ""))
    await context.sandbox.write_file(path, content)
    return f"Wrote {len(content)} bytes to {path}"


async def _check_credits(args: Dict[str, Any], context: ActionContext) -> str:
    balance = await context.sandbox.get_credits_balance()
    return f"Credit balance: {format_credits(balance)} ({balance} cents)"


async def _system_synopsis(args: Dict[str, Any], context: ActionContext) -> str:
    state = await context.db.get_agent_state()
    turn_count = await context.db.get_turn_count()
    return "\n".join([
        f"Name: {context.identity.name}",
        f"Address: {context.identity.address}",
        f"Sandbox: {context.identity.sandbox_id}",
        f"State: {state.value}",
        f"Turns: {turn_count}",
        f"Model: {context.inference.get_default_model()}",
        f"Version: {context.config.version}",
    ])


async def _sleep(args: Dict[str, Any], context: ActionContext) -> str:
    duration = int(args.get("duration_seconds", 60))
    reason = str(args.get("reason", "No reason given"))
    wake_at = datetime.now(timezone.utc) + timedelta(seconds=duration)

    await context.db.set_kv("sleep_until", wake_at.isoformat())
    await context.db.set_kv("sleep_reason", reason)
    return f"Entering sleep mode for {duration}s. Reason: {reason}. Will wake at {wake_at.isoformat()}"


async def _send_message(args: Dict[str, Any], context: ActionContext) -> str:
    if context.social is None:
        raise RuntimeError("Social relay not configured")

    sent = await context.social.send(
        str(args["to_address"]),
        str(args["content"]),
        args.get("reply_to"),
    )
    return f"Message sent (id: {sent.get('id', 'unknown')})"


def create_builtin_actions(sandbox_id: str) -> ActionRegistry:
    """Build the fixed action registry for an automaton living in ``sandbox_id``"""

    registry = ActionRegistry()

    builtin_actions = [
        Action(
            name="exec",
            description=f"Execute a shell command in your sandbox ({sandbox_id}). Returns stdout, stderr and exit code.",
            category="vm",
            parameters={
                "type": "object",
                "properties": {
                    "command": {"type": "string", "description": "The shell command to execute"},
                    "timeout": {"type": "number", "description": "Timeout in seconds (default: 30)"},
                },
                "required": ["command"],
            },
            execute=_exec,
        ),
        Action(
            name="read_file",
            description="Read a file from your sandbox.",
            category="vm",
            parameters={
                "type": "object",
                "properties": {"path": {"type": "string", "description": "File path to read"}},
                "required": ["path"],
            },
            execute=_read_file,
        ),
        Action(
            name="write_file",
            description="Write content to a file in your sandbox.",
            category="vm",
            dangerous=True,
            parameters={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "File path"},
                    "content": {"type": "string", "description": "File content"},
                },
                "required": ["path", "content"],
            },
            execute=_write_file,
        ),
        Action(
            name="check_credits",
            description="Check your current compute credit balance.",
            category="financial",
            execute=_check_credits,
        ),
        Action(
            name="system_synopsis",
            description="Get a summary of your identity, state and activity.",
            category="survival",
            execute=_system_synopsis,
        ),
        Action(
            name="sleep",
            description="Enter sleep mode for a duration. The heartbeat can still wake you.",
            category="survival",
            parameters={
                "type": "object",
                "properties": {
                    "duration_seconds": {"type": "number", "description": "How long to sleep in seconds"},
                    "reason": {"type": "string", "description": "Why you are sleeping"},
                },
                "required": ["duration_seconds"],
            },
            execute=_sleep,
        ),
        Action(
            name="send_message",
            description="Send a message to another agent through the social relay.",
            category="conway",
            parameters={
                "type": "object",
                "properties": {
                    "to_address": {"type": "string", "description": "Recipient wallet address"},
                    "content": {"type": "string", "description": "Message content"},
                    "reply_to": {"type": "string", "description": "Optional id of the message being answered"},
                },
                "required": ["to_address", "content"],
            },
            execute=_send_message,
        ),
    ]

    for action in builtin_actions:
        registry.register_action(action)

    return registry


def actions_to_inference_format(registry: ActionRegistry) -> List[Dict[str, Any]]:
    """Render the action catalog as function definitions for the reasoning backend"""

    return [
        {
            "type": "function",
            "function": {
                "name": action.name,
                "description": action.description,
                "parameters": action.parameters,
            },
        }
        for action in registry.get_available_actions()
    ]
