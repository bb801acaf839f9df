"""
Reasoning backend adapter over LangChain chat models.
"""

from typing import Any, Dict, List, Optional
import uuid

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage

from automaton.domain.models.agent_state import TokenUsage
from automaton.domain.models.interfaces import (
    InferenceClient, InferenceResponse, InferenceToolCall
)
from automaton.errors import InferenceError

logger = structlog.get_logger(__name__)

# Provider-specific stop reasons -> OpenAI-style finish reasons
FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
    "max_tokens": "length",
    "STOP": "stop",
    "MAX_TOKENS": "length",
}


def _message_text(message: AIMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    parts = []
    for part in message.content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "\n".join(parts)


def _finish_reason(message: AIMessage) -> str:
    metadata = message.response_metadata or {}
    raw = metadata.get("finish_reason") or metadata.get("stop_reason")
    if raw is None:
        return "tool_calls" if message.tool_calls else "stop"
    return FINISH_REASONS.get(raw, raw)


def response_from_message(message: AIMessage, model: str) -> InferenceResponse:
    """Translate a LangChain reply into the loop's decision shape"""

    tool_calls = [
        InferenceToolCall(
            id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=call["name"],
            arguments=call.get("args") or {},
        )
        for call in message.tool_calls
    ]
    # Unparseable arguments still reach the gate, with empty arguments
    for call in message.invalid_tool_calls:
        logger.warning("Invalid tool call arguments", name=call.get("name"), error=call.get("error"))
        tool_calls.append(InferenceToolCall(
            id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=call.get("name") or "unknown",
            arguments={},
        ))

    usage = message.usage_metadata or {}
    return InferenceResponse(
        id=message.id or "",
        model=model,
        content=_message_text(message),
        tool_calls=tool_calls,
        usage=TokenUsage(
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
        ),
        finish_reason=_finish_reason(message),
    )


class ChatModelInferenceClient(InferenceClient):
    """Wraps a chat model; low-compute mode switches to a cheaper one"""

    def __init__(
        self,
        model: BaseChatModel,
        model_name: str,
        low_compute_model: Optional[BaseChatModel] = None,
        low_compute_model_name: Optional[str] = None,
    ):
        self.model = model
        self.model_name = model_name
        self.low_compute_model = low_compute_model
        self.low_compute_model_name = low_compute_model_name or model_name
        self.low_compute_mode = False

    def set_low_compute_mode(self, enabled: bool) -> None:
        if enabled != self.low_compute_mode:
            logger.info("Low compute mode changed", enabled=enabled)
        self.low_compute_mode = enabled

    def get_default_model(self) -> str:
        if self.low_compute_mode and self.low_compute_model is not None:
            return self.low_compute_model_name
        return self.model_name

    async def chat(
        self,
        messages: List[BaseMessage],
        tools: Optional[List[Dict[str, Any]]] = None
    ) -> InferenceResponse:
        chat_model = self.model
        if self.low_compute_mode and self.low_compute_model is not None:
            chat_model = self.low_compute_model

        runnable = chat_model.bind_tools(tools) if tools else chat_model
        try:
            reply = await runnable.ainvoke(messages)
        except Exception as e:
            raise InferenceError(f"Chat request failed: {e}") from e

        if not isinstance(reply, AIMessage):
            raise InferenceError(f"Unexpected reply type: {type(reply).__name__}")
        return response_from_message(reply, self.get_default_model())
