# Action execution gate: registry lookup, exec safety check, uniform timing
import time
import uuid
from typing import Any, Dict

import structlog

from automaton.domain.action.action_registry import ActionContext, ActionRegistry
from automaton.domain.action.action_validator import check_forbidden_command
from automaton.domain.models.agent_state import ActionResult

logger = structlog.get_logger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def execute_action(
    name: str,
    arguments: Dict[str, Any],
    registry: ActionRegistry,
    context: ActionContext,
) -> ActionResult:
    """Run one requested action and record its outcome"""

    started = time.monotonic()
    result_id = str(uuid.uuid4())

    action = registry.get_action(name)
    if action is None:
        return ActionResult(
            id=result_id,
            name=name,
            arguments=arguments,
            result="",
            duration_ms=_elapsed_ms(started),
            error=f"Unknown action: {name}",
        )

    missing = [key for key in action.parameters.get("required", []) if key not in arguments]
    if missing:
        return ActionResult(
            id=result_id,
            name=name,
            arguments=arguments,
            result="",
            duration_ms=_elapsed_ms(started),
            error=f"Missing argument: {', '.join(missing)}",
        )

    if name == "exec":
        blocked_rule = check_forbidden_command(
            str(arguments.get("command", "")),
            context.identity.sandbox_id,
        )
        if blocked_rule:
            logger.warning("Blocked forbidden command", action=name, rule=blocked_rule)
            return ActionResult(
                id=result_id,
                name=name,
                arguments=arguments,
                result=f"Blocked: {blocked_rule}",
                duration_ms=_elapsed_ms(started),
            )

    try:
        output = await action.execute(arguments, context)
        return ActionResult(
            id=result_id,
            name=name,
            arguments=arguments,
            result=output,
            duration_ms=_elapsed_ms(started),
        )
    except Exception as e:
        logger.warning("Action failed", action=name, error=str(e))
        return ActionResult(
            id=result_id,
            name=name,
            arguments=arguments,
            result="",
            duration_ms=_elapsed_ms(started),
            error=str(e) or e.__class__.__name__,
        )
