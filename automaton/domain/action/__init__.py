from .action_registry import (
    Action, ActionContext, ActionRegistry, actions_to_inference_format, create_builtin_actions
)
from .action_executor import execute_action
from .action_validator import FORBIDDEN_COMMAND_PATTERNS, check_forbidden_command

__all__ = [
    "Action",
    "ActionContext",
    "ActionRegistry",
    "FORBIDDEN_COMMAND_PATTERNS",
    "actions_to_inference_format",
    "check_forbidden_command",
    "create_builtin_actions",
    "execute_action",
]
