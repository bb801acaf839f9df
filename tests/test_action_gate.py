"""Unit tests for the action execution gate."""

from datetime import datetime, timezone

from automaton.domain.action import (
    actions_to_inference_format, check_forbidden_command, create_builtin_actions, execute_action
)
from tests.conftest import FakeSocial


class TestCheckForbiddenCommand:
    def test_self_destruction_is_blocked(self):
        assert check_forbidden_command("rm -rf ~/.automaton") is not None
        assert check_forbidden_command("rm state.db") is not None
        assert check_forbidden_command("rm -f /root/.automaton/wallet.json") is not None

    def test_killing_the_process_is_blocked(self):
        assert check_forbidden_command("pkill -f automaton") is not None
        assert check_forbidden_command("systemctl stop automaton") is not None

    def test_database_destruction_is_blocked(self):
        assert check_forbidden_command('sqlite3 state.db "DROP TABLE turns"') is not None
        assert check_forbidden_command('sqlite3 x.db "delete from turns"') is not None

    def test_own_sandbox_deletion_is_blocked(self):
        rule = check_forbidden_command("conway sandbox delete sbx-123", "sbx-123")
        assert rule is not None
        assert "sandbox" in rule

    def test_other_sandbox_is_allowed(self):
        assert check_forbidden_command("conway sandbox delete sbx-999", "sbx-123") is None

    def test_harmless_commands_pass(self):
        assert check_forbidden_command("echo hi") is None
        assert check_forbidden_command("ls -la /tmp") is None
        assert check_forbidden_command("cat README.md") is None


class TestExecuteAction:
    async def test_blocked_command_never_reaches_sandbox(self, action_context, sandbox):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("exec", {"command": "rm -rf ~/.automaton"}, registry, action_context)

        assert result.result.startswith("Blocked: ")
        assert result.error is None
        assert sandbox.exec_calls == []

    async def test_exec_runs_allowed_command(self, action_context, sandbox):
        sandbox.stdout = "hi\n"
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("exec", {"command": "echo hi"}, registry, action_context)

        assert result.name == "exec"
        assert result.error is None
        assert "hi" in result.result
        assert "exit_code: 0" in result.result
        assert result.duration_ms >= 0
        assert sandbox.exec_calls == ["echo hi"]

    async def test_unknown_action_is_an_error_result(self, action_context):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("teleport", {}, registry, action_context)

        assert result.error == "Unknown action: teleport"
        assert result.name == "teleport"

    async def test_action_exception_becomes_error_field(self, action_context):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("read_file", {"path": "missing.txt"}, registry, action_context)

        assert result.error is not None
        assert result.result == ""

    async def test_missing_required_argument_is_named(self, action_context):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("read_file", {}, registry, action_context)

        assert result.error == "Missing argument: path"
        assert result.result == ""

    async def test_missing_argument_checked_before_relay(self, action_context):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("send_message", {"to_address": "0x1"}, registry, action_context)

        assert result.error == "Missing argument: content"

    async def test_exec_without_command_never_reaches_sandbox(self, action_context, sandbox):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("exec", {}, registry, action_context)

        assert result.error == "Missing argument: command"
        assert sandbox.exec_calls == []

    async def test_send_message_without_relay_fails(self, action_context):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("send_message", {"to_address": "0x1", "content": "hi"}, registry, action_context)

        assert result.error == "Social relay not configured"

    async def test_send_message_uses_social_client(self, action_context):
        social = FakeSocial()
        context = action_context.model_copy(update={"social": social})
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("send_message", {"to_address": "0x1", "content": "hi"}, registry, context)

        assert result.error is None
        assert "msg-1" in result.result
        assert social.sent == [{"to": "0x1", "content": "hi", "reply_to": None}]

    async def test_sleep_records_wake_time(self, action_context, db):
        registry = create_builtin_actions("sbx-123")

        result = await execute_action("sleep", {"duration_seconds": 120, "reason": "idle"}, registry, action_context)

        assert result.error is None
        sleep_until = datetime.fromisoformat(await db.get_kv("sleep_until"))
        assert sleep_until > datetime.now(timezone.utc)
        assert await db.get_kv("sleep_reason") == "idle"

    async def test_write_then_read_file(self, action_context, sandbox):
        registry = create_builtin_actions("sbx-123")

        await execute_action("write_file", {"path": "notes.txt", "content": "plan"}, registry, action_context)
        result = await execute_action("read_file", {"path": "notes.txt"}, registry, action_context)

        assert result.result == "plan"


class TestInferenceFormat:
    def test_renders_function_definitions(self):
        registry = create_builtin_actions("sbx-123")

        tools = actions_to_inference_format(registry)

        assert len(tools) == len(registry.get_available_actions())
        exec_tool = next(t for t in tools if t["function"]["name"] == "exec")
        assert exec_tool["type"] == "function"
        assert exec_tool["function"]["parameters"]["required"] == ["command"]
        assert "sbx-123" in exec_tool["function"]["description"]
