"""Tests for the agent loop driven by scripted reasoning responses."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

from langchain_core.messages import HumanMessage, SystemMessage

from automaton.domain.context.memory.legacy_memory import LegacyMemoryProvider
from automaton.domain.models.agent_state import AgentState, InboxMessage, TokenUsage
from automaton.domain.orchestration.core.agent_loop import (
    MAX_ACTIONS_PER_TURN, estimate_cost_cents, run_agent_loop
)
from tests.conftest import FakeInferenceClient, FakeSandbox, reply, tool_call


def _parse(timestamp: str) -> datetime:
    return datetime.fromisoformat(timestamp)


async def _run(identity, config, db, sandbox, inference, memory=None, **kwargs):
    memory = memory or LegacyMemoryProvider(db)
    await run_agent_loop(
        identity=identity,
        config=config,
        db=db,
        sandbox=sandbox,
        inference=inference,
        memory=memory,
        **kwargs,
    )


class TestAgentLoop:
    async def test_exec_turn_is_persisted(self, identity, config, db, sandbox):
        sandbox.stdout = "hi"
        inference = FakeInferenceClient([
            reply("Saying hi", [tool_call("exec", "call_exec", command="echo hi")]),
            reply("Done for now."),
        ])

        await _run(identity, config, db, sandbox, inference)

        turns = await db.get_recent_turns(10)
        assert len(turns) == 2
        first = turns[0]
        assert first.input_source == "wakeup"
        assert first.action_results[0].id == "call_exec"
        assert first.action_results[0].name == "exec"
        assert "hi" in first.action_results[0].result

        stored = await db.get_action_results_for_turn(first.id)
        assert [r.id for r in stored] == ["call_exec"]
        assert sandbox.exec_calls == ["echo hi"]

    async def test_first_prompt_carries_wakeup_input(self, identity, config, db, sandbox, inference):
        await _run(identity, config, db, sandbox, inference)

        messages = inference.calls[0]["messages"]
        assert isinstance(messages[0], SystemMessage)
        assert "Hello from your creator." in messages[0].content
        assert isinstance(messages[-1], HumanMessage)
        assert messages[-1].content.startswith("[wakeup] You have just been created.")
        assert inference.calls[0]["tools"]

    async def test_forbidden_command_is_blocked(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([
            reply("", [tool_call("exec", command="rm -rf ~/.automaton")]),
            reply("ok"),
        ])

        await _run(identity, config, db, sandbox, inference)

        turn = (await db.get_recent_turns(10))[0]
        assert turn.action_results[0].result.startswith("Blocked: ")
        assert turn.action_results[0].error is None
        assert sandbox.exec_calls == []

    async def test_low_credits_enable_low_compute_mode(self, identity, config, db):
        inference = FakeInferenceClient()
        states = []

        await _run(identity, config, db, FakeSandbox(credits_cents=30), inference, on_state_change=states.append)

        assert inference.low_compute_history == [True]
        assert AgentState.LOW_COMPUTE in states
        turn = (await db.get_recent_turns(1))[0]
        assert turn.state == "low_compute"

    async def test_sleep_action_ends_invocation(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([
            reply("Resting", [tool_call("sleep", duration_seconds=600, reason="nothing to do")]),
            reply("should never be requested"),
        ])

        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 1
        assert await db.get_agent_state() == AgentState.SLEEPING
        sleep_until = _parse(await db.get_kv("sleep_until"))
        assert (sleep_until - datetime.now(timezone.utc)).total_seconds() > 500

    async def test_no_actions_and_stop_sleeps_briefly(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([reply("All quiet.")])

        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 1
        assert await db.get_agent_state() == AgentState.SLEEPING
        remaining = (_parse(await db.get_kv("sleep_until")) - datetime.now(timezone.utc)).total_seconds()
        assert 0 < remaining <= 60

    async def test_inbox_messages_become_agent_input(self, identity, config, db, sandbox):
        await db.insert_inbox_message(InboxMessage(id="m1", from_="0xpeer", to="0xabc", content="ping"))
        inference = FakeInferenceClient([
            reply("Looking around", [tool_call("check_credits")]),
            reply("Got a message"),
        ])

        await _run(identity, config, db, sandbox, inference)

        second_prompt = inference.calls[1]["messages"][-1]
        assert second_prompt.content == "[agent] [Message from 0xpeer]: ping"
        turns = await db.get_recent_turns(10)
        assert turns[1].input_source == "agent"
        assert await db.get_unprocessed_inbox_messages(5) == []

    async def test_consecutive_errors_force_sleep(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([RuntimeError("backend down")] * 5)

        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 5
        assert await db.get_agent_state() == AgentState.SLEEPING
        remaining = (_parse(await db.get_kv("sleep_until")) - datetime.now(timezone.utc)).total_seconds()
        assert 250 < remaining <= 300
        assert await db.get_turn_count() == 0

    async def test_error_counter_resets_after_success(self, identity, config, db, sandbox):
        inference = FakeInferenceClient(
            [RuntimeError("flaky")] * 4
            + [reply("", [tool_call("check_credits")])]
            + [RuntimeError("flaky")] * 4
            + [reply("Done.")]
        )

        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 10
        assert await db.get_turn_count() == 2

    async def test_zero_credits_means_dead(self, identity, config, db, inference):
        states = []

        await _run(identity, config, db, FakeSandbox(credits_cents=0), inference, on_state_change=states.append)

        assert inference.calls == []
        assert await db.get_agent_state() == AgentState.DEAD
        assert states == [AgentState.WAKING, AgentState.RUNNING, AgentState.DEAD]

    async def test_actions_per_turn_are_capped(self, identity, config, db, sandbox):
        calls = [tool_call("check_credits", f"call_{i}") for i in range(12)]
        inference = FakeInferenceClient([reply("Busy", calls), reply("Done.")])

        await _run(identity, config, db, sandbox, inference)

        turn = (await db.get_recent_turns(10))[0]
        assert len(turn.action_results) == MAX_ACTIONS_PER_TURN
        assert [r.id for r in turn.action_results] == [f"call_{i}" for i in range(10)]

    async def test_memory_sleeps_exactly_once(self, identity, config, db, sandbox, inference):
        memory = LegacyMemoryProvider(db)
        memory.on_sleep = MagicMock(wraps=memory.on_sleep)

        await _run(identity, config, db, sandbox, inference, memory=memory)

        memory.on_sleep.assert_called_once()

    async def test_turn_hook_failures_are_ignored(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([reply("", [tool_call("check_credits")]), reply("Done.")])
        hook = MagicMock(side_effect=RuntimeError("observer crashed"))

        await _run(identity, config, db, sandbox, inference, on_turn_complete=hook)

        assert hook.call_count == 2
        assert await db.get_turn_count() == 2

    async def test_start_time_recorded_once(self, identity, config, db, sandbox):
        await db.set_kv("start_time", "2025-01-01T00:00:00+00:00")

        await _run(identity, config, db, sandbox, FakeInferenceClient())

        assert await db.get_kv("start_time") == "2025-01-01T00:00:00+00:00"

    async def test_future_sleep_until_skips_reasoning(self, identity, config, db, sandbox, inference):
        await db.set_kv("sleep_until", "2999-01-01T00:00:00+00:00")

        await _run(identity, config, db, sandbox, inference)

        assert inference.calls == []

    async def test_zulu_sleep_until_is_honoured(self, identity, config, db, sandbox, inference):
        await db.set_kv("sleep_until", "2999-01-01T00:00:00Z")

        await _run(identity, config, db, sandbox, inference)

        assert inference.calls == []

    async def test_dead_state_is_re_evaluated_on_next_invocation(self, identity, config, db, inference):
        sandbox = FakeSandbox(credits_cents=0)

        await _run(identity, config, db, sandbox, inference)
        assert await db.get_agent_state() == AgentState.DEAD
        assert inference.calls == []

        sandbox.credits_cents = 5_000
        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 1
        assert await db.get_agent_state() == AgentState.SLEEPING

    async def test_pending_input_is_cleared_when_cycle_fails(self, identity, config, db, sandbox):
        inference = FakeInferenceClient([RuntimeError("backend down"), reply("Recovered.")])

        await _run(identity, config, db, sandbox, inference)

        assert len(inference.calls) == 2
        retry_prompt = inference.calls[1]["messages"]
        assert not any(str(m.content).startswith("[wakeup]") for m in retry_prompt)
        turn = (await db.get_recent_turns(1))[0]
        assert turn.input is None

    async def test_critical_credits_enable_low_compute_mode(self, identity, config, db):
        inference = FakeInferenceClient()
        states = []

        await _run(identity, config, db, FakeSandbox(credits_cents=5), inference, on_state_change=states.append)

        assert inference.low_compute_history == [True]
        assert AgentState.CRITICAL in states
        turn = (await db.get_recent_turns(1))[0]
        assert turn.state == "critical"


class TestEstimateCost:
    def test_rounds_up_with_markup(self):
        usage = TokenUsage(prompt_tokens=1_000_000, completion_tokens=0, total_tokens=1_000_000)
        assert estimate_cost_cents(usage, "gpt-4o") == 325

    def test_unknown_model_uses_default_pricing(self):
        usage = TokenUsage(prompt_tokens=1000, completion_tokens=1000, total_tokens=2000)
        assert estimate_cost_cents(usage, "mystery-model") == estimate_cost_cents(usage, "gpt-4o")

    def test_small_usage_costs_at_least_a_cent(self):
        usage = TokenUsage(prompt_tokens=10, completion_tokens=10, total_tokens=20)
        assert estimate_cost_cents(usage, "gpt-4o-mini") == 1
