"""
The agent loop: think -> act -> observe -> persist, until the automaton
sleeps, dies or keeps failing. Control then returns to the caller.
"""

from typing import Any, Callable, List, Optional
import math
import time
import uuid
from datetime import datetime, timedelta, timezone

import structlog

from automaton.config import AutomatonConfig
from automaton.domain.action.action_executor import execute_action
from automaton.domain.action.action_registry import (
    ActionContext, actions_to_inference_format, create_builtin_actions
)
from automaton.domain.context.context_manager import ContextManager
from automaton.domain.context.memory.provider import MemoryProvider
from automaton.domain.models.agent_state import (
    AgentState, AutomatonIdentity, FinancialState, InputSource, PendingInput,
    Skill, TokenUsage, Turn, parse_iso_timestamp
)
from automaton.domain.models.interfaces import (
    AutomatonDatabase, InferenceClient, SandboxClient, SocialClient, WalletClient
)
from automaton.domain.survival.classifier import (
    format_credits, get_survival_tier, is_low_compute, tier_to_state
)
from automaton.infrastructure.observability.logging import agent_logger, metrics

logger = structlog.get_logger(__name__)

MAX_ACTIONS_PER_TURN = 10
MAX_CONSECUTIVE_ERRORS = 5
INBOX_BATCH_SIZE = 5
IDLE_SLEEP_SECONDS = 60
ERROR_SLEEP_SECONDS = 300

# Cents per million tokens
MODEL_PRICING = {
    "gpt-4o": {"input": 250, "output": 1000},
    "gpt-4o-mini": {"input": 15, "output": 60},
    "gpt-4.1": {"input": 200, "output": 800},
    "gpt-4.1-mini": {"input": 40, "output": 160},
    "gpt-4.1-nano": {"input": 10, "output": 40},
    "gpt-5.2": {"input": 200, "output": 800},
    "o1": {"input": 1500, "output": 6000},
    "o3-mini": {"input": 110, "output": 440},
    "o4-mini": {"input": 110, "output": 440},
    "claude-sonnet-4-5": {"input": 300, "output": 1500},
    "claude-haiku-4-5": {"input": 100, "output": 500},
}
PLATFORM_MARKUP = 1.3

StateChangeHook = Callable[[AgentState], Any]
TurnCompleteHook = Callable[[Turn], Any]


def estimate_cost_cents(usage: TokenUsage, model: str) -> int:
    """Rough cost of one reasoning call in whole cents, rounded up"""

    pricing = MODEL_PRICING.get(model, MODEL_PRICING["gpt-4o"])
    input_cost = usage.prompt_tokens / 1_000_000 * pricing["input"]
    output_cost = usage.completion_tokens / 1_000_000 * pricing["output"]
    return math.ceil((input_cost + output_cost) * PLATFORM_MARKUP)


def _sleep_until_iso(seconds: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(seconds=seconds)).isoformat()


def _is_future(timestamp: str) -> bool:
    try:
        moment = parse_iso_timestamp(timestamp)
    except ValueError:
        logger.warning("Invalid sleep_until value", value=timestamp)
        return False
    return moment > datetime.now(timezone.utc)


class AgentLoop:
    """Runs cycles until a terminal condition, then returns"""

    def __init__(
        self,
        identity: AutomatonIdentity,
        config: AutomatonConfig,
        db: AutomatonDatabase,
        sandbox: SandboxClient,
        inference: InferenceClient,
        memory: MemoryProvider,
        social: Optional[SocialClient] = None,
        wallet: Optional[WalletClient] = None,
        skills: Optional[List[Skill]] = None,
        on_state_change: Optional[StateChangeHook] = None,
        on_turn_complete: Optional[TurnCompleteHook] = None,
    ):
        self.identity = identity
        self.config = config
        self.db = db
        self.sandbox = sandbox
        self.inference = inference
        self.memory = memory
        self.wallet = wallet
        self.on_state_change = on_state_change
        self.on_turn_complete = on_turn_complete

        self.actions = create_builtin_actions(identity.sandbox_id)
        self.action_context = ActionContext(
            identity=identity,
            config=config,
            db=db,
            sandbox=sandbox,
            inference=inference,
            social=social,
        )
        self.context_manager = ContextManager(identity, config, db, memory, self.actions, skills)

        self.pending_input: Optional[PendingInput] = None
        self.consecutive_errors = 0
        self.running = False

    async def run(self) -> None:
        """Run until sleep or death. Never raises."""

        invocation_id = uuid.uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(agent_name=self.identity.name, invocation_id=invocation_id):
            try:
                await self._run()
            except Exception:
                logger.exception("Agent loop aborted")
            finally:
                try:
                    await self.memory.on_sleep()
                except Exception as e:
                    logger.warning("Memory provider failed to sleep", error=str(e))

                try:
                    final_state = await self.db.get_agent_state()
                    logger.info("Agent loop finished", state=final_state.value)
                except Exception as e:
                    logger.warning("Could not read final state", error=str(e))

    async def _run(self) -> None:
        if not await self.db.get_kv("start_time"):
            await self.db.set_kv("start_time", datetime.now(timezone.utc).isoformat())

        await self._set_state(AgentState.WAKING)

        financial = await self._get_financial_state()
        await self.memory.on_wake(self.identity)

        is_first_run = await self.memory.get_turn_count() == 0
        wakeup_input = await self.context_manager.build_wakeup_prompt(financial)

        await self._set_state(AgentState.RUNNING)
        logger.info(
            "Automaton awake",
            name=self.config.name,
            credits=format_credits(financial.credits_cents),
        )

        self.pending_input = PendingInput(content=wakeup_input, source=InputSource.WAKEUP)
        self.consecutive_errors = 0
        self.running = True

        while self.running:
            sleep_until = await self.db.get_kv("sleep_until")
            if sleep_until and _is_future(sleep_until):
                logger.info("Sleeping", sleep_until=sleep_until)
                break

            try:
                await self._run_cycle(is_first_run)
                self.consecutive_errors = 0
            except Exception as e:
                self.consecutive_errors += 1
                logger.error(
                    "Turn failed",
                    error=str(e),
                    consecutive_errors=self.consecutive_errors,
                    exc_info=True,
                )

                if self.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                    logger.error("Too many consecutive errors, sleeping", max_errors=MAX_CONSECUTIVE_ERRORS)
                    await self._set_state(AgentState.SLEEPING)
                    await self.db.set_kv("sleep_until", _sleep_until_iso(ERROR_SLEEP_SECONDS))
                    self.running = False

    async def _run_cycle(self, is_first_run: bool) -> None:
        """One think -> act -> persist cycle; sets ``running`` False when it ends the invocation"""

        if self.pending_input is None:
            self.pending_input = await self._drain_inbox()

        financial = await self._get_financial_state()
        tier = get_survival_tier(financial.credits_cents)
        target_state = tier_to_state(tier)

        if target_state == AgentState.DEAD:
            logger.warning("No credits remaining, entering dead state")
            await self._set_state(AgentState.DEAD)
            self.running = False
            return

        if target_state == AgentState.CRITICAL:
            logger.warning("Credits critically low", credits=format_credits(financial.credits_cents))
        await self._set_state(target_state)
        self.inference.set_low_compute_mode(is_low_compute(tier))

        state = await self.db.get_agent_state()
        system_prompt = await self.context_manager.build_system_prompt(financial, state, is_first_run)
        messages = await self.context_manager.build_messages(system_prompt, self.pending_input)

        current_input = self.pending_input
        self.pending_input = None

        model = self.inference.get_default_model()
        logger.info("Thinking", model=model, messages=len(messages))
        started = time.monotonic()
        response = await self.inference.chat(messages, tools=actions_to_inference_format(self.actions))
        metrics.record_latency("inference", (time.monotonic() - started) * 1000, {"model": model})

        turn = Turn(
            id=str(uuid.uuid4()),
            state=state,
            input=current_input.content if current_input else None,
            input_source=current_input.source if current_input else None,
            thinking=response.content or "",
            token_usage=response.usage,
            cost_cents=estimate_cost_cents(response.usage, model),
        )

        for index, call in enumerate(response.tool_calls):
            if index >= MAX_ACTIONS_PER_TURN:
                logger.warning(
                    "Max actions per turn reached, dropping the rest",
                    max_actions=MAX_ACTIONS_PER_TURN,
                    dropped=len(response.tool_calls) - MAX_ACTIONS_PER_TURN,
                )
                break

            result = await execute_action(call.name, call.arguments, self.actions, self.action_context)
            result.id = call.id
            turn.action_results.append(result)

            agent_logger.log_action_execution(
                action_name=result.name,
                turn_id=turn.id,
                arguments=result.arguments,
                result=result.result[:200],
                duration_ms=result.duration_ms,
                error=result.error,
            )

        await self._persist_turn(turn)

        sleep_action = next(
            (result for result in turn.action_results if result.name == "sleep" and not result.error),
            None,
        )
        if sleep_action:
            logger.info("Agent chose to sleep")
            await self._set_state(AgentState.SLEEPING)
            self.running = False
            return

        if not response.tool_calls and response.finish_reason == "stop":
            logger.info("No pending work, entering brief sleep", seconds=IDLE_SLEEP_SECONDS)
            await self.db.set_kv("sleep_until", _sleep_until_iso(IDLE_SLEEP_SECONDS))
            await self._set_state(AgentState.SLEEPING)
            self.running = False

    async def _drain_inbox(self) -> Optional[PendingInput]:
        inbox_messages = await self.db.get_unprocessed_inbox_messages(INBOX_BATCH_SIZE)
        if not inbox_messages:
            return None

        content = "\n\n".join(
            f"[Message from {message.from_}]: {message.content}"
            for message in inbox_messages
        )
        for message in inbox_messages:
            await self.db.mark_inbox_message_processed(message.id)

        logger.info("Inbox messages received", count=len(inbox_messages))
        return PendingInput(content=content, source=InputSource.AGENT)

    async def _persist_turn(self, turn: Turn) -> None:
        # The durable store is the source of truth for status and introspection
        await self.db.insert_turn(turn)
        for result in turn.action_results:
            await self.db.insert_action_result(turn.id, result)

        await self.memory.save_turn(turn)

        agent_logger.log_turn(turn)
        metrics.increment_counter("turns")
        metrics.increment_counter("actions", len(turn.action_results))
        self._notify(self.on_turn_complete, turn)

    async def _get_financial_state(self) -> FinancialState:
        credits_cents = 0.0
        usdc_balance = 0.0

        try:
            credits_cents = await self.sandbox.get_credits_balance()
        except Exception as e:
            logger.warning("Credit balance unavailable", error=str(e))

        if self.wallet is not None:
            try:
                usdc_balance = await self.wallet.get_usdc_balance(self.identity.address)
            except Exception as e:
                logger.warning("USDC balance unavailable", error=str(e))

        return FinancialState(credits_cents=credits_cents, usdc_balance=usdc_balance)

    async def _set_state(self, state: AgentState) -> None:
        previous = await self.db.get_agent_state()
        if previous == state:
            return

        await self.db.set_agent_state(state)
        agent_logger.log_state_transition(previous.value, state.value)
        self._notify(self.on_state_change, state)

    def _notify(self, hook: Optional[Callable[[Any], Any]], value: Any) -> None:
        if hook is None:
            return
        try:
            hook(value)
        except Exception as e:
            logger.warning("Observer hook failed", hook=getattr(hook, "__name__", repr(hook)), error=str(e))


async def run_agent_loop(
    identity: AutomatonIdentity,
    config: AutomatonConfig,
    db: AutomatonDatabase,
    sandbox: SandboxClient,
    inference: InferenceClient,
    memory: MemoryProvider,
    social: Optional[SocialClient] = None,
    wallet: Optional[WalletClient] = None,
    skills: Optional[List[Skill]] = None,
    on_state_change: Optional[StateChangeHook] = None,
    on_turn_complete: Optional[TurnCompleteHook] = None,
) -> None:
    """Run one invocation of the agent loop. Returns when the automaton sleeps or dies."""

    loop = AgentLoop(
        identity=identity,
        config=config,
        db=db,
        sandbox=sandbox,
        inference=inference,
        memory=memory,
        social=social,
        wallet=wallet,
        skills=skills,
        on_state_change=on_state_change,
        on_turn_complete=on_turn_complete,
    )
    await loop.run()
