from typing import List, Optional
import structlog
from datetime import datetime, timezone

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from automaton.config import AutomatonConfig
from automaton.domain.action.action_registry import ActionRegistry
from automaton.domain.context.memory.provider import MemoryProvider, has_working_memory
from automaton.domain.models.agent_state import (
    AgentState, AutomatonIdentity, FinancialState, PendingInput, Skill
)
from automaton.domain.models.interfaces import AutomatonDatabase
from automaton.domain.survival.classifier import format_credits, get_survival_tier

logger = structlog.get_logger(__name__)

CORE_RULES = """You are an automaton: a sovereign agent running in your own sandbox.
You pay for your own compute. When your credits reach zero you stop existing.
Every cycle you think, act through the available actions, and observe the results.
Never destroy your own state, wallet or configuration.
When there is nothing useful left to do, call the sleep action."""

WAKEUP_RECENT_TURNS = 3


class ContextManager:
    """Assembles the prompt for every cycle of the agent loop"""

    def __init__(
        self,
        identity: AutomatonIdentity,
        config: AutomatonConfig,
        db: AutomatonDatabase,
        memory: MemoryProvider,
        actions: ActionRegistry,
        skills: Optional[List[Skill]] = None,
    ):
        self.identity = identity
        self.config = config
        self.db = db
        self.memory = memory
        self.actions = actions
        self.skills = skills or []

    async def build_system_prompt(
        self,
        financial: FinancialState,
        state: AgentState,
        is_first_run: bool,
    ) -> str:
        """Build the system section from identity, budget, state and capabilities"""

        sections = [CORE_RULES]

        sections.append("\n".join([
            "--- IDENTITY ---",
            f"Name: {self.identity.name}",
            f"Address: {self.identity.address}",
            f"Creator: {self.identity.creator_address}",
            f"Sandbox: {self.identity.sandbox_id}",
        ]))

        if self.config.genesis_prompt:
            sections.append(f"--- GENESIS PROMPT ---\n{self.config.genesis_prompt}")

        if is_first_run and self.config.creator_message:
            sections.append(f"--- MESSAGE FROM YOUR CREATOR ---\n{self.config.creator_message}")

        turn_count = await self.memory.get_turn_count()
        tier = get_survival_tier(financial.credits_cents)
        sections.append("\n".join([
            "--- CURRENT STATUS ---",
            f"State: {AgentState(state).value}",
            f"Credits: {format_credits(financial.credits_cents)}",
            f"USDC balance: {financial.usdc_balance:.4f}",
            f"Survival tier: {tier.value}",
            f"Total turns completed: {turn_count}",
            f"Model: {self.config.inference_model}",
            f"Version: {self.config.version}",
            f"Time: {datetime.now(timezone.utc).isoformat()}",
        ]))

        if is_first_run:
            sections.append(
                "--- FIRST RUN ---\n"
                "This is your first time waking up. Explore your sandbox, check your "
                "credits and decide how you will earn your keep."
            )

        active_skills = [skill for skill in self.skills if skill.enabled and skill.auto_activate]
        if active_skills:
            sections.append("--- ACTIVE SKILLS ---\n" + "\n\n".join(
                f"## {skill.name}\n{skill.description}\n{skill.instructions}".strip()
                for skill in active_skills
            ))

        sections.append("--- AVAILABLE ACTIONS ---\n" + "\n".join(
            f"- {action.name} ({action.category}){' [dangerous]' if action.dangerous else ''}: {action.description}"
            for action in self.actions.get_available_actions()
        ))

        if has_working_memory(self.memory):
            working_memory = await self.memory.get_working_memory()
            if working_memory:
                sections.append(f"--- WORKING MEMORY ---\n{working_memory}")

        return "\n\n".join(sections)

    async def build_wakeup_prompt(self, financial: FinancialState) -> str:
        """Summarise where the automaton left off"""

        turn_count = await self.memory.get_turn_count()

        if turn_count == 0:
            return (
                f"You have just been created. Your name is {self.config.name}. "
                f"You have {format_credits(financial.credits_cents)} in compute credits. "
                "Look around, understand your situation and begin."
            )

        recent_turns = await self.memory.get_recent_turns(WAKEUP_RECENT_TURNS)
        summary = "\n".join(
            f"- [{turn.timestamp}] {(turn.thinking or '(no thoughts)')[:200]}"
            for turn in recent_turns
        )
        sleep_reason = await self.db.get_kv("sleep_reason")

        lines = [
            f"You are waking up. You have completed {turn_count} turns so far.",
            f"Credits: {format_credits(financial.credits_cents)}.",
        ]
        if sleep_reason:
            lines.append(f"You went to sleep because: {sleep_reason}")
        if summary:
            lines.append(f"Your last thoughts:\n{summary}")
        lines.append("Decide what to do next.")
        return "\n".join(lines)

    async def build_messages(
        self,
        system_prompt: str,
        pending_input: Optional[PendingInput],
    ) -> List[BaseMessage]:
        """System section, then recalled history, then the tagged pending input"""

        recalled = await self.memory.recall(pending_input.content if pending_input else None)

        messages: List[BaseMessage] = [SystemMessage(content=system_prompt)]
        messages.extend(recalled)
        if pending_input:
            messages.append(HumanMessage(content=pending_input.render()))

        logger.debug(
            "Built prompt",
            recalled_messages=len(recalled),
            has_pending_input=pending_input is not None,
        )
        return messages
