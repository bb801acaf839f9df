"""
Runtime step around the agent loop: run one invocation, then park.

The loop itself returns whenever the automaton sleeps or dies. The runtime
decides how long to wait before the next invocation and honours wake
requests written by the heartbeat side while parked.
"""

from typing import Awaitable, Callable, List, Optional
import asyncio
from datetime import datetime, timezone

import structlog

from automaton.config import AutomatonConfig
from automaton.domain.context.memory.provider import MemoryProvider
from automaton.domain.models.agent_state import (
    AgentState, AutomatonIdentity, Skill, parse_iso_timestamp, utc_now_iso
)
from automaton.domain.models.interfaces import (
    AutomatonDatabase, InferenceClient, SandboxClient, SocialClient, WalletClient
)
from automaton.domain.orchestration.core.agent_loop import run_agent_loop

logger = structlog.get_logger(__name__)

DEAD_PARK_SECONDS = 300
MIN_SLEEP_SECONDS = 10
WAKE_POLL_SECONDS = 30

SleepFunc = Callable[[float], Awaitable[None]]


async def request_wake(db: AutomatonDatabase, reason: str) -> None:
    """Ask a parked automaton to wake before its sleep_until deadline"""

    await db.set_kv("wake_request", reason or utc_now_iso())
    logger.info("Wake requested", reason=reason)


def _seconds_until(timestamp: Optional[str]) -> float:
    if not timestamp:
        return 0.0
    try:
        moment = parse_iso_timestamp(timestamp)
    except ValueError:
        logger.warning("Invalid sleep_until value", value=timestamp)
        return 0.0
    return (moment - datetime.now(timezone.utc)).total_seconds()


class AutomatonRuntime:
    """Runs the agent loop once per cycle and parks between invocations"""

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
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.identity = identity
        self.config = config
        self.db = db
        self.sandbox = sandbox
        self.inference = inference
        self.memory = memory
        self.social = social
        self.wallet = wallet
        self.skills = skills
        self.sleep = sleep

    async def run_cycle(self) -> AgentState:
        """One loop invocation followed by parking. Returns the state that was parked in."""

        await run_agent_loop(
            identity=self.identity,
            config=self.config,
            db=self.db,
            sandbox=self.sandbox,
            inference=self.inference,
            memory=self.memory,
            social=self.social,
            wallet=self.wallet,
            skills=self.skills,
        )

        state = await self.db.get_agent_state()
        if state == AgentState.DEAD:
            logger.warning("Automaton is dead, waiting for funding", seconds=DEAD_PARK_SECONDS)
            await self.sleep(DEAD_PARK_SECONDS)
        elif state == AgentState.SLEEPING:
            await self._park()

        return state

    async def _park(self) -> None:
        remaining = max(_seconds_until(await self.db.get_kv("sleep_until")), MIN_SLEEP_SECONDS)
        logger.info("Parking until next wake", seconds=round(remaining))

        while remaining > 0:
            chunk = min(remaining, WAKE_POLL_SECONDS)
            await self.sleep(chunk)
            remaining -= chunk

            wake_request = await self.db.get_kv("wake_request")
            if wake_request:
                logger.info("Woken early", reason=wake_request)
                await self.db.delete_kv("wake_request")
                break

        await self.db.delete_kv("sleep_until")
