"""
Survival tiers derived from the remaining credit balance (in cents).
"""

from automaton.domain.models.agent_state import AgentState, SurvivalTier

SURVIVAL_THRESHOLDS = {
    "normal": 50,
    "low_compute": 10,
    "dead": 0,
}

_TIER_STATES = {
    SurvivalTier.NORMAL: AgentState.RUNNING,
    SurvivalTier.LOW_COMPUTE: AgentState.LOW_COMPUTE,
    SurvivalTier.CRITICAL: AgentState.CRITICAL,
    SurvivalTier.DEAD: AgentState.DEAD,
}


def get_survival_tier(credits_cents: float) -> SurvivalTier:
    """Classify a credit balance into a survival tier"""

    if credits_cents <= SURVIVAL_THRESHOLDS["dead"]:
        return SurvivalTier.DEAD
    if credits_cents < SURVIVAL_THRESHOLDS["low_compute"]:
        return SurvivalTier.CRITICAL
    if credits_cents < SURVIVAL_THRESHOLDS["normal"]:
        return SurvivalTier.LOW_COMPUTE
    return SurvivalTier.NORMAL


def tier_to_state(tier: SurvivalTier) -> AgentState:
    return _TIER_STATES[tier]


def is_low_compute(tier: SurvivalTier) -> bool:
    """Tiers that run the reasoning backend in reduced-cost mode"""
    return tier in (SurvivalTier.CRITICAL, SurvivalTier.LOW_COMPUTE)


def format_credits(credits_cents: float) -> str:
    return f"${credits_cents / 100:.2f}"
