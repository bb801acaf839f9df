"""Unit tests for survival tier classification."""

import pytest

from automaton.domain.models.agent_state import AgentState, SurvivalTier
from automaton.domain.survival.classifier import (
    format_credits, get_survival_tier, is_low_compute, tier_to_state
)


class TestGetSurvivalTier:
    @pytest.mark.parametrize("credits_cents, expected", [
        (-5, SurvivalTier.DEAD),
        (0, SurvivalTier.DEAD),
        (0.5, SurvivalTier.CRITICAL),
        (9.99, SurvivalTier.CRITICAL),
        (10, SurvivalTier.LOW_COMPUTE),
        (49, SurvivalTier.LOW_COMPUTE),
        (50, SurvivalTier.NORMAL),
        (10_000, SurvivalTier.NORMAL),
    ])
    def test_boundaries(self, credits_cents, expected):
        assert get_survival_tier(credits_cents) == expected


class TestTierToState:
    def test_normal_maps_to_running(self):
        assert tier_to_state(SurvivalTier.NORMAL) == AgentState.RUNNING

    def test_other_tiers_map_to_same_named_state(self):
        assert tier_to_state(SurvivalTier.LOW_COMPUTE) == AgentState.LOW_COMPUTE
        assert tier_to_state(SurvivalTier.CRITICAL) == AgentState.CRITICAL
        assert tier_to_state(SurvivalTier.DEAD) == AgentState.DEAD


class TestIsLowCompute:
    def test_reduced_tiers(self):
        assert is_low_compute(SurvivalTier.LOW_COMPUTE)
        assert is_low_compute(SurvivalTier.CRITICAL)

    def test_normal_and_dead(self):
        assert not is_low_compute(SurvivalTier.NORMAL)
        assert not is_low_compute(SurvivalTier.DEAD)


def test_format_credits():
    assert format_credits(1234) == "$12.34"
    assert format_credits(0) == "$0.00"
