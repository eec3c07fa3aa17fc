"""
Reward formulas for completed focus sessions.

Pure and stateless apart from the critical-hit draw, which comes from an
injectable random source so tests can pin it:

    calculator = RewardCalculator(random_source=lambda: 0.99)
    result = calculator.calculate_rewards(session, stats)
"""

from __future__ import annotations

import math
import random
from typing import Callable

from ..state.constants import (
    BOSS_DAMAGE_MULTIPLIER,
    COMPROMISE_PENALTY_MULTIPLIER,
    CRITICAL_HIT_MULTIPLIER,
    EMERGENCY_END_PENALTY_MULTIPLIER,
    SOUL_EMBERS_BASE_MULTIPLIER,
    SOUL_EMBERS_SOULFLOW_BONUS,
    SOUL_INSIGHT_BASE_MULTIPLIER,
    SOUL_INSIGHT_SPIRIT_BONUS,
)
from ..state.schema import PlayerStats, SessionResult, SessionState


def apply_compromise_penalty(value: float) -> float:
    """Scale a reward by the compromised-session penalty (x0.7)."""
    return value * COMPROMISE_PENALTY_MULTIPLIER


def apply_emergency_penalty(result: SessionResult) -> SessionResult:
    """Halve and floor every reward of an emergency-ended session."""
    return result.model_copy(update={
        "soul_insight": math.floor(result.soul_insight * EMERGENCY_END_PENALTY_MULTIPLIER),
        "soul_embers": math.floor(result.soul_embers * EMERGENCY_END_PENALTY_MULTIPLIER),
        "boss_progress": math.floor(result.boss_progress * EMERGENCY_END_PENALTY_MULTIPLIER),
        "was_compromised": True,
    })


def base_soul_insight(duration: float, spirit: float) -> float:
    return duration * SOUL_INSIGHT_BASE_MULTIPLIER * (1 + spirit * SOUL_INSIGHT_SPIRIT_BONUS)


def base_soul_embers(duration: float, soulflow: float) -> float:
    return duration * SOUL_EMBERS_BASE_MULTIPLIER * (1 + soulflow * SOUL_EMBERS_SOULFLOW_BONUS)


def boss_damage(duration: float, spirit: float) -> float:
    return spirit * duration * BOSS_DAMAGE_MULTIPLIER


class RewardCalculator:
    """
    Evaluates session rewards.

    Inputs are assumed validated upstream: positive duration, non-negative
    stats. No clamping happens here.
    """

    def __init__(self, random_source: Callable[[], float] = random.random):
        self.random_source = random_source

    def roll_critical(self, harmony: float) -> bool:
        """Harmony is the crit probability; values above 1.0 always crit."""
        return self.random_source() < harmony

    def calculate_rewards(
        self,
        session: SessionState,
        stats: PlayerStats,
        duration: float | None = None,
    ) -> SessionResult:
        """
        Compute rewards for a finished session.

        Args:
            session: The session being finalized
            stats: Player stats at completion time
            duration: Credited minutes, if different from the planned
                duration (early end or idle time)

        Critical hits boost insight and embers but never boss damage.
        """
        minutes = session.duration if duration is None else duration

        was_critical = self.roll_critical(stats.harmony)
        critical = CRITICAL_HIT_MULTIPLIER if was_critical else 1.0

        soul_insight = base_soul_insight(minutes, stats.spirit) * critical
        soul_embers = base_soul_embers(minutes, stats.soulflow) * critical
        boss_progress = boss_damage(minutes, stats.spirit)

        if session.is_compromised:
            soul_insight = apply_compromise_penalty(soul_insight)
            soul_embers = apply_compromise_penalty(soul_embers)
            boss_progress = apply_compromise_penalty(boss_progress)

        return SessionResult(
            soul_insight=soul_insight,
            soul_embers=soul_embers,
            boss_progress=boss_progress,
            was_critical=was_critical,
            was_compromised=session.is_compromised,
            idle_time=session.idle_time,
            active_time=session.active_time,
        )
