"""
Stat growth for the shepherd.

Two ways to raise a stat:
- Spend a skill point (granted on level-up)
- Buy an upgrade with Soul Embers, priced 10 * 1.5^value
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from ..errors import ValidationError
from ..state.constants import (
    HARMONY_STEP,
    STAT_STEP,
    STAT_UPGRADE_BASE_COST,
    STAT_UPGRADE_COST_MULTIPLIER,
)
from ..state.schema import PlayerStats, StatName

if TYPE_CHECKING:
    from ..state.manager import StateManager

logger = logging.getLogger(__name__)


def parse_stat(stat: StatName | str) -> StatName:
    try:
        return StatName(stat)
    except ValueError:
        raise ValidationError(f"Unknown stat: {stat!r}") from None


def stat_step(stat: StatName) -> float:
    return HARMONY_STEP if stat is StatName.HARMONY else STAT_STEP


def upgrade_cost(stat: StatName, value: float) -> int:
    """
    Ember price of the next upgrade.

    Harmony is stored as a probability, so it is priced on its percentage
    (0.05 -> 5).
    """
    level = round(value * 100) if stat is StatName.HARMONY else value
    return math.floor(STAT_UPGRADE_BASE_COST * STAT_UPGRADE_COST_MULTIPLIER ** level)


class UpgradeSystem:
    """Spends skill points and Soul Embers on player stats."""

    def __init__(self, state: "StateManager"):
        self.state = state

    def get_upgrade_cost(self, stat: StatName | str) -> int:
        stat = parse_stat(stat)
        stats = self.state.current.player.stats
        return upgrade_cost(stat, getattr(stats, stat.value))

    def allocate_skill_point(self, stat: StatName | str) -> PlayerStats:
        stat = parse_stat(stat)
        if self.state.current.player.skill_points <= 0:
            raise ValidationError("No skill points available")

        with self.state.transaction() as draft:
            player = draft.player
            player.skill_points -= 1
            setattr(player.stats, stat.value, getattr(player.stats, stat.value) + stat_step(stat))
            stats = player.stats.model_copy()

        logger.info(
            "Skill point spent on %s (now %s, %d left)",
            stat.value, getattr(stats, stat.value), self.state.current.player.skill_points,
        )
        return stats

    def upgrade_stat(self, stat: StatName | str) -> PlayerStats:
        stat = parse_stat(stat)
        cost = self.get_upgrade_cost(stat)
        embers = self.state.current.player.soul_embers
        if embers < cost:
            raise ValidationError(f"Insufficient Soul Embers: need {cost}, have {embers:.2f}")

        with self.state.transaction() as draft:
            player = draft.player
            player.soul_embers -= cost
            setattr(player.stats, stat.value, getattr(player.stats, stat.value) + stat_step(stat))
            stats = player.stats.model_copy()

        logger.info("Upgraded %s for %d embers (now %s)", stat.value, cost, getattr(stats, stat.value))
        return stats
