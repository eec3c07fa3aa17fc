"""
Level and boss campaign progression.

The apply_* methods mutate a GameState draft in place and are composed
by SessionManager inside its own transaction. add_experience and
damage_boss are the standalone entry points that open one themselves.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from ..errors import CatalogIndexError, ValidationError
from ..state.catalog import StubbornSoul, get_boss, is_boss_unlocked, is_final_boss
from ..state.constants import (
    MAX_SOUL_INSIGHT,
    SKILL_POINTS_PER_LEVEL,
    level_for_insight,
    level_threshold,
)
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import BossResult, GameState, LevelResult

if TYPE_CHECKING:
    from ..state.manager import StateManager

logger = logging.getLogger(__name__)


class ProgressionManager:
    """
    Applies experience and boss damage.

    Levels: a player reaches level n once lifetime soul insight is at least
    level_threshold(n). Every level crossed grants one skill point.

    Bosses: defeat always advances to the next catalog entry. Overflow
    damage is discarded. Once the final boss is defeated its resolve stays
    at zero and further damage has no effect.
    """

    def __init__(self, state: "StateManager", event_bus: EventBus | None = None):
        self.state = state
        self.event_bus = event_bus or get_event_bus()

    # -------------------------------------------------------------------------
    # Experience
    # -------------------------------------------------------------------------

    def add_experience(self, amount: float) -> LevelResult:
        """Add soul insight and persist any level-ups."""
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError(f"Experience amount must be a finite number >= 0, got {amount}")

        with self.state.transaction() as draft:
            result = self.apply_experience(draft, amount)

        self.announce_level(result)
        return result

    def apply_experience(self, state: GameState, amount: float) -> LevelResult:
        player = state.player
        previous = player.level

        insight = player.soul_insight + amount
        if insight > MAX_SOUL_INSIGHT:
            logger.warning("Soul insight capped at %.0e", MAX_SOUL_INSIGHT)
            insight = MAX_SOUL_INSIGHT
        player.soul_insight = insight

        player.level = max(previous, level_for_insight(insight))
        granted = (player.level - previous) * SKILL_POINTS_PER_LEVEL
        player.skill_points += granted
        player.soul_insight_to_next_level = level_threshold(player.level + 1) - player.soul_insight

        return LevelResult(
            previous_level=previous,
            new_level=player.level,
            leveled_up=player.level > previous,
            skill_points_granted=granted,
        )

    def announce_level(self, result: LevelResult) -> None:
        if not result.leveled_up:
            return
        logger.info(
            "Level up to %d (+%d skill points)", result.new_level, result.skill_points_granted
        )
        self.event_bus.emit(
            EventType.LEVEL_UP,
            level=result.new_level,
            previous_level=result.previous_level,
            skill_points_granted=result.skill_points_granted,
        )

    # -------------------------------------------------------------------------
    # Bosses
    # -------------------------------------------------------------------------

    def damage_boss(self, amount: float) -> BossResult:
        """Damage the current boss and persist the outcome."""
        if not math.isfinite(amount) or amount < 0:
            raise ValidationError(f"Damage amount must be a finite number >= 0, got {amount}")

        with self.state.transaction() as draft:
            result = self.apply_boss_damage(draft, amount)
            if result.was_defeated:
                draft.statistics.bosses_defeated += 1

        self.announce_boss(result)
        return result

    def apply_boss_damage(self, state: GameState, amount: float) -> BossResult:
        progression = state.progression
        index = progression.current_boss_index
        boss = self._lookup(index)

        if progression.current_boss_resolve <= 0:
            # Final boss already laid to rest
            return BossResult(remaining_resolve=0, was_defeated=False)

        remaining = max(0.0, progression.current_boss_resolve - amount)
        progression.current_boss_resolve = remaining
        if remaining > 0:
            return BossResult(remaining_resolve=remaining, was_defeated=False)

        progression.defeated_bosses = progression.defeated_bosses | {boss.id}

        next_boss = None
        if not is_final_boss(index):
            next_boss = get_boss(index + 1)
            progression.current_boss_index = index + 1
            progression.current_boss_resolve = next_boss.initial_resolve

        return BossResult(
            remaining_resolve=0,
            was_defeated=True,
            defeated_boss=boss,
            next_boss=next_boss,
        )

    def announce_boss(self, result: BossResult) -> None:
        if not result.was_defeated or result.defeated_boss is None:
            return
        logger.info("%s has been guided to rest", result.defeated_boss.name)
        self.event_bus.emit(
            EventType.BOSS_DEFEATED,
            boss_id=result.defeated_boss.id,
            name=result.defeated_boss.name,
            next_boss_id=result.next_boss.id if result.next_boss else None,
        )

    def get_current_boss(self) -> StubbornSoul:
        """Catalog entry for the current boss index."""
        return self._lookup(self.state.current.progression.current_boss_index)

    def is_current_boss_unlocked(self) -> bool:
        current = self.state.current
        return is_boss_unlocked(current.progression.current_boss_index, current.player.level)

    def _lookup(self, index: int) -> StubbornSoul:
        try:
            return get_boss(index)
        except CatalogIndexError:
            logger.error("Boss index %d is outside the catalog; progression is corrupt", index)
            raise
