"""
Tests for level and boss progression.
"""

import math

import pytest
from pydantic import ValidationError as PydanticValidationError

from shepherd.errors import CatalogIndexError, ValidationError
from shepherd.state import (
    STUBBORN_SOULS,
    STATE_KEY,
    EventType,
    get_event_bus,
    level_for_insight,
    level_threshold,
)
from shepherd.state.catalog import get_boss, is_boss_unlocked
from shepherd.state.constants import MAX_SOUL_INSIGHT
from shepherd.systems.progression import ProgressionManager


@pytest.fixture
def progression(state_manager):
    return ProgressionManager(state_manager)


class TestLevelThreshold:
    """Cumulative insight needed to reach a level: 100 * level^1.5."""

    def test_reference_values(self):
        assert level_threshold(1) == 100
        assert level_threshold(2) == pytest.approx(282.8427, abs=1e-4)
        assert level_threshold(3) == pytest.approx(519.6152, abs=1e-4)

    @pytest.mark.parametrize("level", [1, 2, 5, 10, 50])
    def test_formula(self, level):
        assert level_threshold(level) == 100 * level ** 1.5


class TestLevelForInsight:
    """Inverse of level_threshold without stepping through every level."""

    @pytest.mark.parametrize("insight, level", [(0, 1), (100, 1), (282.8, 1), (500, 2), (600, 3)])
    def test_reference_values(self, insight, level):
        assert level_for_insight(insight) == level

    @pytest.mark.parametrize("level", [2, 3, 10, 97, 1000, 123456])
    def test_exact_threshold_reaches_level(self, level):
        threshold = level_threshold(level)

        assert level_for_insight(threshold) == level
        assert level_for_insight(math.nextafter(threshold, 0)) == level - 1

    def test_largest_insight(self):
        level = level_for_insight(MAX_SOUL_INSIGHT)

        assert level_threshold(level) <= MAX_SOUL_INSIGHT < level_threshold(level + 1)


class TestAddExperience:
    """Level-ups and skill points."""

    def test_scenario_500_from_level_one(self, progression, state_manager):
        result = progression.add_experience(500)

        assert result.new_level == 2
        assert result.leveled_up is True
        assert result.skill_points_granted == 1
        assert list(result.levels_crossed) == [2]

        player = state_manager.current.player
        assert player.level == 2
        assert player.skill_points == 1
        assert player.soul_insight == 500
        assert player.soul_insight_to_next_level == pytest.approx(level_threshold(3) - 500)

    def test_crossing_two_thresholds_grants_two_points(self, progression):
        result = progression.add_experience(600)

        assert result.new_level == 3
        assert result.skill_points_granted == 2
        assert list(result.levels_crossed) == [2, 3]

    def test_below_threshold_no_level(self, progression, state_manager):
        result = progression.add_experience(100)

        assert result.leveled_up is False
        assert result.skill_points_granted == 0
        assert list(result.levels_crossed) == []
        assert state_manager.current.player.level == 1

    def test_reaching_threshold_exactly_levels_up(self, progression):
        result = progression.add_experience(level_threshold(2))

        assert result.new_level == 2

    def test_experience_accumulates_across_calls(self, progression):
        assert progression.add_experience(200).leveled_up is False
        assert progression.add_experience(100).new_level == 2

    def test_zero_is_a_noop(self, progression, state_manager):
        result = progression.add_experience(0)

        assert result.leveled_up is False
        assert state_manager.current.player.soul_insight == 0

    def test_negative_rejected(self, progression, state_manager):
        with pytest.raises(ValidationError):
            progression.add_experience(-1)
        assert state_manager.current.player.soul_insight == 0

    def test_huge_amount_levels_in_one_step(self, progression, state_manager):
        result = progression.add_experience(1e15)

        player = state_manager.current.player
        assert level_threshold(player.level) <= 1e15 < level_threshold(player.level + 1)
        assert result.new_level == player.level
        assert result.skill_points_granted == player.level - 1
        assert player.skill_points == player.level - 1
        assert len(result.levels_crossed) == player.level - 1
        assert player.soul_insight_to_next_level > 0

    def test_insight_saturates(self, progression, state_manager):
        progression.add_experience(1e300)

        player = state_manager.current.player
        assert player.soul_insight == MAX_SOUL_INSIGHT
        assert player.level == level_for_insight(MAX_SOUL_INSIGHT)

    @pytest.mark.parametrize("amount", [math.inf, -math.inf, math.nan])
    def test_non_finite_rejected(self, progression, state_manager, amount):
        with pytest.raises(ValidationError):
            progression.add_experience(amount)
        assert state_manager.current.player.soul_insight == 0
        assert state_manager.current.player.level == 1

    def test_level_up_event_reports_each_crossing(self, progression):
        progression.add_experience(600)

        events = get_event_bus().get_history(EventType.LEVEL_UP)
        assert len(events) == 1
        assert events[0].data["previous_level"] == 1
        assert events[0].data["level"] == 3
        assert events[0].data["skill_points_granted"] == 2

    def test_no_event_without_level_up(self, progression):
        progression.add_experience(10)

        assert get_event_bus().get_history(EventType.LEVEL_UP) == []


class TestDamageBoss:
    """Sequential boss campaign."""

    def test_scenario_130_damage_defeats_first_boss(self, progression, state_manager):
        result = progression.damage_boss(130)

        assert result.was_defeated is True
        assert result.remaining_resolve == 0
        assert result.defeated_boss.id == 0
        assert result.next_boss.id == 1

        progression_state = state_manager.current.progression
        assert progression_state.current_boss_index == 1
        assert progression_state.current_boss_resolve == 200  # Overflow of 30 discarded
        assert progression_state.defeated_bosses == {0}

    def test_partial_damage(self, progression, state_manager):
        result = progression.damage_boss(40)

        assert result.was_defeated is False
        assert result.remaining_resolve == 60
        assert result.next_boss is None
        assert state_manager.current.progression.current_boss_resolve == 60

    def test_cumulative_damage(self, progression, state_manager):
        progression.damage_boss(60)
        result = progression.damage_boss(70)

        assert result.was_defeated is True
        assert state_manager.current.progression.current_boss_resolve == 200

    def test_exact_damage_defeats(self, progression):
        assert progression.damage_boss(100).was_defeated is True

    def test_advances_regardless_of_level(self, progression, state_manager):
        """Level gates visibility, never progression."""
        progression.damage_boss(100)
        progression.damage_boss(200)

        current = state_manager.current
        assert current.player.level == 1
        assert current.progression.current_boss_index == 2
        assert not is_boss_unlocked(2, current.player.level)

    def test_defeat_counts_in_statistics(self, progression, state_manager):
        progression.damage_boss(100)

        assert state_manager.current.statistics.bosses_defeated == 1

    def test_final_boss_stays_at_rest(self, progression, state_manager):
        last = len(STUBBORN_SOULS) - 1
        state_manager.update({
            "progression": {
                "current_boss_index": last,
                "current_boss_resolve": STUBBORN_SOULS[last].initial_resolve,
            }
        })

        result = progression.damage_boss(10_000)
        assert result.was_defeated is True
        assert result.next_boss is None
        assert state_manager.current.progression.current_boss_index == last
        assert state_manager.current.progression.current_boss_resolve == 0

        again = progression.damage_boss(50)
        assert again.was_defeated is False
        assert again.remaining_resolve == 0

    def test_negative_rejected(self, progression):
        with pytest.raises(ValidationError):
            progression.damage_boss(-5)

    @pytest.mark.parametrize("amount", [math.inf, math.nan])
    def test_non_finite_rejected(self, progression, state_manager, amount):
        with pytest.raises(ValidationError):
            progression.damage_boss(amount)
        assert state_manager.current.progression.current_boss_index == 0

    def test_boss_defeated_event(self, progression):
        progression.damage_boss(100)

        events = get_event_bus().get_history(EventType.BOSS_DEFEATED)
        assert len(events) == 1
        assert events[0].data["boss_id"] == 0
        assert events[0].data["next_boss_id"] == 1


class TestCurrentBoss:
    """Catalog lookups."""

    def test_first_boss(self, progression):
        boss = progression.get_current_boss()

        assert boss.id == 0
        assert boss.name == "The Restless Athlete"
        assert boss.initial_resolve == 100

    def test_corrupt_index_raises(self, progression, state_manager):
        state_manager.current.progression.current_boss_index = 42

        with pytest.raises(CatalogIndexError):
            progression.get_current_boss()

    def test_corrupt_index_aborts_damage(self, progression, state_manager, memory_store):
        state_manager.current.progression.current_boss_index = 42
        before = memory_store.get(STATE_KEY)

        with pytest.raises(CatalogIndexError):
            progression.damage_boss(10)

        assert state_manager.current.progression.current_boss_resolve == 100
        assert memory_store.get(STATE_KEY) == before


class TestCatalog:
    """Static boss data."""

    def test_ten_bosses_in_order(self):
        assert len(STUBBORN_SOULS) == 10
        assert [soul.id for soul in STUBBORN_SOULS] == list(range(10))

    def test_resolve_and_unlock_grow(self):
        resolves = [soul.initial_resolve for soul in STUBBORN_SOULS]
        unlocks = [soul.unlock_level for soul in STUBBORN_SOULS]

        assert resolves == sorted(resolves)
        assert unlocks == sorted(unlocks)
        assert resolves[0] == 100 and resolves[-1] == 2500

    def test_out_of_range(self):
        with pytest.raises(CatalogIndexError):
            get_boss(10)
        with pytest.raises(CatalogIndexError):
            get_boss(-1)

    def test_catalog_is_immutable(self):
        with pytest.raises(PydanticValidationError):
            STUBBORN_SOULS[0].initial_resolve = 1

    def test_unlock_visibility(self):
        assert is_boss_unlocked(1, 2) is False
        assert is_boss_unlocked(1, 3) is True
