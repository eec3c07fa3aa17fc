"""
Tests for passive idle collection.

Content Souls accrue at 1 per 5 minutes, boosted 10% per soulflow point,
and convert to 5 Soul Embers each.
"""

import pytest
from datetime import timedelta

from shepherd.state import EventType, SessionState, get_event_bus
from shepherd.systems.idle import IdleCollector, calculate_idle_souls

from conftest import START


@pytest.fixture
def collector(state_manager, scheduler):
    return IdleCollector(state_manager, clock=scheduler.now)


class TestIdleFormula:
    """Pure rate computation."""

    def test_one_interval_with_soulflow(self):
        assert calculate_idle_souls(300, soulflow=1) == pytest.approx(1.1)

    def test_zero_soulflow(self):
        assert calculate_idle_souls(600, soulflow=0) == pytest.approx(2.0)

    def test_fractional_intervals_accrue(self):
        assert calculate_idle_souls(150, soulflow=0) == pytest.approx(0.5)

    def test_nothing_elapsed(self):
        assert calculate_idle_souls(0, soulflow=5) == 0


class TestCollectIdleSouls:
    """Collection against the stored watermark."""

    def test_ten_minutes(self, collector, state_manager):
        embers = collector.collect_idle_souls(START + timedelta(minutes=10))

        assert embers == pytest.approx(11.0)
        current = state_manager.current
        assert current.player.soul_embers == pytest.approx(11.0)
        assert current.progression.idle_state.accumulated_souls == pytest.approx(2.2)
        assert current.progression.idle_state.last_collection_time == START + timedelta(minutes=10)
        assert current.statistics.total_idle_souls_collected == pytest.approx(2.2)

    def test_uses_clock_when_now_omitted(self, collector, scheduler):
        scheduler.jump(300)

        assert collector.collect_idle_souls() == pytest.approx(5.5)

    def test_days_of_suspension_integrate(self, collector):
        embers = collector.collect_idle_souls(START + timedelta(days=3))

        # 864 intervals * 1.1 souls * 5 embers
        assert embers == pytest.approx(4752)

    def test_repeated_calls_match_one_call(self, collector, state_manager):
        collector.collect_idle_souls(START + timedelta(minutes=5))
        collector.collect_idle_souls(START + timedelta(minutes=10))

        assert state_manager.current.player.soul_embers == pytest.approx(11.0)

    def test_second_call_at_same_time_pays_nothing(self, collector):
        when = START + timedelta(minutes=10)
        collector.collect_idle_souls(when)

        assert collector.collect_idle_souls(when) == 0

    def test_clock_going_backwards_pays_nothing(self, collector, state_manager):
        collector.collect_idle_souls(START + timedelta(minutes=10))

        embers = collector.collect_idle_souls(START + timedelta(minutes=2))

        assert embers == 0
        idle = state_manager.current.progression.idle_state
        assert idle.last_collection_time == START + timedelta(minutes=10)

    def test_suppressed_during_session(self, collector, state_manager):
        with state_manager.transaction() as draft:
            draft.session = SessionState(start_time=START, duration=25)

        embers = collector.collect_idle_souls(START + timedelta(minutes=10))

        assert embers == 0
        assert collector.last_collection.suppressed is True
        current = state_manager.current
        assert current.player.soul_embers == 0
        assert current.progression.idle_state.last_collection_time == START + timedelta(minutes=10)

    def test_collection_event(self, collector):
        collector.collect_idle_souls(START + timedelta(minutes=5))

        events = get_event_bus().get_history(EventType.IDLE_SOULS_COLLECTED)
        assert len(events) == 1
        assert events[0].data["souls"] == pytest.approx(1.1)

    def test_last_collection_details(self, collector):
        collector.collect_idle_souls(START + timedelta(minutes=5))

        details = collector.last_collection
        assert details.elapsed_seconds == 300
        assert details.souls == pytest.approx(1.1)
        assert details.suppressed is False
