"""
Tests for the GameEngine facade: lifecycle, idle tick, state access and
degraded persistence.
"""

import pytest
from datetime import timedelta

from shepherd.engine import GameEngine
from shepherd.errors import EngineError, ValidationError
from shepherd.state import EventType, JsonFileStore, get_event_bus
from shepherd.systems.scheduler import ManualScheduler
from shepherd.systems.sessions import SessionPhase

from conftest import START, FlakyStore


MINUTE = 60


class TestLifecycle:
    def test_commands_require_start(self, make_engine):
        engine = make_engine(start=False)

        with pytest.raises(EngineError, match="not started"):
            engine.start_session(25)

    def test_start_returns_load_report(self, make_engine):
        engine = make_engine(start=False)

        report = engine.start()

        assert report.first_run is True
        assert engine.started

    def test_stop_cancels_timers(self, engine, scheduler):
        engine.start_session(25)

        engine.stop()

        assert scheduler.pending() == []
        with pytest.raises(EngineError):
            engine.get_state()

    def test_directory_store(self, tmp_path, scheduler):
        engine = GameEngine(tmp_path / "data", scheduler=scheduler, clock=scheduler.now)
        engine.start()

        assert isinstance(engine.store, JsonFileStore)
        assert (tmp_path / "data" / "soul_shepherd_state.json").exists()


class TestIdleTick:
    """Idle souls are collected on a fixed interval."""

    def test_tick_collects(self, engine, scheduler):
        scheduler.advance(5 * MINUTE)

        assert engine.get_state().player.soul_embers == pytest.approx(5.5)

    def test_tick_rearms(self, engine, scheduler):
        scheduler.advance(15 * MINUTE)

        assert engine.get_state().player.soul_embers == pytest.approx(16.5)
        assert START + timedelta(minutes=20) in scheduler.pending()

    def test_interval_from_config(self, make_engine, scheduler):
        engine = make_engine(config={"idle_collection_interval_minutes": 1})

        scheduler.advance(MINUTE)

        assert engine.get_state().progression.idle_state.last_collection_time == (
            START + timedelta(minutes=1)
        )

    def test_tick_suppressed_during_session(self, engine, scheduler):
        engine.start_session(25)

        scheduler.advance(10 * MINUTE)

        assert engine.get_state().player.soul_embers == 0

    def test_manual_collection(self, engine, scheduler):
        scheduler.jump(10 * MINUTE)

        assert engine.collect_idle_souls() == pytest.approx(11.0)


class TestStateAccess:
    def test_get_state_is_snapshot(self, engine):
        state = engine.get_state()
        state.player.soul_embers = 1000

        assert engine.get_state().player.soul_embers == 0

    def test_update_settings(self, engine):
        settings = engine.update_settings(strict_mode=True, discouraged_sites=["video.example"])

        assert settings.strict_mode is True
        assert engine.get_state().settings.discouraged_sites == ["video.example"]

    def test_invalid_settings_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.update_settings(default_break_duration=0)

    def test_update_state(self, engine):
        state = engine.update_state({"player": {"skill_points": 4}})

        assert state.player.skill_points == 4

    def test_save_state_adopts_snapshot(self, engine):
        state = engine.get_state()
        state.player.soul_embers = 42

        assert engine.save_state(state) is True
        assert engine.get_state().player.soul_embers == 42

    def test_save_state_rearms_session(self, engine, scheduler):
        engine.start_session(25)
        state = engine.get_state()

        engine.save_state(state)

        assert START + timedelta(minutes=25) in scheduler.pending()
        scheduler.advance(25 * MINUTE)
        assert engine.get_session_phase() is SessionPhase.NO_SESSION

    def test_save_load_round_trip(self, engine, scheduler):
        engine.start_session(25)
        scheduler.advance(25 * MINUTE)
        engine.damage_boss(200)

        state = engine.load_state()
        engine.save_state(state)

        assert engine.load_state().model_dump() == state.model_dump()

    def test_load_state_rereads_store(self, make_engine, memory_store):
        first = make_engine(store=memory_store)
        second = make_engine(store=memory_store)
        first.update_state({"player": {"soul_embers": 7}})

        assert second.load_state().player.soul_embers == 7

    def test_catalog_queries(self, engine):
        assert engine.get_current_boss().id == 0
        assert engine.is_current_boss_unlocked() is True


class TestDegradedPersistence:
    """Storage failures never lose in-memory progress."""

    def test_session_continues_when_storage_fails(self, make_engine, scheduler):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 100

        engine.start_session(25)
        scheduler.advance(25 * MINUTE)

        assert engine.persistence_ok is False
        assert engine.get_state().player.soul_insight == pytest.approx(275)
        assert get_event_bus().get_history(EventType.PERSISTENCE_FAILED)

    def test_retries_run_on_the_scheduler(self, make_engine, scheduler):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 100
        before = store.attempts

        engine.start_session(25)

        assert store.attempts == before + 1
        assert engine.persistence_ok is False
        assert scheduler.pending()[0] == START + timedelta(milliseconds=100)
        assert get_event_bus().get_history(EventType.PERSISTENCE_FAILED) == []

        scheduler.advance(1)

        assert store.attempts == before + 4
        failed = get_event_bus().get_history(EventType.PERSISTENCE_FAILED)
        assert failed[-1].data["attempts"] == 4

    def test_retry_writes_latest_state(self, make_engine, scheduler):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 1

        engine.start_session(25)
        assert engine.persistence_ok is False

        scheduler.advance(1)

        assert engine.persistence_ok is True
        assert b'"duration": 25' in store.get("soul_shepherd_state")

    def test_newer_write_supersedes_retry(self, make_engine, scheduler):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 1
        engine.start_session(25)
        before = store.attempts

        engine.pause_session()
        scheduler.advance(1)

        assert store.attempts == before + 1
        assert engine.persistence_ok is True
        assert b'"is_paused": true' in store.get("soul_shepherd_state")

    def test_stop_cancels_pending_retry(self, make_engine, scheduler):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 100
        engine.start_session(25)

        engine.stop()

        assert scheduler.pending() == []

    def test_recovers_when_storage_returns(self, make_engine):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 100
        engine.start_session(25)

        store.failures = 0
        engine.pause_session()

        assert engine.persistence_ok is True
        assert b'"is_paused": true' in store.get("soul_shepherd_state")

    def test_save_state_reports_failure(self, make_engine):
        store = FlakyStore()
        engine = make_engine(store=store)
        store.failures = 100

        assert engine.save_state(engine.get_state()) is False


class TestSharedClock:
    def test_manual_scheduler_drives_clock(self):
        scheduler = ManualScheduler(START)
        scheduler.advance(90)

        assert scheduler.now() == START + timedelta(seconds=90)

    def test_jump_fires_nothing(self):
        scheduler = ManualScheduler(START)
        fired = []
        scheduler.schedule_once(10, lambda: fired.append(True))

        scheduler.jump(60)

        assert fired == []
        assert scheduler.advance(0) == 1
