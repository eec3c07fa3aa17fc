"""
Game engine facade.

Wires the state layer and systems together and serializes every
operation behind one re-entrant lock, so user commands, timer callbacks
and signal deliveries run strictly one at a time in arrival order.

Usage:
    engine = GameEngine("shepherd_data")
    engine.start()                 # load, repair, recover missed timers

    engine.start_session(25, task_id="write-report")
    ...
    outcome = engine.end_session()
"""

import functools
import logging
import random
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .config import DEFAULT_CONFIG, Config
from .errors import EngineError
from .state.catalog import StubbornSoul
from .state.event_bus import EventBus, get_event_bus
from .state.manager import LoadReport, StateManager
from .state.schema import (
    BossResult,
    GameState,
    LevelResult,
    PlayerStats,
    SessionOutcome,
    SessionState,
    SettingsState,
    StatName,
)
from .state.store import JsonFileStore, KeyValueStore
from .systems.idle import IdleCollector
from .systems.progression import ProgressionManager
from .systems.rewards import RewardCalculator
from .systems.scheduler import Scheduler, ThreadingScheduler
from .systems.sessions import SessionManager, SessionPhase
from .systems.upgrades import UpgradeSystem

logger = logging.getLogger(__name__)


def _command(method):
    """Run a public operation under the engine lock, once started."""

    @functools.wraps(method)
    def wrapper(self: "GameEngine", *args, **kwargs):
        with self._lock:
            self._require_started()
            return method(self, *args, **kwargs)

    return wrapper


class GameEngine:
    """
    Single entry point for presentation surfaces.

    Storage is delegated to a KeyValueStore:
    - JsonFileStore for production (pass a directory)
    - MemoryStore for testing
    """

    def __init__(
        self,
        store: KeyValueStore | Path | str = "shepherd_data",
        config: Config | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], datetime] | None = None,
        random_source: Callable[[], float] = random.random,
        event_bus: EventBus | None = None,
    ):
        if isinstance(store, (Path, str)):
            store = JsonFileStore(store)
        self.config: Config = {**DEFAULT_CONFIG, **(config or {})}

        self.store = store
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock or datetime.now
        self.event_bus = event_bus or get_event_bus()
        self._lock = threading.RLock()

        self.state = StateManager(
            store,
            event_bus=self.event_bus,
            clock=self.clock,
            retries=self.config["save_retries"],
            retry_base_delay_ms=self.config["retry_base_delay_ms"],
            defer=self._defer_retry,
        )
        self.rewards = RewardCalculator(random_source)
        self.progression = ProgressionManager(self.state, self.event_bus)
        self.idle = IdleCollector(self.state, self.event_bus, self.clock)
        self.sessions = SessionManager(
            self.state,
            self.rewards,
            self.progression,
            self.idle,
            self.scheduler,
            lock=self._lock,
            event_bus=self.event_bus,
            clock=self.clock,
        )
        self.upgrades = UpgradeSystem(self.state)

        self._started = False
        self._idle_timer: Any = None
        self._retry_timer: Any = None
        self.last_recovery: SessionOutcome | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    def _require_started(self) -> None:
        if not self._started:
            raise EngineError("Engine not started; call start() first")

    def start(self) -> LoadReport:
        """Load state and reconcile missed timers before accepting commands."""
        with self._lock:
            self.state.load()
            self._started = True
            self.last_recovery = self.sessions.recover()
            self._arm_idle_tick()
            logger.info("Engine started (phase=%s)", self.sessions.phase.value)
            return self.state.last_load

    def stop(self) -> None:
        """Cancel all timers. State stays as last persisted."""
        with self._lock:
            self.sessions.cancel_timers()
            if self._idle_timer is not None:
                self.scheduler.cancel(self._idle_timer)
                self._idle_timer = None
            if self._retry_timer is not None:
                self.scheduler.cancel(self._retry_timer)
                self._retry_timer = None
            self._started = False
            logger.info("Engine stopped")

    @_command
    def reattach(self) -> SessionOutcome | None:
        """A surface reconnected: finalize anything whose end was missed."""
        outcome = self.sessions.recover()
        if outcome is not None:
            self.last_recovery = outcome
        return outcome

    @property
    def persistence_ok(self) -> bool:
        """False while a write is failing or still waiting on a retry."""
        return self.state.last_persistence_failure is None and not self.state.retry_pending

    def _defer_retry(self, delay: float, retry: Callable[[], None]) -> None:
        """Run a save retry on the scheduler, under the lock, without blocking the caller."""

        def fire() -> None:
            with self._lock:
                self._retry_timer = None
                retry()

        # At most one chain is live; a newer one supersedes the last
        if self._retry_timer is not None:
            self.scheduler.cancel(self._retry_timer)
        self._retry_timer = self.scheduler.schedule_once(delay, fire)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @_command
    def start_session(self, duration: int | None = None, task_id: str = "") -> SessionState:
        if duration is None:
            duration = self.state.current.settings.default_session_duration
        return self.sessions.start_session(duration, task_id)

    @_command
    def end_session(self) -> SessionOutcome:
        return self.sessions.end_session()

    @_command
    def emergency_end_session(self) -> SessionOutcome:
        return self.sessions.emergency_end_session()

    @_command
    def pause_session(self) -> SessionState:
        return self.sessions.pause_session()

    @_command
    def resume_session(self) -> SessionState:
        return self.sessions.resume_session()

    @_command
    def get_current_session(self) -> SessionState | None:
        return self.sessions.get_current_session()

    @_command
    def get_session_phase(self) -> SessionPhase:
        return self.sessions.phase

    @_command
    def mark_compromised(self, reason: str = "navigation") -> bool:
        return self.sessions.mark_compromised(reason)

    @_command
    def handle_idle_state(self, idle_state: str) -> bool:
        return self.sessions.handle_idle_state(idle_state)

    @_command
    def handle_site_visit(self, url: str, is_discouraged: bool) -> bool:
        return self.sessions.handle_site_visit(url, is_discouraged)

    @_command
    def end_break(self) -> bool:
        return self.sessions.end_break()

    # -------------------------------------------------------------------------
    # Progression
    # -------------------------------------------------------------------------

    @_command
    def get_current_boss(self) -> StubbornSoul:
        return self.progression.get_current_boss()

    @_command
    def is_current_boss_unlocked(self) -> bool:
        return self.progression.is_current_boss_unlocked()

    @_command
    def damage_boss(self, amount: float) -> BossResult:
        return self.progression.damage_boss(amount)

    @_command
    def add_experience(self, amount: float) -> LevelResult:
        return self.progression.add_experience(amount)

    @_command
    def allocate_skill_point(self, stat: StatName | str) -> PlayerStats:
        return self.upgrades.allocate_skill_point(stat)

    @_command
    def upgrade_stat(self, stat: StatName | str) -> PlayerStats:
        return self.upgrades.upgrade_stat(stat)

    @_command
    def get_upgrade_cost(self, stat: StatName | str) -> int:
        return self.upgrades.get_upgrade_cost(stat)

    # -------------------------------------------------------------------------
    # Idle collection
    # -------------------------------------------------------------------------

    @_command
    def collect_idle_souls(self, now: datetime | None = None) -> float:
        return self.idle.collect_idle_souls(now)

    def _arm_idle_tick(self) -> None:
        delay = self.config["idle_collection_interval_minutes"] * 60
        self._idle_timer = self.scheduler.schedule_once(delay, self._on_idle_tick)

    def _on_idle_tick(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._idle_timer = None
            try:
                self.idle.collect_idle_souls()
            finally:
                self._arm_idle_tick()

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @_command
    def get_state(self) -> GameState:
        return self.state.get()

    @_command
    def load_state(self) -> GameState:
        """Re-read the store, then reconcile timers with what was loaded."""
        self.sessions.cancel_timers()
        self.state.load()
        self.sessions.recover()
        return self.state.get()

    @_command
    def save_state(self, state: GameState) -> bool:
        """Adopt and persist `state`. Returns False if it is not yet durable."""
        persisted = self.state.commit(state)

        self.sessions.cancel_timers()
        self.sessions.recover()
        return persisted

    @_command
    def update_state(self, partial: dict) -> GameState:
        return self.state.update(partial)

    @_command
    def update_settings(self, **changes: Any) -> SettingsState:
        return self.state.update({"settings": changes}).settings
