"""
Focus session orchestrator.

Owns the session state machine:
    NO_SESSION -> ACTIVE <-> PAUSED -> NO_SESSION

Compromise is a flag on a running session, not a phase: once set it
sticks until the session ends.

Timers are triggers, never the source of truth. Every end is computed
from the stored start time, capped at the planned end, so a late timer
or a restart can neither lose a session nor extend it.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from ..errors import ConcurrentSessionError, InvalidTransitionError, ValidationError
from ..state.constants import (
    IDLE_TIME_COMPROMISE_RATIO,
    MAX_SESSION_DURATION,
    MIN_SESSION_DURATION,
)
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import (
    BossResult,
    BreakState,
    GameState,
    SessionOutcome,
    SessionResult,
    SessionState,
    StatisticsState,
)
from .idle import IdleCollector, advance_collection_time
from .progression import ProgressionManager
from .rewards import RewardCalculator, apply_emergency_penalty
from .scheduler import Scheduler

if TYPE_CHECKING:
    from ..state.manager import StateManager

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    """Phase of the single focus-session slot."""
    NO_SESSION = "no_session"
    ACTIVE = "active"
    PAUSED = "paused"


# Operations each phase accepts
ALLOWED_OPERATIONS: dict[SessionPhase, set[str]] = {
    SessionPhase.NO_SESSION: {"start"},
    SessionPhase.ACTIVE: {"pause", "end", "emergency_end", "mark_compromised"},
    SessionPhase.PAUSED: {"resume", "end", "emergency_end", "mark_compromised"},
}

IDLE_STATES = {"idle", "locked"}
ACTIVE_STATES = {"active"}


def session_phase(session: SessionState | None) -> SessionPhase:
    if session is None or not session.is_active:
        return SessionPhase.NO_SESSION
    return SessionPhase.PAUSED if session.is_paused else SessionPhase.ACTIVE


def validate_duration(duration: Any) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError(f"Session duration must be whole minutes, got {duration!r}")
    if not MIN_SESSION_DURATION <= duration <= MAX_SESSION_DURATION:
        raise ValidationError(
            f"Session duration must be between {MIN_SESSION_DURATION} and "
            f"{MAX_SESSION_DURATION} minutes, got {duration}"
        )
    return duration


def exceeds_idle_allowance(session: SessionState) -> bool:
    """True once idle time is over 25% of the planned duration."""
    return session.idle_time > IDLE_TIME_COMPROMISE_RATIO * session.duration * 60


def update_streak(statistics: StatisticsState, day: date) -> None:
    """
    Advance the daily streak for a session completed on `day`.

    Same day keeps the streak, the next day extends it, a gap resets it
    to 1. A day earlier than the last recorded one (clock skew) is ignored.
    """
    last = statistics.last_session_date
    if last is None:
        statistics.current_streak = 1
    else:
        gap = (day - last).days
        if gap < 0:
            return
        if gap == 0:
            statistics.current_streak = max(statistics.current_streak, 1)
        elif gap == 1:
            statistics.current_streak += 1
        else:
            statistics.current_streak = 1

    statistics.longest_streak = max(statistics.longest_streak, statistics.current_streak)
    statistics.last_session_date = day


class SessionManager:
    """
    Runs focus sessions and the breaks between them.

    Responsibilities:
    - Phase enforcement for start/pause/resume/end
    - Session and break timers, with stale-delivery detection
    - Finalizing sessions: rewards, progression, statistics, break
    - Recovering sessions whose end was missed

    Every public method and timer callback runs under the engine lock.
    """

    def __init__(
        self,
        state: "StateManager",
        rewards: RewardCalculator,
        progression: ProgressionManager,
        idle: IdleCollector,
        scheduler: Scheduler,
        lock: threading.RLock | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state = state
        self.rewards = rewards
        self.progression = progression
        self.idle = idle
        self.scheduler = scheduler
        self._lock = lock or threading.RLock()
        self.event_bus = event_bus or get_event_bus()
        self.clock = clock

        self._session_timer: Any = None
        self._break_timer: Any = None
        self.last_outcome: SessionOutcome | None = None

    @property
    def phase(self) -> SessionPhase:
        return session_phase(self.state.current.session)

    def _require(self, operation: str) -> None:
        phase = self.phase
        if operation not in ALLOWED_OPERATIONS[phase]:
            raise InvalidTransitionError(phase, operation)

    def get_current_session(self) -> SessionState | None:
        with self._lock:
            session = self.state.current.session
            return session.model_copy() if session else None

    # -------------------------------------------------------------------------
    # Lifecycle commands
    # -------------------------------------------------------------------------

    def start_session(self, duration: int, task_id: str = "") -> SessionState:
        """
        Begin a focus session of `duration` minutes.

        Pending idle accrual is paid out first and any running break ends.
        """
        with self._lock:
            validate_duration(duration)
            if self.phase is not SessionPhase.NO_SESSION:
                raise ConcurrentSessionError()

            now = self.clock()
            had_break = self.state.current.break_state is not None

            with self.state.transaction() as draft:
                collection = self.idle.apply_collection(draft, now)
                draft.break_state = None
                draft.session = SessionState(start_time=now, duration=duration, task_id=task_id)
                session = draft.session.model_copy()

            self.idle.record(collection)
            if had_break:
                self._cancel_break_timer()
                self.event_bus.emit(EventType.BREAK_ENDED, reason="session_started")
            self._arm_session_timer(session)

            logger.info("Session started: %d min, task=%r", duration, task_id)
            self.event_bus.emit(
                EventType.SESSION_STARTED,
                duration=duration,
                task_id=task_id,
                start_time=now.isoformat(),
            )
            return session

    def pause_session(self) -> SessionState:
        with self._lock:
            self._require("pause")
            now = self.clock()

            with self.state.transaction() as draft:
                draft.session.is_paused = True
                draft.session.paused_at = now
                session = draft.session.model_copy()

            logger.info("Session paused")
            self.event_bus.emit(EventType.SESSION_PAUSED, paused_at=now.isoformat())
            return session

    def resume_session(self) -> SessionState:
        """Fold the pause into idle time; re-apply the idle allowance."""
        with self._lock:
            self._require("resume")
            now = self.clock()

            with self.state.transaction() as draft:
                session = draft.session
                segment = self._pause_segment(session, now)
                session.idle_time = min(session.idle_time + segment, self._elapsed(session, now))
                session.is_paused = False
                session.paused_at = None
                newly_compromised = not session.is_compromised and exceeds_idle_allowance(session)
                if newly_compromised:
                    session.is_compromised = True
                snapshot = session.model_copy()

            logger.info("Session resumed after %.0fs idle", segment)
            self.event_bus.emit(EventType.SESSION_RESUMED, idle_seconds=segment)
            if newly_compromised:
                logger.info("Session compromised: idle time over allowance")
                self.event_bus.emit(EventType.SESSION_COMPROMISED, reason="idle")
            return snapshot

    def mark_compromised(self, reason: str = "navigation") -> bool:
        """Flag the running session. Returns False if it already was."""
        with self._lock:
            self._require("mark_compromised")
            if self.state.current.session.is_compromised:
                return False

            with self.state.transaction() as draft:
                draft.session.is_compromised = True

            logger.info("Session compromised: %s", reason)
            self.event_bus.emit(EventType.SESSION_COMPROMISED, reason=reason)
            return True

    def end_session(self) -> SessionOutcome:
        """End the running session now, or at its planned end if that has passed."""
        with self._lock:
            self._require("end")
            return self._finish(self.clock())

    def emergency_end_session(self) -> SessionOutcome:
        """Abort the running session: active minutes only, rewards halved."""
        with self._lock:
            self._require("emergency_end")
            return self._finish(self.clock(), emergency=True)

    # -------------------------------------------------------------------------
    # External signals
    # -------------------------------------------------------------------------

    def handle_idle_state(self, idle_state: str) -> bool:
        """
        React to an idle/active transition from the signal source.

        Returns True if the session was paused or resumed.
        """
        with self._lock:
            if idle_state not in IDLE_STATES | ACTIVE_STATES:
                raise ValidationError(f"Unknown idle state: {idle_state!r}")

            phase = self.phase
            if idle_state in IDLE_STATES and phase is SessionPhase.ACTIVE:
                self.pause_session()
                return True
            if idle_state in ACTIVE_STATES and phase is SessionPhase.PAUSED:
                self.resume_session()
                return True

            if phase is SessionPhase.NO_SESSION:
                logger.warning("Ignoring stale idle signal %r with no session", idle_state)
            else:
                logger.debug("Idle signal %r ignored during %s phase", idle_state, phase.value)
            return False

    def handle_site_visit(self, url: str, is_discouraged: bool) -> bool:
        """Mark the running session compromised on a discouraged visit."""
        with self._lock:
            if not is_discouraged:
                return False
            if self.phase is SessionPhase.NO_SESSION:
                logger.warning("Ignoring stale site visit %s with no session", url)
                return False
            return self.mark_compromised(reason=f"visited {url}")

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _elapsed(self, session: SessionState, now: datetime) -> float:
        end = min(now, session.planned_end)
        return max(0.0, (end - session.start_time).total_seconds())

    def _pause_segment(self, session: SessionState, now: datetime) -> float:
        if not session.is_paused or session.paused_at is None:
            return 0.0
        end = min(now, session.planned_end)
        return max(0.0, (end - session.paused_at).total_seconds())

    def _finish(self, now: datetime, emergency: bool = False, recovered: bool = False) -> SessionOutcome:
        session = self.state.current.session
        end_time = min(now, session.planned_end)

        elapsed = self._elapsed(session, now)
        idle = min(session.idle_time + self._pause_segment(session, now), elapsed)
        active = elapsed - idle

        # Only active minutes earn rewards, however the session ended
        credited = min(float(session.duration), active / 60)

        with self.state.transaction() as draft:
            final = draft.session
            final.idle_time = idle
            final.active_time = active
            final.is_paused = False
            final.paused_at = None
            if exceeds_idle_allowance(final):
                final.is_compromised = True
            final.is_active = False

            result = self.rewards.calculate_rewards(final, draft.player.stats, duration=credited)
            if emergency:
                result = apply_emergency_penalty(result)

            boss = self.progression.apply_boss_damage(draft, result.boss_progress)
            level = self.progression.apply_experience(draft, result.soul_insight)
            draft.player.soul_embers += result.soul_embers
            self._record_statistics(draft, result, boss, credited, end_time.date())

            draft.session = None
            advance_collection_time(draft, end_time)
            draft.break_state = BreakState(
                start_time=end_time, duration=draft.settings.default_break_duration
            )
            break_state = draft.break_state.model_copy()

        self._cancel_session_timer()

        outcome = SessionOutcome(
            result=result,
            level=level,
            boss=boss,
            credited_duration=credited,
            ended_at=end_time,
            was_emergency=emergency,
            was_recovered=recovered,
        )
        self.last_outcome = outcome

        logger.info(
            "Session ended%s: %.1f credited min, insight=%.2f embers=%.2f boss=%.2f%s%s",
            " (emergency)" if emergency else "",
            credited,
            result.soul_insight,
            result.soul_embers,
            result.boss_progress,
            ", critical" if result.was_critical else "",
            ", compromised" if result.was_compromised else "",
        )
        self.event_bus.emit(
            EventType.SESSION_ENDED,
            outcome=outcome.model_dump(mode="json"),
        )
        self.progression.announce_boss(boss)
        self.progression.announce_level(level)

        self.event_bus.emit(EventType.BREAK_STARTED, duration=break_state.duration)
        self._schedule_break(break_state)
        return outcome

    def _record_statistics(
        self,
        state: GameState,
        result: SessionResult,
        boss: BossResult,
        credited: float,
        day: date,
    ) -> None:
        statistics = state.statistics
        statistics.total_sessions += 1
        statistics.total_focus_time += credited
        statistics.total_soul_insight_earned += result.soul_insight
        statistics.total_soul_embers_earned += result.soul_embers
        if boss.was_defeated:
            statistics.bosses_defeated += 1
        update_streak(statistics, day)

    # -------------------------------------------------------------------------
    # Breaks
    # -------------------------------------------------------------------------

    def end_break(self, reason: str = "manual") -> bool:
        """End the running break. Returns False if there was none."""
        with self._lock:
            if self.state.current.break_state is None:
                return False

            with self.state.transaction() as draft:
                draft.break_state = None

            self._cancel_break_timer()
            logger.info("Break ended (%s)", reason)
            self.event_bus.emit(EventType.BREAK_ENDED, reason=reason)
            return True

    def _schedule_break(self, break_state: BreakState) -> None:
        if self.clock() >= break_state.end_time:
            self.end_break(reason="expired")
            return
        self._arm_break_timer(break_state)

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _arm_session_timer(self, session: SessionState) -> None:
        self._cancel_session_timer()
        token = session.start_time
        delay = (session.planned_end - self.clock()).total_seconds()
        self._session_timer = self.scheduler.schedule_once(
            max(0.0, delay), lambda: self._on_session_timer(token)
        )

    def _cancel_session_timer(self) -> None:
        if self._session_timer is not None:
            self.scheduler.cancel(self._session_timer)
            self._session_timer = None

    def _on_session_timer(self, token: datetime) -> None:
        with self._lock:
            session = self.state.current.session
            if session is None or session.start_time != token:
                logger.warning("Ignoring stale session timer for session started %s", token)
                return

            self._session_timer = None
            now = self.clock()
            if now < session.planned_end:
                self._arm_session_timer(session)
                return
            self._finish(now)

    def _arm_break_timer(self, break_state: BreakState) -> None:
        self._cancel_break_timer()
        token = break_state.start_time
        delay = (break_state.end_time - self.clock()).total_seconds()
        self._break_timer = self.scheduler.schedule_once(
            max(0.0, delay), lambda: self._on_break_timer(token)
        )

    def _cancel_break_timer(self) -> None:
        if self._break_timer is not None:
            self.scheduler.cancel(self._break_timer)
            self._break_timer = None

    def _on_break_timer(self, token: datetime) -> None:
        with self._lock:
            break_state = self.state.current.break_state
            if break_state is None or break_state.start_time != token:
                logger.warning("Ignoring stale break timer for break started %s", token)
                return

            self._break_timer = None
            if self.clock() < break_state.end_time:
                self._arm_break_timer(break_state)
                return
            self.end_break(reason="completed")

    def cancel_timers(self) -> None:
        with self._lock:
            self._cancel_session_timer()
            self._cancel_break_timer()

    # -------------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------------

    def recover(self) -> SessionOutcome | None:
        """
        Reconcile persisted session and break state with the clock.

        Run on startup and whenever a surface reattaches. A session past its
        planned end is finalized as if its timer had fired on time; a live
        one gets its timer re-armed. Breaks are treated the same way.
        """
        with self._lock:
            now = self.clock()
            current = self.state.current

            if current.session is not None:
                session = current.session
                if now >= session.planned_end:
                    logger.info(
                        "Recovering session that should have ended at %s",
                        session.planned_end.isoformat(),
                    )
                    return self._finish(now, recovered=True)
                self._arm_session_timer(session)

            break_state = current.break_state
            if break_state is not None:
                self._schedule_break(break_state)
            return None
