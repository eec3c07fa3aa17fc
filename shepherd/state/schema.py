"""
Pydantic models for Soul Shepherd game state.

The persisted document is a single versioned GameState. Ephemeral result
types (SessionResult, LevelResult, ...) live here too so every layer speaks
the same vocabulary, but they are never written to the store.
"""

from datetime import date, datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .catalog import STUBBORN_SOULS, StubbornSoul
from .constants import (
    DEFAULT_IDLE_THRESHOLD,
    MAX_BREAK_DURATION,
    MAX_LEVEL,
    MAX_SESSION_DURATION,
    MAX_SOUL_INSIGHT,
    MIN_BREAK_DURATION,
    MIN_IDLE_THRESHOLD,
    MIN_SESSION_DURATION,
    level_threshold,
)


SCHEMA_VERSION = "1.1.0"


class StateModel(BaseModel):
    """Base for persisted models: assignments are re-validated."""
    model_config = ConfigDict(validate_assignment=True)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class StatName(str, Enum):
    SPIRIT = "spirit"        # Insight bonus and boss damage
    HARMONY = "harmony"      # Critical hit probability
    SOULFLOW = "soulflow"    # Ember bonus and idle rate


# -----------------------------------------------------------------------------
# Player
# -----------------------------------------------------------------------------

class PlayerStats(StateModel):
    spirit: float = Field(default=1, ge=0)
    harmony: float = Field(default=0.05, ge=0)
    soulflow: float = Field(default=1, ge=0)


def _initial_to_next_level() -> float:
    return level_threshold(2)


class PlayerState(StateModel):
    """
    The shepherd's persistent profile.

    soul_insight is lifetime experience and never decreases. It saturates
    at MAX_SOUL_INSIGHT.
    soul_insight_to_next_level is the remaining amount until the next level.
    """
    level: int = Field(default=1, ge=1, le=MAX_LEVEL)
    soul_insight: float = Field(default=0, ge=0, le=MAX_SOUL_INSIGHT, allow_inf_nan=False)
    soul_insight_to_next_level: float = Field(default_factory=_initial_to_next_level, gt=0)
    soul_embers: float = Field(default=0, ge=0)
    stats: PlayerStats = Field(default_factory=PlayerStats)
    skill_points: int = Field(default=0, ge=0)


# -----------------------------------------------------------------------------
# Session and break
# -----------------------------------------------------------------------------

class SessionState(StateModel):
    """
    The single in-flight focus session.

    idle_time and active_time are seconds. paused_at marks the start of the
    current pause segment; that segment is folded into idle_time on resume.
    """
    start_time: datetime
    duration: int = Field(ge=MIN_SESSION_DURATION, le=MAX_SESSION_DURATION)  # Minutes
    task_id: str = ""
    is_active: bool = True
    is_paused: bool = False
    is_compromised: bool = False
    paused_at: datetime | None = None
    idle_time: float = Field(default=0, ge=0)
    active_time: float = Field(default=0, ge=0)

    @property
    def planned_end(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)


class BreakState(StateModel):
    """Rest period following a completed session."""
    start_time: datetime
    duration: int = Field(ge=MIN_BREAK_DURATION, le=MAX_BREAK_DURATION)  # Minutes
    is_active: bool = True

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)


# -----------------------------------------------------------------------------
# Progression
# -----------------------------------------------------------------------------

class IdleState(StateModel):
    last_collection_time: datetime = Field(default_factory=datetime.now)
    accumulated_souls: float = Field(default=0, ge=0)


class ProgressionState(StateModel):
    current_boss_index: int = Field(default=0, ge=0)
    current_boss_resolve: float = Field(default=STUBBORN_SOULS[0].initial_resolve, ge=0)
    defeated_bosses: set[int] = Field(default_factory=set)
    idle_state: IdleState = Field(default_factory=IdleState)


class StatisticsState(StateModel):
    """Lifetime counters. Only session completion and idle collection move them."""
    total_sessions: int = Field(default=0, ge=0)
    total_focus_time: float = Field(default=0, ge=0)       # Credited minutes
    bosses_defeated: int = Field(default=0, ge=0)
    total_soul_insight_earned: float = Field(default=0, ge=0)
    total_soul_embers_earned: float = Field(default=0, ge=0)
    total_idle_souls_collected: float = Field(default=0, ge=0)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_session_date: date | None = None


class SettingsState(StateModel):
    """User preferences. The engine reads idle_threshold and default_break_duration."""
    default_session_duration: int = Field(
        default=25, ge=MIN_SESSION_DURATION, le=MAX_SESSION_DURATION
    )
    default_break_duration: int = Field(
        default=5, ge=MIN_BREAK_DURATION, le=MAX_BREAK_DURATION
    )
    auto_start_next_session: bool = False
    idle_threshold: int = Field(default=DEFAULT_IDLE_THRESHOLD, ge=MIN_IDLE_THRESHOLD)  # Seconds
    strict_mode: bool = False
    discouraged_sites: list[str] = Field(default_factory=list)
    blocked_sites: list[str] = Field(default_factory=list)
    notifications_enabled: bool = True


# -----------------------------------------------------------------------------
# Root aggregate
# -----------------------------------------------------------------------------

class GameState(StateModel):
    """
    Root aggregate, owned by StateManager.

    session and break_state are None outside a session or break.
    """
    schema_version: str = SCHEMA_VERSION
    player: PlayerState = Field(default_factory=PlayerState)
    session: SessionState | None = None
    break_state: BreakState | None = None
    progression: ProgressionState = Field(default_factory=ProgressionState)
    statistics: StatisticsState = Field(default_factory=StatisticsState)
    settings: SettingsState = Field(default_factory=SettingsState)


# -----------------------------------------------------------------------------
# Ephemeral results (never persisted)
# -----------------------------------------------------------------------------

class SessionResult(BaseModel):
    soul_insight: float
    soul_embers: float
    boss_progress: float
    was_critical: bool
    was_compromised: bool
    idle_time: float
    active_time: float


class LevelResult(BaseModel):
    previous_level: int
    new_level: int
    leveled_up: bool
    skill_points_granted: int

    @property
    def levels_crossed(self) -> range:
        return range(self.previous_level + 1, self.new_level + 1)


class BossResult(BaseModel):
    remaining_resolve: float
    was_defeated: bool
    defeated_boss: StubbornSoul | None = None
    next_boss: StubbornSoul | None = None


class SessionOutcome(BaseModel):
    """Everything a completed session produced, for presentation layers."""
    result: SessionResult
    level: LevelResult
    boss: BossResult
    credited_duration: float        # Minutes the rewards were computed on
    ended_at: datetime
    was_emergency: bool = False
    was_recovered: bool = False


class IdleCollection(BaseModel):
    souls: float
    embers: float
    elapsed_seconds: float
    collected_at: datetime
    suppressed: bool = False
