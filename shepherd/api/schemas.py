"""
Pydantic schemas for the Soul Shepherd HTTP API.

Requests are validated here; range checks on durations and settings
stay in the engine so every surface gets the same errors.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from ..state.catalog import StubbornSoul
from ..state.manager import LoadReport
from ..state.schema import (
    BossResult,
    GameState,
    IdleCollection,
    LevelResult,
    PlayerStats,
    SessionOutcome,
    SessionState,
    SettingsState,
    StatName,
)
from ..systems.sessions import SessionPhase


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------

class StartSessionRequest(BaseModel):
    duration: int | None = Field(default=None, description="Minutes; settings default if omitted")
    task_id: str = ""


class IdleSignalRequest(BaseModel):
    state: Literal["idle", "locked", "active"]


class NavigationSignalRequest(BaseModel):
    url: str
    is_discouraged: bool


class IdleCollectRequest(BaseModel):
    now: datetime | None = None


class StatRequest(BaseModel):
    stat: StatName


class AmountRequest(BaseModel):
    amount: float


class SettingsPatch(BaseModel):
    """Partial settings update. Only fields that are sent are applied."""
    default_session_duration: int | None = None
    default_break_duration: int | None = None
    auto_start_next_session: bool | None = None
    idle_threshold: int | None = None
    strict_mode: bool | None = None
    discouraged_sites: list[str] | None = None
    blocked_sites: list[str] | None = None
    notifications_enabled: bool | None = None


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------

class CommandResponse(BaseModel):
    """Base for successful commands. persisted=False means storage is failing."""
    ok: bool = True
    persisted: bool = True


class StateResponse(CommandResponse):
    state: GameState
    phase: SessionPhase
    load: LoadReport | None = None


class SessionResponse(CommandResponse):
    session: SessionState | None
    phase: SessionPhase


class OutcomeResponse(CommandResponse):
    outcome: SessionOutcome


class SignalResponse(CommandResponse):
    handled: bool
    phase: SessionPhase


class BreakResponse(CommandResponse):
    ended: bool


class BossResponse(CommandResponse):
    boss: StubbornSoul
    current_resolve: float
    unlocked: bool
    defeated_bosses: list[int]


class BossDamageResponse(CommandResponse):
    result: BossResult


class ExperienceResponse(CommandResponse):
    result: LevelResult


class IdleCollectResponse(CommandResponse):
    embers: float
    collection: IdleCollection | None = None


class StatsResponse(CommandResponse):
    stats: PlayerStats
    skill_points: int
    soul_embers: float


class SettingsResponse(CommandResponse):
    settings: SettingsState


class ErrorResponse(BaseModel):
    """Standard error response."""
    ok: bool = False
    error: str
    code: str
