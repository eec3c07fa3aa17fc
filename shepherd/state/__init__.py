"""State management for Soul Shepherd."""

from .schema import (
    GameState,
    PlayerState,
    PlayerStats,
    SessionState,
    BreakState,
    ProgressionState,
    IdleState,
    StatisticsState,
    SettingsState,
    StatName,
    SessionResult,
    LevelResult,
    BossResult,
    SessionOutcome,
    IdleCollection,
    SCHEMA_VERSION,
)
from .catalog import StubbornSoul, STUBBORN_SOULS, get_boss, is_boss_unlocked
from .constants import level_for_insight, level_threshold
from .manager import StateManager, LoadReport
from .store import KeyValueStore, JsonFileStore, MemoryStore, STATE_KEY
from .event_bus import (
    EventBus,
    EventType,
    GameEvent,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    # Schema
    "GameState",
    "PlayerState",
    "PlayerStats",
    "SessionState",
    "BreakState",
    "ProgressionState",
    "IdleState",
    "StatisticsState",
    "SettingsState",
    "StatName",
    "SessionResult",
    "LevelResult",
    "BossResult",
    "SessionOutcome",
    "IdleCollection",
    "SCHEMA_VERSION",
    # Catalog
    "StubbornSoul",
    "STUBBORN_SOULS",
    "get_boss",
    "is_boss_unlocked",
    "level_for_insight",
    "level_threshold",
    # Manager
    "StateManager",
    "LoadReport",
    # Store
    "KeyValueStore",
    "JsonFileStore",
    "MemoryStore",
    "STATE_KEY",
    # Event Bus
    "EventBus",
    "EventType",
    "GameEvent",
    "get_event_bus",
    "reset_event_bus",
]
