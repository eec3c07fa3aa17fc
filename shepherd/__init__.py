"""Soul Shepherd: a gamified focus-session engine."""

from .engine import GameEngine
from .errors import (
    EngineError,
    ValidationError,
    ConcurrentSessionError,
    InvalidTransitionError,
    PersistenceFailure,
    StateCorruption,
    CatalogIndexError,
)

__version__ = "1.1.0"

__all__ = [
    "GameEngine",
    "EngineError",
    "ValidationError",
    "ConcurrentSessionError",
    "InvalidTransitionError",
    "PersistenceFailure",
    "StateCorruption",
    "CatalogIndexError",
]
