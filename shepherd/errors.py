"""
Error taxonomy for the Soul Shepherd engine.

Every error the engine raises derives from EngineError so collaborators
can catch the whole family at one seam.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .systems.sessions import SessionPhase


class EngineError(Exception):
    """Base class for engine errors."""
    pass


class ValidationError(EngineError, ValueError):
    """Bad input, rejected before any state is touched."""
    pass


class ConcurrentSessionError(EngineError):
    """A focus session was requested while one is already running."""

    def __init__(self, message: str = "Cannot start a new session while another session is active"):
        super().__init__(message)


class InvalidTransitionError(EngineError):
    """Attempted operation not valid in the current session phase."""

    def __init__(self, current: "SessionPhase", attempted: str):
        self.current = current
        self.attempted = attempted
        super().__init__(f"Cannot {attempted} during {current.value} phase.")


class PersistenceFailure(EngineError):
    """Durable write failed after all retries. In-memory state is still authoritative."""

    def __init__(self, attempts: int, cause: BaseException | None = None):
        self.attempts = attempts
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Storage write failed after {attempts} attempts{detail}")


class StateCorruption(EngineError):
    """Persisted document cannot be decoded or violates the schema beyond repair."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message)


class CatalogIndexError(EngineError, IndexError):
    """Boss index outside the static catalog. Indicates corrupted progression."""

    def __init__(self, index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(f"Boss index {index} outside catalog of {size} entries")
