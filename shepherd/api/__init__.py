"""
Soul Shepherd API Server.

FastAPI-based REST surface over the game engine, so any presentation
collaborator (popup, options page, test harness) drives the same core.
"""

from .server import create_app, ShepherdAPI
from .schemas import (
    StateResponse,
    SessionResponse,
    OutcomeResponse,
    ErrorResponse,
)

__all__ = [
    "create_app",
    "ShepherdAPI",
    "StateResponse",
    "SessionResponse",
    "OutcomeResponse",
    "ErrorResponse",
]
