"""
Game systems for Soul Shepherd.

Each system operates on the GameState owned by StateManager and commits
through its transactions.
"""

from .rewards import RewardCalculator, apply_compromise_penalty, apply_emergency_penalty
from .progression import ProgressionManager
from .idle import IdleCollector, calculate_idle_souls
from .sessions import SessionManager, SessionPhase, ALLOWED_OPERATIONS
from .upgrades import UpgradeSystem, upgrade_cost
from .scheduler import Scheduler, ThreadingScheduler, ManualScheduler

__all__ = [
    "RewardCalculator",
    "apply_compromise_penalty",
    "apply_emergency_penalty",
    "ProgressionManager",
    "IdleCollector",
    "calculate_idle_souls",
    "SessionManager",
    "SessionPhase",
    "ALLOWED_OPERATIONS",
    "UpgradeSystem",
    "upgrade_cost",
    # Scheduling
    "Scheduler",
    "ThreadingScheduler",
    "ManualScheduler",
]
