"""
Pytest fixtures for Soul Shepherd engine tests.

Provides in-memory stores, a virtual-time scheduler that doubles as the
clock, and a fully wired engine.
"""

import pytest
from datetime import datetime
from pathlib import Path

# Add repo root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from shepherd.engine import GameEngine
from shepherd.state import MemoryStore, StateManager, reset_event_bus
from shepherd.systems.scheduler import ManualScheduler


START = datetime(2026, 1, 5, 9, 0, 0)  # A Monday morning


class FlakyStore(MemoryStore):
    """MemoryStore whose next `failures` writes raise OSError."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def set(self, key: str, data: bytes) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk unavailable")
        super().set(key, data)


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Every test gets its own global event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def scheduler():
    """Virtual clock starting at START."""
    return ManualScheduler(start=START)


@pytest.fixture
def memory_store():
    """In-memory store for testing."""
    return MemoryStore()


@pytest.fixture
def sleeps():
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def state_manager(memory_store, scheduler, sleeps):
    """Loaded StateManager over the memory store."""
    manager = StateManager(memory_store, clock=scheduler.now, sleep=sleeps.append)
    manager.load()
    return manager


@pytest.fixture
def make_engine(scheduler):
    """Factory for engines sharing the virtual clock. Crits never fire by default."""

    def _make(store=None, random_value: float = 0.99, start: bool = True, **kwargs):
        engine = GameEngine(
            store if store is not None else MemoryStore(),
            scheduler=scheduler,
            clock=scheduler.now,
            random_source=lambda: random_value,
            **kwargs,
        )
        if start:
            engine.start()
        return engine

    return _make


@pytest.fixture
def engine(make_engine, memory_store):
    """Started engine over the shared memory store."""
    return make_engine(store=memory_store)
