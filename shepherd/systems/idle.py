"""
Passive Content Soul accrual between focus sessions.

Collection integrates over the whole elapsed interval, so a single call
after days of suspension pays out the same as many small ticks would.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from ..state.constants import (
    CONTENT_SOUL_TO_EMBERS,
    IDLE_COLLECTION_BASE_RATE,
    IDLE_COLLECTION_INTERVAL_MINUTES,
    IDLE_COLLECTION_SOULFLOW_BONUS,
)
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import GameState, IdleCollection

if TYPE_CHECKING:
    from ..state.manager import StateManager

logger = logging.getLogger(__name__)


def calculate_idle_souls(elapsed_seconds: float, soulflow: float) -> float:
    """Content Souls earned over `elapsed_seconds` of idle time."""
    intervals = elapsed_seconds / (IDLE_COLLECTION_INTERVAL_MINUTES * 60)
    return intervals * IDLE_COLLECTION_BASE_RATE * (1 + soulflow * IDLE_COLLECTION_SOULFLOW_BONUS)


def advance_collection_time(state: GameState, when: datetime) -> None:
    """Move the idle watermark forward. It never moves backwards."""
    idle = state.progression.idle_state
    if when > idle.last_collection_time:
        idle.last_collection_time = when


class IdleCollector:
    """
    Converts idle wall-clock time into Soul Embers.

    Idle and focus rewards never overlap: while a session exists the
    watermark advances without paying anything.
    """

    def __init__(
        self,
        state: "StateManager",
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state = state
        self.event_bus = event_bus or get_event_bus()
        self.clock = clock
        self.last_collection: IdleCollection | None = None

    def collect_idle_souls(self, now: datetime | None = None) -> float:
        """Collect accrued souls up to `now`. Returns the Soul Embers paid."""
        now = now or self.clock()

        with self.state.transaction() as draft:
            collection = self.apply_collection(draft, now)

        self.record(collection)
        return collection.embers

    def record(self, collection: IdleCollection) -> None:
        """Remember and announce a committed collection."""
        self.last_collection = collection
        if collection.souls > 0:
            logger.info(
                "Collected %.2f idle souls (%.2f embers) over %.0fs",
                collection.souls, collection.embers, collection.elapsed_seconds,
            )
            self.event_bus.emit(
                EventType.IDLE_SOULS_COLLECTED,
                souls=collection.souls,
                embers=collection.embers,
                elapsed_seconds=collection.elapsed_seconds,
            )

    def apply_collection(self, state: GameState, now: datetime) -> IdleCollection:
        idle = state.progression.idle_state
        # Clock skew backwards yields nothing rather than a negative payout
        elapsed = max(0.0, (now - idle.last_collection_time).total_seconds())

        if state.session is not None:
            advance_collection_time(state, now)
            return IdleCollection(
                souls=0, embers=0, elapsed_seconds=elapsed, collected_at=now, suppressed=True
            )

        souls = calculate_idle_souls(elapsed, state.player.stats.soulflow)
        embers = souls * CONTENT_SOUL_TO_EMBERS

        advance_collection_time(state, now)
        idle.accumulated_souls += souls
        state.player.soul_embers += embers
        state.statistics.total_idle_souls_collected += souls

        return IdleCollection(souls=souls, embers=embers, elapsed_seconds=elapsed, collected_at=now)
