"""
Canonical game state ownership.

StateManager is the single access point for GameState: it loads, repairs,
migrates and durably saves the document, and hands out atomic
transactions to the systems that mutate it.
"""

import json
import logging
import time
import types
from contextlib import contextmanager
from datetime import datetime
from typing import Annotated, Any, Callable, Iterator, Union, get_args, get_origin

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.fields import FieldInfo

from ..errors import PersistenceFailure, StateCorruption, ValidationError
from .catalog import STUBBORN_SOULS
from .constants import level_for_insight, level_threshold
from .event_bus import EventBus, EventType, get_event_bus
from .schema import SCHEMA_VERSION, GameState
from .store import STATE_KEY, KeyValueStore

logger = logging.getLogger(__name__)


def _version_tuple(version: str) -> tuple[int, ...]:
    """Convert version string to tuple for proper numeric comparison."""
    try:
        return tuple(int(x) for x in version.split("."))
    except (AttributeError, ValueError):
        return (0, 0, 0)


class LoadReport(BaseModel):
    """What happened during the last load, for collaborators that show notices."""
    first_run: bool = False
    data_lost: bool = False
    backup_key: str | None = None
    migrated_from: str | None = None
    repaired_fields: list[str] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Field-by-field repair
# -----------------------------------------------------------------------------

def _nested_model(annotation: Any) -> type[BaseModel] | None:
    """The BaseModel inside `annotation` (plain or Optional), if any."""
    if get_origin(annotation) in (Union, types.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        if len(args) != 1:
            return None
        annotation = args[0]
    if get_origin(annotation) is None and isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    return None


def _field_adapter(field: FieldInfo) -> TypeAdapter:
    if field.metadata:
        return TypeAdapter(Annotated[(field.annotation, *field.metadata)])
    return TypeAdapter(field.annotation)


def _repair(model_cls: type[BaseModel], raw: Any, path: str, repaired: list[str]) -> BaseModel:
    """
    Validate `raw` as `model_cls`, substituting defaults for bad fields.

    Optional fields that are missing or invalid fall back to their default
    and are recorded in `repaired`. A required field that cannot be
    recovered makes the whole model unrecoverable (StateCorruption), which
    the caller treats the same way one level up.
    """
    if not isinstance(raw, dict):
        raise StateCorruption(f"{path or 'document'} is not an object", path)

    try:
        return model_cls.model_validate(raw)
    except PydanticValidationError:
        pass

    values: dict[str, Any] = {}
    for name, field in model_cls.model_fields.items():
        field_path = f"{path}.{name}" if path else name

        if name not in raw:
            if field.is_required():
                raise StateCorruption(f"Missing required field {field_path}", field_path)
            repaired.append(field_path)
            continue

        value = raw[name]
        nested = _nested_model(field.annotation)
        if nested is not None and isinstance(value, dict):
            try:
                values[name] = _repair(nested, value, field_path, repaired)
            except StateCorruption:
                if field.is_required():
                    raise
                repaired.append(field_path)
            continue

        try:
            values[name] = _field_adapter(field).validate_python(value)
        except PydanticValidationError:
            if field.is_required():
                raise StateCorruption(f"Invalid required field {field_path}", field_path)
            repaired.append(field_path)

    return model_cls.model_validate(values)


def _deep_merge(base: dict, partial: dict, path: str = "") -> dict:
    """Merge `partial` into `base`. Unknown keys are rejected."""
    for key, value in partial.items():
        key_path = f"{path}.{key}" if path else key
        if key not in base:
            raise ValidationError(f"Unknown state field: {key_path}")
        if isinstance(value, dict) and isinstance(base[key], dict):
            _deep_merge(base[key], value, key_path)
        else:
            base[key] = value
    return base


# -----------------------------------------------------------------------------
# StateManager
# -----------------------------------------------------------------------------

class StateManager:
    """
    Owns the canonical GameState.

    Storage is delegated to a KeyValueStore. Writes are retried with
    exponential backoff; when every attempt fails the in-memory state stays
    authoritative and the failure is surfaced as a warning. Standalone, the
    backoff sleeps inline. Given a `defer` hook, retries are scheduled
    through it instead so the caller is never blocked.

    Not thread-safe on its own: GameEngine serializes access.
    """

    def __init__(
        self,
        store: KeyValueStore,
        event_bus: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
        retries: int = 3,
        retry_base_delay_ms: int = 100,
        sleep: Callable[[float], None] = time.sleep,
        defer: Callable[[float, Callable[[], None]], Any] | None = None,
    ):
        self.store = store
        self.event_bus = event_bus or get_event_bus()
        self.clock = clock
        self.retries = retries
        self.retry_base_delay_ms = retry_base_delay_ms
        self._sleep = sleep
        self._defer = defer

        self._state = self._fresh_state()
        self.last_load: LoadReport | None = None
        self.last_persistence_failure: PersistenceFailure | None = None
        self.retry_pending = False
        self._write_generation = 0

    @property
    def current(self) -> GameState:
        """Live in-memory state. Read-only by convention; mutate via transaction()."""
        return self._state

    def _fresh_state(self) -> GameState:
        state = GameState()
        state.progression.idle_state.last_collection_time = self.clock()
        return state

    # -------------------------------------------------------------------------
    # Load
    # -------------------------------------------------------------------------

    def load(self) -> GameState:
        """
        Read, migrate and repair the persisted document.

        First run yields defaults. An unparseable document is archived under
        a backup key and replaced with defaults (LoadReport.data_lost).
        """
        raw = self.store.get(STATE_KEY)
        needs_save = False

        if raw is None:
            logger.info("No saved state found, starting fresh")
            state = self._fresh_state()
            report = LoadReport(first_run=True)
            needs_save = True
        else:
            try:
                state, report = self._decode(raw)
                needs_save = bool(report.migrated_from or report.repaired_fields)
            except StateCorruption as e:
                state, report = self._reset_corrupt(raw, e)
                needs_save = True

        self._state = state
        self.last_load = report
        if needs_save:
            self._persist()

        self.event_bus.emit(
            EventType.STATE_LOADED,
            first_run=report.first_run,
            data_lost=report.data_lost,
            repaired_fields=list(report.repaired_fields),
        )
        return self.get()

    def _decode(self, raw: bytes) -> tuple[GameState, LoadReport]:
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StateCorruption(f"Unparseable state document: {e}") from e
        if not isinstance(data, dict):
            raise StateCorruption("State document is not an object")

        report = LoadReport()
        version = data.get("schema_version")
        if not isinstance(version, str):
            version = "1.0.0"
        if _version_tuple(version) < _version_tuple(SCHEMA_VERSION):
            data = self._migrate(data, version)
            report.migrated_from = version
            logger.info("Migrated state from %s to %s", version, SCHEMA_VERSION)

        repaired: list[str] = []
        state = _repair(GameState, data, "", repaired)
        self._check_invariants(state, repaired)

        if repaired:
            logger.warning("Repaired state fields on load: %s", ", ".join(repaired))
        report.repaired_fields = repaired
        return state, report

    def _migrate(self, data: dict, version: str) -> dict:
        """Upgrade a raw document to the current schema version."""
        # v1.0.0 -> v1.1.0: break tracking
        if _version_tuple(version) < _version_tuple("1.1.0"):
            data.setdefault("break_state", None)
            player = data.get("player")
            if isinstance(player, dict):
                # Recomputed from level and soul_insight below
                player.pop("soul_insight_to_next_level", None)

        data["schema_version"] = SCHEMA_VERSION
        return data

    def _check_invariants(self, state: GameState, repaired: list[str]) -> None:
        """Cross-field invariants that per-field validation cannot express."""
        progression = state.progression
        last_index = len(STUBBORN_SOULS) - 1
        if progression.current_boss_index > last_index:
            progression.current_boss_index = last_index
            repaired.append("progression.current_boss_index")

        initial = STUBBORN_SOULS[progression.current_boss_index].initial_resolve
        if progression.current_boss_resolve > initial:
            progression.current_boss_resolve = initial
            repaired.append("progression.current_boss_resolve")

        known = {soul.id for soul in STUBBORN_SOULS}
        if not progression.defeated_bosses <= known:
            progression.defeated_bosses = progression.defeated_bosses & known
            repaired.append("progression.defeated_bosses")

        player = state.player
        level = level_for_insight(player.soul_insight)
        if level > player.level:
            player.level = level
            repaired.append("player.level")
        to_next = level_threshold(player.level + 1) - player.soul_insight
        if player.soul_insight_to_next_level != to_next:
            player.soul_insight_to_next_level = to_next
            repaired.append("player.soul_insight_to_next_level")

        idle_state = progression.idle_state
        if "last_collection_time" not in idle_state.model_fields_set:
            idle_state.last_collection_time = self.clock()
            path = "progression.idle_state.last_collection_time"
            if path not in repaired and "progression.idle_state" not in repaired:
                repaired.append(path)

        session = state.session
        if session is not None:
            if not session.is_active:
                state.session = None
                repaired.append("session")
            elif session.is_paused and session.paused_at is None:
                session.paused_at = self.clock()
                repaired.append("session.paused_at")
            elif not session.is_paused and session.paused_at is not None:
                session.paused_at = None
                repaired.append("session.paused_at")

        if state.break_state is not None and not state.break_state.is_active:
            state.break_state = None
            repaired.append("break_state")

    def _reset_corrupt(self, raw: bytes, error: StateCorruption) -> tuple[GameState, LoadReport]:
        backup_key: str | None = f"{STATE_KEY}.corrupt.{self.clock():%Y%m%dT%H%M%S%f}"
        try:
            self.store.set(backup_key, raw)
        except OSError as e:
            logger.error("Could not archive corrupt state under %s: %s", backup_key, e)
            backup_key = None

        logger.error("Saved state is corrupt (%s); progress reset, backup=%s", error, backup_key)
        self.event_bus.emit(EventType.PROGRESS_RESET, backup_key=backup_key, reason=str(error))
        return self._fresh_state(), LoadReport(data_lost=True, backup_key=backup_key)

    # -------------------------------------------------------------------------
    # Save
    # -------------------------------------------------------------------------

    def save(self, state: GameState | None = None) -> None:
        """
        Durably write the state, adopting `state` as current if given.

        One attempt plus `retries` retries, backing off 100ms, 200ms, 400ms.
        Raises PersistenceFailure once exhausted; memory is already updated.
        """
        if state is not None:
            self._state = state.model_copy(deep=True)
        self._write_generation += 1

        payload = self._payload()
        attempts = self.retries + 1
        last_error: OSError | None = None

        for attempt in range(attempts):
            if attempt:
                delay = self._retry_delay(attempt)
                logger.warning(
                    "Save attempt %d/%d failed (%s), retrying in %.0f ms",
                    attempt, attempts, last_error, delay * 1000,
                )
                self._sleep(delay)
            try:
                self.store.set(STATE_KEY, payload)
            except OSError as e:
                last_error = e
                continue

            self._saved(attempt + 1)
            return

        raise self._failed(attempts, last_error) from last_error

    def commit(self, state: GameState) -> bool:
        """Adopt `state` as current and persist it. Returns False if not yet durable."""
        self._state = state.model_copy(deep=True)
        return self._persist()

    def _persist(self) -> bool:
        """
        Write the current state, downgrading failure to a warning.

        Without a `defer` hook this is save() with inline backoff. With one,
        only the first attempt runs now: retries are handed to the hook and
        each writes whatever state is current when it runs. A newer write
        supersedes a retry chain still in flight.

        Returns True only if the state is already durable.
        """
        if self._defer is None:
            try:
                self.save()
            except PersistenceFailure:
                return False
            return True

        self._write_generation += 1
        return self._attempt_write(self._write_generation, 1)

    def _attempt_write(self, generation: int, attempt: int) -> bool:
        if generation != self._write_generation:
            return False

        attempts = self.retries + 1
        try:
            self.store.set(STATE_KEY, self._payload())
        except OSError as e:
            if attempt < attempts:
                delay = self._retry_delay(attempt)
                logger.warning(
                    "Save attempt %d/%d failed (%s), retrying in %.0f ms",
                    attempt, attempts, e, delay * 1000,
                )
                self.retry_pending = True
                self._defer(delay, lambda: self._attempt_write(generation, attempt + 1))
                return False
            self._failed(attempts, e)
            return False

        self._saved(attempt)
        return True

    def _payload(self) -> bytes:
        return self._state.model_dump_json(indent=2).encode("utf-8")

    def _retry_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.retry_base_delay_ms * 2 ** (attempt - 1) / 1000

    def _saved(self, attempts: int) -> None:
        self.retry_pending = False
        self.last_persistence_failure = None
        self.event_bus.emit(EventType.STATE_SAVED, attempts=attempts)

    def _failed(self, attempts: int, error: OSError | None) -> PersistenceFailure:
        failure = PersistenceFailure(attempts, error)
        self.retry_pending = False
        self.last_persistence_failure = failure
        logger.warning("%s; in-memory state remains authoritative", failure)
        self.event_bus.emit(EventType.PERSISTENCE_FAILED, attempts=attempts, error=str(error))
        return failure

    # -------------------------------------------------------------------------
    # Read and update
    # -------------------------------------------------------------------------

    def get(self) -> GameState:
        """Snapshot of the current in-memory state. No I/O."""
        return self._state.model_copy(deep=True)

    def update(self, partial: dict) -> GameState:
        """
        Deep-merge a partial document into memory, then persist.

        Rejected as a whole (ValidationError) if any key is unknown or any
        merged value violates the schema.
        """
        merged = _deep_merge(self._state.model_dump(), partial)
        try:
            new_state = GameState.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid state update: {e}") from e

        self._state = new_state
        self._persist()
        return self.get()

    @contextmanager
    def transaction(self) -> Iterator[GameState]:
        """
        Mutate a draft copy, committed only if the block succeeds.

        An exception inside the block discards the draft, leaving memory and
        storage untouched.
        """
        draft = self._state.model_copy(deep=True)
        yield draft
        self._state = draft
        self._persist()
