"""
Soul Shepherd FastAPI server.

Thin HTTP surface over GameEngine for popup, options page or any other
presentation collaborator. The engine stays the source of truth; every
response carries `persisted` so clients can show a storage notice.

Endpoints:
- GET  /health, /state, /session, /boss
- POST /session/{start,end,emergency-end,pause,resume}
- POST /break/end
- POST /signals/idle, /signals/navigation
- POST /boss/damage, /player/experience
- POST /idle/collect
- POST /player/skill-points, /player/upgrades
- PATCH /settings
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config, load_config
from ..engine import GameEngine
from ..errors import (
    CatalogIndexError,
    ConcurrentSessionError,
    EngineError,
    InvalidTransitionError,
    ValidationError,
)
from .schemas import (
    AmountRequest,
    BossDamageResponse,
    BossResponse,
    BreakResponse,
    ErrorResponse,
    ExperienceResponse,
    IdleCollectRequest,
    IdleCollectResponse,
    IdleSignalRequest,
    NavigationSignalRequest,
    OutcomeResponse,
    SessionResponse,
    SettingsPatch,
    SettingsResponse,
    SignalResponse,
    StartSessionRequest,
    StateResponse,
    StatRequest,
    StatsResponse,
)

logger = logging.getLogger(__name__)


class ShepherdAPI:
    """
    API backend.

    Owns a started GameEngine and shapes its results into response models.
    """

    def __init__(
        self,
        state_dir: Path | str = "shepherd_data",
        engine: GameEngine | None = None,
        config: Config | None = None,
    ):
        if engine is None:
            config = config or load_config(state_dir)
            engine = GameEngine(state_dir, config=config)
        self.engine = engine

        if engine.started:
            self.load_report = engine.state.last_load
        else:
            self.load_report = engine.start()

    @property
    def persisted(self) -> bool:
        return self.engine.persistence_ok

    def state_response(self) -> StateResponse:
        return StateResponse(
            persisted=self.persisted,
            state=self.engine.get_state(),
            phase=self.engine.get_session_phase(),
            load=self.load_report,
        )

    def session_response(self) -> SessionResponse:
        return SessionResponse(
            persisted=self.persisted,
            session=self.engine.get_current_session(),
            phase=self.engine.get_session_phase(),
        )

    def boss_response(self) -> BossResponse:
        state = self.engine.get_state()
        return BossResponse(
            persisted=self.persisted,
            boss=self.engine.get_current_boss(),
            current_resolve=state.progression.current_boss_resolve,
            unlocked=self.engine.is_current_boss_unlocked(),
            defeated_bosses=sorted(state.progression.defeated_bosses),
        )

    def stats_response(self) -> StatsResponse:
        player = self.engine.get_state().player
        return StatsResponse(
            persisted=self.persisted,
            stats=player.stats,
            skill_points=player.skill_points,
            soul_embers=player.soul_embers,
        )


def _error(status: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=message, code=code).model_dump(),
    )


def create_app(
    state_dir: Path | str = "shepherd_data",
    engine: GameEngine | None = None,
    config: Config | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Pass `engine` to serve an already-wired engine (tests); otherwise one is
    built over a JsonFileStore in `state_dir`.
    """
    api = ShepherdAPI(state_dir=state_dir, engine=engine, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        api.engine.stop()

    app = FastAPI(
        title="Soul Shepherd API",
        description="Focus session engine for Soul Shepherd surfaces",
        version="1.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.api = api

    def get_api() -> ShepherdAPI:
        return app.state.api

    # -------------------------------------------------------------------------
    # Error mapping
    # -------------------------------------------------------------------------

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return _error(422, str(exc), "validation_error")

    @app.exception_handler(ConcurrentSessionError)
    async def concurrent_session(request: Request, exc: ConcurrentSessionError):
        return _error(409, str(exc), "session_active")

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return _error(409, str(exc), "invalid_transition")

    @app.exception_handler(CatalogIndexError)
    async def catalog_index(request: Request, exc: CatalogIndexError):
        logger.error("Catalog lookup failed during %s: %s", request.url.path, exc)
        return _error(500, "Internal engine error", "internal_error")

    @app.exception_handler(EngineError)
    async def engine_error(request: Request, exc: EngineError):
        logger.error("Engine error during %s: %s", request.url.path, exc)
        return _error(503, "Engine unavailable", "engine_unavailable")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @app.get("/health")
    def health_check(api: ShepherdAPI = Depends(get_api)):
        return {"ok": True, "service": "soul-shepherd-api", "persisted": api.persisted}

    @app.get("/state", response_model=StateResponse)
    def get_state(api: ShepherdAPI = Depends(get_api)):
        """Full state snapshot, after reconciling any missed timers."""
        api.engine.reattach()
        return api.state_response()

    @app.patch("/settings", response_model=SettingsResponse)
    def update_settings(patch: SettingsPatch, api: ShepherdAPI = Depends(get_api)):
        settings = api.engine.update_settings(**patch.model_dump(exclude_unset=True))
        return SettingsResponse(persisted=api.persisted, settings=settings)

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @app.get("/session", response_model=SessionResponse)
    def get_session(api: ShepherdAPI = Depends(get_api)):
        return api.session_response()

    @app.post("/session/start", response_model=SessionResponse)
    def start_session(request: StartSessionRequest, api: ShepherdAPI = Depends(get_api)):
        api.engine.start_session(request.duration, request.task_id)
        return api.session_response()

    @app.post("/session/pause", response_model=SessionResponse)
    def pause_session(api: ShepherdAPI = Depends(get_api)):
        api.engine.pause_session()
        return api.session_response()

    @app.post("/session/resume", response_model=SessionResponse)
    def resume_session(api: ShepherdAPI = Depends(get_api)):
        api.engine.resume_session()
        return api.session_response()

    @app.post("/session/end", response_model=OutcomeResponse)
    def end_session(api: ShepherdAPI = Depends(get_api)):
        outcome = api.engine.end_session()
        return OutcomeResponse(persisted=api.persisted, outcome=outcome)

    @app.post("/session/emergency-end", response_model=OutcomeResponse)
    def emergency_end_session(api: ShepherdAPI = Depends(get_api)):
        outcome = api.engine.emergency_end_session()
        return OutcomeResponse(persisted=api.persisted, outcome=outcome)

    @app.post("/break/end", response_model=BreakResponse)
    def end_break(api: ShepherdAPI = Depends(get_api)):
        ended = api.engine.end_break()
        return BreakResponse(persisted=api.persisted, ended=ended)

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    @app.post("/signals/idle", response_model=SignalResponse)
    def idle_signal(request: IdleSignalRequest, api: ShepherdAPI = Depends(get_api)):
        handled = api.engine.handle_idle_state(request.state)
        return SignalResponse(
            persisted=api.persisted, handled=handled, phase=api.engine.get_session_phase()
        )

    @app.post("/signals/navigation", response_model=SignalResponse)
    def navigation_signal(request: NavigationSignalRequest, api: ShepherdAPI = Depends(get_api)):
        handled = api.engine.handle_site_visit(request.url, request.is_discouraged)
        return SignalResponse(
            persisted=api.persisted, handled=handled, phase=api.engine.get_session_phase()
        )

    # -------------------------------------------------------------------------
    # Progression
    # -------------------------------------------------------------------------

    @app.get("/boss", response_model=BossResponse)
    def get_boss(api: ShepherdAPI = Depends(get_api)):
        return api.boss_response()

    @app.post("/boss/damage", response_model=BossDamageResponse)
    def damage_boss(request: AmountRequest, api: ShepherdAPI = Depends(get_api)):
        result = api.engine.damage_boss(request.amount)
        return BossDamageResponse(persisted=api.persisted, result=result)

    @app.post("/player/experience", response_model=ExperienceResponse)
    def add_experience(request: AmountRequest, api: ShepherdAPI = Depends(get_api)):
        result = api.engine.add_experience(request.amount)
        return ExperienceResponse(persisted=api.persisted, result=result)

    @app.post("/idle/collect", response_model=IdleCollectResponse)
    def collect_idle(request: IdleCollectRequest, api: ShepherdAPI = Depends(get_api)):
        embers = api.engine.collect_idle_souls(request.now)
        return IdleCollectResponse(
            persisted=api.persisted, embers=embers, collection=api.engine.idle.last_collection
        )

    @app.post("/player/skill-points", response_model=StatsResponse)
    def allocate_skill_point(request: StatRequest, api: ShepherdAPI = Depends(get_api)):
        api.engine.allocate_skill_point(request.stat)
        return api.stats_response()

    @app.post("/player/upgrades", response_model=StatsResponse)
    def upgrade_stat(request: StatRequest, api: ShepherdAPI = Depends(get_api)):
        api.engine.upgrade_stat(request.stat)
        return api.stats_response()

    return app
