"""FastAPI application for the video-chat matchmaking service."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from .core.config import Settings, settings
from .core.errors import DuocallError
from .core.logging import configure_logging
from .routers import calls as calls_router
from .routers import match as match_router
from .routers import rtc as rtc_router
from .services.coordinator import SessionCoordinator
from .services.identity import IdentityVerifier
from .services.ledger import CallLedger, InMemoryCallLedger, SqlCallLedger
from .services.match_state import MatchmakingState
from .services.rtc import build_issuer
from .services.sweeper import QueueSweeper

logger = logging.getLogger(__name__)


def build_ledger(config: Settings) -> CallLedger:
    if config.ledger_backend == "memory":
        return InMemoryCallLedger()
    from .db.session import SessionLocal

    return SqlCallLedger(SessionLocal)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: Settings = app.state.settings
    from .db.session import SessionLocal, engine

    state = MatchmakingState(queue_ttl_seconds=config.queue_ttl_seconds)
    app.state.matchmaking = state
    app.state.coordinator = SessionCoordinator(
        state,
        build_ledger(config),
        build_issuer(config),
        token_ttl_seconds=config.rtc_token_ttl_seconds,
        require_verified=config.require_verified_identity,
    )
    app.state.verifier = IdentityVerifier(
        SessionLocal,
        secret=config.auth_jwt_secret,
        algorithm=config.auth_jwt_algorithm,
    )

    sweeper: QueueSweeper | None = None
    if config.queue_sweep_interval_seconds > 0:
        sweeper = QueueSweeper(state, config.queue_sweep_interval_seconds)
        sweeper.start()

    logger.info("Matchmaking ready (ledger=%s, env=%s)", config.ledger_backend, config.app_env)
    try:
        yield
    finally:
        if sweeper is not None:
            await sweeper.stop()
        await engine.dispose()


async def handle_duocall_error(request: Request, exc: DuocallError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(config: Settings = settings) -> FastAPI:
    configure_logging(config.log_level)

    app = FastAPI(title="Duocall Matchmaking API", version="0.1.0", lifespan=lifespan)
    app.state.settings = config

    if config.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(DuocallError, handle_duocall_error)  # type: ignore[arg-type]

    app.include_router(match_router.router, prefix="/api/match", tags=["match"])
    app.include_router(calls_router.router, prefix="/api", tags=["calls"])
    app.include_router(rtc_router.router, prefix="/api/rtc", tags=["rtc"])

    @app.get("/api/health", tags=["meta"])
    async def health() -> dict[str, str]:
        """Simple liveness probe."""

        return {"status": "ok"}

    @app.head("/api/health", tags=["meta"])
    async def health_head() -> Response:
        """Allow HEAD for uptime monitors that only need the status code."""

        return Response(status_code=200)

    @app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
    async def robots() -> PlainTextResponse:
        return PlainTextResponse("User-agent: *\nDisallow:")

    return app


app = create_app()
