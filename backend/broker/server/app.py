from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from accounts.views import (
    broker_error_handler,
    change_icon,
    change_nickname,
    internal_error_handler,
    login,
    profile,
    rankings,
    register,
    update_trophies,
    verify_session,
)
from broker.messaging.dispatcher import InboundDispatcher
from broker.messaging.router import MessageRouter
from broker.server.settings import BrokerSettings
from broker.server.websocket import websocket_endpoint
from broker.session.manager import SessionManager
from shared.auth import AccountStore, AuthService, AuthSessionStore, AuthSettings, get_hasher
from shared.auth.session_store import CLEANUP_INTERVAL_SECONDS
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.db import Database, SqliteStateRepository
from shared.errors import BrokerError
from shared.logging import setup_logging
from shared.persistence import PersistenceGateway
from shared.ranking import RankingLedger

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

# Heartbeat sweep, idle-game reap, dispute expiry and stats broadcast
SWEEP_INTERVAL_SECONDS = 30


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    stats = session_manager.stats().model_dump(by_alias=True, exclude={"type"})
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT, **stats})


async def ice_servers(request: Request) -> JSONResponse:
    """GET /api/ice-servers: STUN/TURN list for peer connection bootstrapping."""
    settings: BrokerSettings = request.app.state.settings
    servers: list[dict] = [{"urls": url} for url in settings.stun_servers]
    if settings.turn_servers:
        turn: dict = {"urls": settings.turn_servers}
        if settings.turn_username:
            turn["username"] = settings.turn_username
        if settings.turn_credential:
            turn["credential"] = settings.turn_credential
        servers.append(turn)
    return JSONResponse({"iceServers": servers})


def create_app(
    settings: BrokerSettings | None = None,
    auth_settings: AuthSettings | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = BrokerSettings()
    if auth_settings is None:  # pragma: no cover
        auth_settings = AuthSettings()

    db = Database(auth_settings.database_path)
    accounts = AccountStore()
    session_store = AuthSessionStore(ttl_seconds=auth_settings.session_ttl_seconds)
    ledger = RankingLedger(on_score=accounts.record_trophies)
    gateway = PersistenceGateway(
        SqliteStateRepository(db),
        accounts,
        session_store,
        ledger,
        debounce_seconds=auth_settings.save_debounce_ms / 1000,
        legacy_data_file=auth_settings.legacy_data_file,
    )
    auth_service = AuthService(
        accounts,
        session_store,
        ledger,
        password_hasher=get_hasher(auth_settings.password_hasher),
        nickname_cooldown_seconds=auth_settings.nickname_cooldown_seconds,
    )
    session_manager = SessionManager(auth_service, ledger, dispute_timeout=settings.dispute_timeout_seconds)
    message_router = MessageRouter(session_manager)
    dispatcher = InboundDispatcher()

    async def cleanup_sessions() -> None:
        session_store.cleanup_expired()

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, dispatcher)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/api/register", register, methods=["POST"]),
        Route("/api/login", login, methods=["POST"]),
        Route("/api/verify-session", verify_session, methods=["POST"]),
        Route("/api/change-nickname", change_nickname, methods=["POST"]),
        Route("/api/change-icon", change_icon, methods=["POST"]),
        Route("/api/rankings/{category}", rankings, methods=["GET"]),
        Route("/api/update-trophies", update_trophies, methods=["POST"]),
        Route("/api/profile/{user_id}", profile, methods=["GET"]),
        Route("/api/ice-servers", ice_servers, methods=["GET"]),
        WebSocketRoute("/ws", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        # State is loaded and migrated before the first connection is accepted.
        db.connect()
        await gateway.load()
        dispatcher.start()
        dispatcher.every(SWEEP_INTERVAL_SECONDS, session_manager.sweep, name="sweep")
        dispatcher.every(CLEANUP_INTERVAL_SECONDS, cleanup_sessions, name="session-cleanup")
        logger.info("broker ready", accounts=len(accounts), sessions=len(session_store))
        yield
        await dispatcher.stop()
        await gateway.flush_now()
        db.close()
        logger.info("broker stopped")

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={BrokerError: broker_error_handler, Exception: internal_error_handler},
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.auth_settings = auth_settings
    app.state.auth_service = auth_service
    app.state.ledger = ledger
    app.state.gateway = gateway
    app.state.session_manager = session_manager
    app.state.dispatcher = dispatcher
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory broker.server.app:get_app."""
    settings = BrokerSettings()
    auth_settings = AuthSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings, auth_settings=auth_settings)
