"""Account endpoints: register, login, session check, nickname and icon, profile."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from starlette.responses import JSONResponse

from accounts.types import ChangeIconRequest, ChangeNicknameRequest, LoginRequest, RegisterRequest, SessionRequest
from accounts.views.responses import parse_body

if TYPE_CHECKING:
    from starlette.requests import Request

    from shared.auth import Account, AuthService

logger = structlog.get_logger()


def _user_data(auth_service: AuthService, account: Account) -> dict:
    return auth_service.view(account).model_dump(by_alias=True)


async def register(request: Request) -> JSONResponse:
    """POST /api/register {username, password, nickname}."""
    auth_service: AuthService = request.app.state.auth_service
    body = await parse_body(request, RegisterRequest)
    account, session = await auth_service.register(body.username, body.password, body.nickname)
    logger.info("account registered", account_id=account.account_id)
    return JSONResponse(
        {
            "success": True,
            "sessionId": session.session_token,
            "userData": _user_data(auth_service, account),
        },
    )


async def login(request: Request) -> JSONResponse:
    """POST /api/login {username, password}."""
    auth_service: AuthService = request.app.state.auth_service
    body = await parse_body(request, LoginRequest)
    account, session = await auth_service.login(body.username, body.password)
    return JSONResponse(
        {
            "success": True,
            "sessionId": session.session_token,
            "userData": _user_data(auth_service, account),
        },
    )


async def verify_session(request: Request) -> JSONResponse:
    """POST /api/verify-session {sessionId}. Slides the session's expiry."""
    auth_service: AuthService = request.app.state.auth_service
    body = await parse_body(request, SessionRequest)
    account = auth_service.verify(body.session_id)
    return JSONResponse({"success": True, "userData": _user_data(auth_service, account)})


async def change_nickname(request: Request) -> JSONResponse:
    """POST /api/change-nickname {sessionId, newNickname}. Once per cooldown."""
    auth_service: AuthService = request.app.state.auth_service
    body = await parse_body(request, ChangeNicknameRequest)
    account = auth_service.change_nickname(body.session_id, body.new_nickname)
    return JSONResponse({"success": True, "userData": _user_data(auth_service, account)})


async def change_icon(request: Request) -> JSONResponse:
    """POST /api/change-icon {sessionId, icon}."""
    auth_service: AuthService = request.app.state.auth_service
    body = await parse_body(request, ChangeIconRequest)
    account = auth_service.change_icon(body.session_id, body.icon)
    return JSONResponse({"success": True, "icon": account.icon})


async def profile(request: Request) -> JSONResponse:
    """GET /api/profile/{user_id}."""
    auth_service: AuthService = request.app.state.auth_service
    view = auth_service.public_profile(request.path_params["user_id"])
    return JSONResponse({"success": True, "profile": view.model_dump(by_alias=True)})
