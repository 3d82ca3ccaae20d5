from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse

from accounts.types import UpdateTrophiesRequest
from accounts.views.responses import parse_body
from shared.ranking import parse_category

if TYPE_CHECKING:
    from starlette.requests import Request

    from shared.auth import AuthService
    from shared.ranking import RankingLedger


async def rankings(request: Request) -> JSONResponse:
    """GET /api/rankings/{category}."""
    auth_service: AuthService = request.app.state.auth_service
    ledger: RankingLedger = request.app.state.ledger
    category = parse_category(request.path_params["category"])

    def nickname_of(account_id: str) -> str | None:
        account = auth_service.accounts.get(account_id)
        return account.nickname if account is not None else None

    rows = ledger.rankings(category, nickname_of=nickname_of)
    return JSONResponse(
        {
            "success": True,
            "category": category.value,
            "rankings": [row.model_dump(by_alias=True) for row in rows],
        },
    )


async def update_trophies(request: Request) -> JSONResponse:
    """POST /api/update-trophies {sessionId, category: "mock", change: -5..5}."""
    auth_service: AuthService = request.app.state.auth_service
    ledger: RankingLedger = request.app.state.ledger
    body = await parse_body(request, UpdateTrophiesRequest)
    account = auth_service.verify(body.session_id)
    ledger.adjust(body.category, account.account_id, body.change)
    return JSONResponse(
        {
            "success": True,
            "trophies": {"mock": account.trophies.mock, "formal": account.trophies.formal},
        },
    )

