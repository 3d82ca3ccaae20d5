"""JSON body parsing and error responses shared by the account handlers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, TypeVar, cast

import structlog
from pydantic import BaseModel, ValidationError
from starlette.responses import JSONResponse

from shared.errors import BrokerError, InternalError, RequestValidationError

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = structlog.get_logger()

INVALID_BODY = "Invalid request format."
_MAX_REQUEST_BODY_SIZE = 4096

T = TypeVar("T", bound=BaseModel)


async def parse_body(request: Request, model: type[T]) -> T:
    """Validate a JSON body against ``model`` or raise RequestValidationError."""
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        raise RequestValidationError("Request body too large.")
    try:
        body = json.loads(raw_body or b"{}")
    except (ValueError, UnicodeDecodeError):  # fmt: skip
        raise RequestValidationError(INVALID_BODY) from None
    if not isinstance(body, dict):
        raise RequestValidationError(INVALID_BODY)
    try:
        return model.model_validate(body)
    except ValidationError as e:
        raise RequestValidationError(INVALID_BODY, details=json.loads(e.json(include_url=False))) from None


async def broker_error_handler(_request: Request, exc: Exception) -> Response:
    """Render a BrokerError as ``{"error": message, "details"?: ...}``."""
    error = cast("BrokerError", exc)
    body: dict = {"error": error.message}
    if error.details is not None:
        body["details"] = error.details
    return JSONResponse(body, status_code=error.status_code)


async def internal_error_handler(request: Request, _exc: Exception) -> Response:
    logger.exception("unhandled error", path=request.url.path)
    return await broker_error_handler(request, InternalError())
