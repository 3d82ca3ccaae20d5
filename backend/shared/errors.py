"""Error taxonomy shared by the WebSocket broker and the HTTP account API.

Every error carries a user-facing message. Handlers translate these into
``{"error": ...}`` HTTP bodies or ``error`` socket notices; anything outside
this hierarchy is treated as an internal error at the handler boundary.
"""

from http import HTTPStatus

GENERIC_SERVER_ERROR = "A server error occurred."


class BrokerError(Exception):
    """Base class for expected, user-facing failures."""

    status_code: int = HTTPStatus.BAD_REQUEST
    code: str = "error"

    def __init__(self, message: str, *, details: list | dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class RequestValidationError(BrokerError):
    """Malformed request body, message, or claim. No state was mutated."""

    code = "invalid_request"


class AuthError(BrokerError):
    """Missing, expired, or unknown session token, or bad credentials."""

    status_code = HTTPStatus.UNAUTHORIZED
    code = "auth_failed"


class ConflictError(BrokerError):
    """Duplicate username or nickname."""

    status_code = HTTPStatus.CONFLICT
    code = "conflict"


class NotFoundError(BrokerError):
    """Unknown ranking category or profile id."""

    status_code = HTTPStatus.NOT_FOUND
    code = "not_found"


class RateLimitedError(BrokerError):
    """Operation allowed again only after a cooldown (nickname changes)."""

    status_code = HTTPStatus.TOO_MANY_REQUESTS
    code = "rate_limited"


class InternalError(BrokerError):
    """Unexpected failure surfaced to the client with a generic message."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message: str = GENERIC_SERVER_ERROR) -> None:
        super().__init__(message)
