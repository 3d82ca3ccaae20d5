from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from broker.messaging.types import (
    AuthenticateMessage,
    ErrorCode,
    ErrorMessage,
    GameEventMessage,
    GameOverClaimMessage,
    GetRankingMessage,
    PingMessage,
    RequestGameStateMessage,
    RequestMatchMessage,
    SignalingMessage,
    parse_client_message,
)
from shared.errors import BrokerError, InternalError

if TYPE_CHECKING:
    from broker.messaging.protocol import ConnectionProtocol
    from broker.session.manager import SessionManager

logger = logging.getLogger(__name__)


class MessageRouter:
    """
    Routes incoming messages to appropriate handlers.

    This class contains pure business logic and can be tested
    without real WebSocket connections. Calls are expected to arrive
    one at a time through the inbound dispatcher.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await self._send_error(
                connection,
                ErrorMessage(
                    code=ErrorCode.INVALID_MESSAGE,
                    message="Invalid message.",
                    context=_message_context(raw_message),
                ),
            )
            return

        context = message.type.value
        try:
            await self._dispatch(connection.connection_id, message)
        except BrokerError as e:
            logger.info("%s rejected for %s: %s", context, connection.connection_id, e.message)
            await self._send_error(
                connection,
                ErrorMessage(code=_error_code(e), message=e.message, context=context),
            )
        except Exception:
            logger.exception("error handling %s for %s", context, connection.connection_id)
            error = InternalError()
            await self._send_error(
                connection,
                ErrorMessage(code=_error_code(error), message=error.message, context=context),
            )

    async def _dispatch(self, conn_id: str, message: Any) -> None:  # noqa: ANN401
        manager = self._session_manager
        if isinstance(message, PingMessage):
            await manager.ping(conn_id)
        elif isinstance(message, AuthenticateMessage):
            await manager.authenticate(conn_id, message.session_token)
        elif isinstance(message, RequestMatchMessage):
            await manager.request_match(conn_id, message.player_name)
        elif isinstance(message, (SignalingMessage, GameEventMessage)):
            await manager.relay_message(conn_id, message)
        elif isinstance(message, GameOverClaimMessage):
            await manager.game_over(conn_id, message.winner, message.game_state)
        elif isinstance(message, RequestGameStateMessage):
            await manager.request_game_state(conn_id)
        elif isinstance(message, GetRankingMessage):
            await manager.get_ranking(conn_id, message.category)

    async def _send_error(self, connection: ConnectionProtocol, error: ErrorMessage) -> None:
        await self._session_manager.registry.send(connection.connection_id, error.to_wire())

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.connect(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.disconnect(connection.connection_id)


def _error_code(error: BrokerError) -> ErrorCode:
    try:
        return ErrorCode(error.code)
    except ValueError:
        return ErrorCode.INVALID_REQUEST


def _message_context(raw_message: Any) -> str | None:  # noqa: ANN401
    if isinstance(raw_message, dict):
        event = raw_message.get("type")
        if isinstance(event, str):
            return event[:50]
    return None
