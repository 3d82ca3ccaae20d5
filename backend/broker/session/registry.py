"""Connection registry: one record per live transport."""

from __future__ import annotations

import contextlib
import time
from typing import TYPE_CHECKING, Any

import structlog

from broker.session.models import AuthState, Connection

if TYPE_CHECKING:
    from broker.messaging.protocol import ConnectionProtocol

logger = structlog.get_logger()

HEARTBEAT_TIMEOUT_SECONDS = 120


class ConnectionRegistry:
    """The single source of truth for "is this peer still reachable"."""

    def __init__(self, heartbeat_timeout: float = HEARTBEAT_TIMEOUT_SECONDS) -> None:
        self._connections: dict[str, Connection] = {}  # conn_id -> Connection
        self._heartbeat_timeout = heartbeat_timeout

    def register(self, transport: ConnectionProtocol) -> Connection:
        connection = Connection(transport=transport)
        self._connections[connection.conn_id] = connection
        return connection

    def get(self, conn_id: str | None) -> Connection | None:
        if conn_id is None:
            return None
        return self._connections.get(conn_id)

    def mark_authenticated(self, conn_id: str, account_id: str, display_name: str) -> Connection | None:
        connection = self._connections.get(conn_id)
        if connection is None:
            return None
        connection.auth_state = AuthState.AUTHENTICATED
        connection.account_id = account_id
        connection.display_name = display_name
        return connection

    def heartbeat(self, conn_id: str) -> None:
        connection = self._connections.get(conn_id)
        if connection is not None:
            connection.last_heartbeat_at = time.monotonic()

    def is_live(self, conn_id: str | None) -> bool:
        connection = self.get(conn_id)
        return connection is not None and connection.transport.is_open

    def remove(self, conn_id: str) -> Connection | None:
        return self._connections.pop(conn_id, None)

    @property
    def count(self) -> int:
        return len(self._connections)

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    async def send(self, conn_id: str | None, message: dict[str, Any]) -> bool:
        """Deliver to the live transport. False if the peer is gone or the send fails."""
        if not self.is_live(conn_id):
            return False
        connection = self._connections[conn_id]
        try:
            await connection.transport.send_message(message)
        except (RuntimeError, OSError, ConnectionError) as e:
            logger.info("send failed", conn_id=conn_id, error=str(e))
            return False
        return True

    async def broadcast(self, message: dict[str, Any]) -> None:
        for connection in self.connections():
            await self.send(connection.conn_id, message)

    def stale(self, now: float | None = None) -> list[Connection]:
        """Connections whose last heartbeat is older than the liveness timeout."""
        now = time.monotonic() if now is None else now
        return [c for c in self._connections.values() if now - c.last_heartbeat_at > self._heartbeat_timeout]

    async def close_stale(self, now: float | None = None) -> list[str]:
        """Close the transport of every stale connection. Return their ids."""
        closed = []
        for connection in self.stale(now):
            logger.info("heartbeat timeout, disconnecting", conn_id=connection.conn_id)
            with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                await connection.transport.close(code=1000, reason="heartbeat_timeout")
            closed.append(connection.conn_id)
        return closed
