"""Shared helpers for broker session tests."""

from broker.messaging.types import ClientMessageType, GameEventMessage
from broker.tests.mocks import MockConnection


async def connect(manager, connection_id: str | None = None) -> MockConnection:
    conn = MockConnection(connection_id)
    await manager.connect(conn)
    return conn


async def connect_as(manager, auth_service, username: str, nickname: str | None = None) -> MockConnection:
    """Register an account and open an authenticated connection for it."""
    _account, session = await auth_service.register(username, "secret123", nickname or username)
    conn = await connect(manager)
    await manager.authenticate(conn.connection_id, session.session_token)
    return conn


async def match(manager, waiter: MockConnection, requester: MockConnection):
    """Pair two connections. ``requester`` asks second and becomes host."""
    await manager.request_match(waiter.connection_id, "Waiter")
    await manager.request_match(requester.connection_id, "Requester")
    session = manager.games.game_of(requester.connection_id)
    assert session is not None
    return session


async def activate(manager, sender: MockConnection, target: MockConnection, state: dict | None = None) -> None:
    """Relay one game message so the session moves to ACTIVE."""
    message = GameEventMessage(
        type=ClientMessageType.GAME_STATE,
        target=target.connection_id,
        game_state=state or {"turn": 1},
    )
    assert await manager.relay.relay(message, sender.connection_id)
