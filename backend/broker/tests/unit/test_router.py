"""Tests for inbound message routing and error mapping."""

from broker.messaging.types import ErrorCode, ServerMessageType
from broker.tests.helpers import connect, match
from broker.tests.mocks import MockConnection
from shared.errors import GENERIC_SERVER_ERROR


class TestMessageRouter:
    async def test_ping_replies_pong(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "ping"})

        assert conn.last() == {"type": "pong"}

    async def test_unknown_type_is_invalid_message(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "launchMissiles"})

        error = conn.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.INVALID_MESSAGE
        assert error["message"] == "Invalid message."
        assert error["context"] == "launchMissiles"

    async def test_missing_type_is_invalid_message(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"target": "x"})

        error = conn.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.INVALID_MESSAGE
        assert "context" not in error

    async def test_relay_without_target_is_invalid_message(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "offer", "offer": {}})

        assert conn.last(ServerMessageType.ERROR)["code"] == ErrorCode.INVALID_MESSAGE

    async def test_control_characters_in_name_rejected(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "requestMatch", "playerName": "bad\x00name"})

        assert conn.last(ServerMessageType.ERROR)["code"] == ErrorCode.INVALID_MESSAGE
        assert manager.matchmaking.waiting_count == 0

    async def test_request_match_routed(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "requestMatch", "playerName": "  Alice  "})

        assert conn.last(ServerMessageType.WAITING_FOR_MATCH) is not None

    async def test_already_in_game_error_code(self, manager, router):
        alice = await connect(manager)
        bob = await connect(manager)
        await match(manager, alice, bob)

        await router.handle_message(alice, {"type": "requestMatch"})

        error = alice.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.ALREADY_IN_GAME
        assert error["context"] == "requestMatch"

    async def test_bad_session_is_auth_failed(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "authenticate", "sessionToken": "nope"})

        error = conn.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.AUTH_FAILED
        assert error["context"] == "authenticate"

    async def test_unknown_ranking_category_is_not_found(self, manager, router):
        conn = await connect(manager)

        await router.handle_message(conn, {"type": "getRanking", "category": "weekly"})

        assert conn.last(ServerMessageType.ERROR)["code"] == ErrorCode.NOT_FOUND

    async def test_game_over_routed(self, manager, router):
        alice = await connect(manager)
        bob = await connect(manager)
        await match(manager, alice, bob)

        await router.handle_message(alice, {"type": "gameOver", "winner": alice.connection_id})

        assert bob.last(ServerMessageType.OUTCOME_CLAIMED)["winner"] == alice.connection_id

    async def test_unexpected_exception_is_internal_error(self, manager, router, monkeypatch):
        conn = await connect(manager)

        async def explode(_conn_id):
            raise RuntimeError("boom")

        monkeypatch.setattr(manager, "ping", explode)

        await router.handle_message(conn, {"type": "ping"})

        error = conn.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.INTERNAL_ERROR
        assert error["message"] == GENERIC_SERVER_ERROR
        assert "boom" not in error["message"]

    async def test_connect_and_disconnect(self, manager, router):
        conn = MockConnection()
        await router.handle_connect(conn)
        assert manager.registry.get(conn.connection_id) is not None

        await router.handle_disconnect(conn)
        assert manager.registry.get(conn.connection_id) is None
