"""Tests for the signaling relay's same-game authorization rule."""

from broker.messaging.types import ClientMessageType, ErrorCode, GameEventMessage, ServerMessageType, SignalingMessage
from broker.session.models import GameStatus
from broker.tests.helpers import connect, match


def _offer(target: str, **payload) -> SignalingMessage:
    return SignalingMessage(type=ClientMessageType.OFFER, target=target, **payload)


class TestRelayAuthorization:
    async def test_forwards_between_game_peers(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        session = await match(manager, alice, bob)

        delivered = await manager.relay.relay(_offer(bob.connection_id, offer={"sdp": "v=0"}), alice.connection_id)

        assert delivered is True
        assert bob.last(ClientMessageType.OFFER) == {
            "type": "offer",
            "offer": {"sdp": "v=0"},
            "from": alice.connection_id,
        }
        assert session.status is GameStatus.ACTIVE

    async def test_unrelated_target_never_receives(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        carol = await connect(manager)
        dave = await connect(manager)
        await match(manager, alice, bob)
        await match(manager, carol, dave)

        delivered = await manager.relay.relay(_offer(carol.connection_id, offer={}), alice.connection_id)

        assert delivered is False
        assert carol.of_type(ClientMessageType.OFFER) == []
        error = alice.last(ServerMessageType.ERROR)
        assert error["code"] == ErrorCode.PEER_UNREACHABLE
        assert error["context"] == "offer"

    async def test_sender_without_game_rejected(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)

        await manager.relay.relay(_offer(bob.connection_id), alice.connection_id)

        assert bob.of_type(ClientMessageType.OFFER) == []
        assert alice.last(ServerMessageType.ERROR)["code"] == ErrorCode.PEER_UNREACHABLE

    async def test_closed_target_rejected(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        await match(manager, alice, bob)
        await bob.close()

        assert await manager.relay.relay(_offer(bob.connection_id), alice.connection_id) is False
        assert alice.last(ServerMessageType.ERROR)["code"] == ErrorCode.PEER_UNREACHABLE

    async def test_unknown_target_rejected(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        await match(manager, alice, bob)

        assert await manager.relay.relay(_offer("nobody"), alice.connection_id) is False

    async def test_self_target_rejected(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        await match(manager, alice, bob)

        assert await manager.relay.relay(_offer(alice.connection_id), alice.connection_id) is False

    async def test_former_peer_rejected_after_teardown(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        session = await match(manager, alice, bob)
        await manager.games.reap_idle(now=session.last_activity_at + 301)

        assert await manager.relay.relay(_offer(bob.connection_id), alice.connection_id) is False


class TestStateMirror:
    async def test_game_state_is_mirrored(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        session = await match(manager, alice, bob)

        message = GameEventMessage(
            type=ClientMessageType.CARD_PLAYED,
            target=bob.connection_id,
            card="fireball",
            game_state={"turn": 3},
        )
        await manager.relay.relay(message, alice.connection_id)

        forwarded = bob.last(ClientMessageType.CARD_PLAYED)
        assert forwarded["card"] == "fireball"
        assert forwarded["gameState"] == {"turn": 3}
        assert forwarded["from"] == alice.connection_id
        assert manager.mirror.recover(session.game_id) == {"turn": 3}

    async def test_last_write_wins(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        session = await match(manager, alice, bob)

        for sender, target, turn in ((alice, bob, 1), (bob, alice, 2)):
            message = GameEventMessage(
                type=ClientMessageType.TURN_END,
                target=target.connection_id,
                game_state={"turn": turn},
            )
            await manager.relay.relay(message, sender.connection_id)

        assert manager.mirror.recover(session.game_id) == {"turn": 2}

    async def test_event_without_state_keeps_snapshot(self, manager):
        alice = await connect(manager)
        bob = await connect(manager)
        session = await match(manager, alice, bob)
        manager.mirror.snapshot(session.game_id, {"turn": 1})

        message = GameEventMessage(type=ClientMessageType.TURN_END, target=bob.connection_id)
        await manager.relay.relay(message, alice.connection_id)

        assert "gameState" not in bob.last(ClientMessageType.TURN_END)
        assert manager.mirror.recover(session.game_id) == {"turn": 1}

    async def test_rejected_relay_does_not_mirror(self, manager):
        alice = await connect(manager)
        outsider = await connect(manager)

        message = GameEventMessage(
            type=ClientMessageType.GAME_STATE,
            target=outsider.connection_id,
            game_state={"turn": 9},
        )
        await manager.relay.relay(message, alice.connection_id)

        assert len(manager.mirror) == 0
