"""Signaling relay between the two peers of a game."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from broker.messaging.types import MIRRORED_TYPES, ErrorCode, ErrorMessage, GameEventMessage, relay_payload

if TYPE_CHECKING:
    from broker.messaging.types import RelayMessage
    from broker.session.games import GameSessionManager
    from broker.session.mirror import GameStateMirror
    from broker.session.registry import ConnectionRegistry

logger = structlog.get_logger()

PEER_UNREACHABLE_MESSAGE = "Opponent is not reachable."


class SignalingRelay:
    """Forwards offer/answer/ICE and game events.

    A message reaches its target only if the target is live and sender and
    target are both players of the same current session. Anything else is
    bounced back to the sender; the target never sees it.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        games: GameSessionManager,
        mirror: GameStateMirror,
    ) -> None:
        self._registry = registry
        self._games = games
        self._mirror = mirror

    def authorize(self, sender_id: str, target_id: str) -> str | None:
        """Return the shared game id, or None if the pair may not talk."""
        if sender_id == target_id or not self._registry.is_live(target_id):
            return None
        session = self._games.game_of(sender_id)
        if session is None or not session.has_player(target_id):
            return None
        target = self._registry.get(target_id)
        if target.game_id != session.game_id:
            return None
        return session.game_id

    async def relay(self, message: RelayMessage, sender_id: str) -> bool:
        game_id = self.authorize(sender_id, message.target)
        if game_id is None:
            logger.info("relay rejected", event=message.type.value, sender=sender_id, target=message.target)
            await self._bounce(message, sender_id)
            return False

        payload = relay_payload(message, sender_id)
        self._games.touch(game_id)
        if (
            isinstance(message, GameEventMessage)
            and message.type in MIRRORED_TYPES
            and message.game_state is not None
        ):
            self._mirror.snapshot(game_id, message.game_state)

        delivered = await self._registry.send(message.target, payload)
        if not delivered:
            await self._bounce(message, sender_id)
        return delivered

    async def _bounce(self, message: RelayMessage, sender_id: str) -> None:
        await self._registry.send(
            sender_id,
            ErrorMessage(
                message=PEER_UNREACHABLE_MESSAGE,
                context=message.type.value,
                code=ErrorCode.PEER_UNREACHABLE,
            ).to_wire(),
        )
