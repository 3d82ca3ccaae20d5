"""Game session lifecycle: creation, activity tracking, reaping, teardown.

The manager exclusively owns GameSession and PendingOutcome lifetimes.
Teardown is the only way a session ends; it clears the game id on both
connection records, drops the state mirror and any pending outcome, and
notifies whichever players are still reachable.
"""

from __future__ import annotations

import secrets
import string
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from broker.messaging.types import GameEndedMessage, OpponentDisconnectedMessage
from broker.session.models import (
    TERMINAL_STATUS,
    GamePlayer,
    GameSession,
    GameStatus,
    PendingOutcome,
    TeardownReason,
)

if TYPE_CHECKING:
    from broker.session.mirror import GameStateMirror
    from broker.session.models import Connection
    from broker.session.registry import ConnectionRegistry

logger = structlog.get_logger()

GAME_IDLE_TIMEOUT_SECONDS = 300

_GAME_ID_ALPHABET = string.digits + string.ascii_lowercase
_GAME_ID_SUFFIX_LENGTH = 9

# Called with (session, departed conn_id). Returns the survivor's new formal
# score when a forfeit was recorded, None otherwise.
ForfeitHandler = Callable[[GameSession, str], Awaitable[int | None]]


def generate_game_id() -> str:
    """``game_<epoch-ms>_<9 base36 chars>``."""
    suffix = "".join(secrets.choice(_GAME_ID_ALPHABET) for _ in range(_GAME_ID_SUFFIX_LENGTH))
    return f"game_{int(time.time() * 1000)}_{suffix}"


class GameSessionManager:
    def __init__(
        self,
        registry: ConnectionRegistry,
        mirror: GameStateMirror,
        *,
        idle_timeout: float = GAME_IDLE_TIMEOUT_SECONDS,
    ) -> None:
        self._registry = registry
        self._mirror = mirror
        self._idle_timeout = idle_timeout
        self._sessions: dict[str, GameSession] = {}  # game_id -> GameSession
        self._pending: dict[str, PendingOutcome] = {}  # game_id -> PendingOutcome
        self._forfeit_handler: ForfeitHandler | None = None
        self.total_matches = 0

    def set_forfeit_handler(self, handler: ForfeitHandler) -> None:
        self._forfeit_handler = handler

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def get(self, game_id: str | None) -> GameSession | None:
        if game_id is None:
            return None
        return self._sessions.get(game_id)

    def game_of(self, conn_id: str) -> GameSession | None:
        """The session a connection currently belongs to, if any."""
        connection = self._registry.get(conn_id)
        if connection is None:
            return None
        session = self.get(connection.game_id)
        if session is None or not session.has_player(conn_id):
            return None
        return session

    def sessions(self) -> list[GameSession]:
        return list(self._sessions.values())

    def create(self, host: Connection, guest: Connection) -> GameSession:
        """Pair two connections into a new MATCHED session. ``host`` is the requester."""
        if host.game_id is not None or guest.game_id is not None:
            raise ValueError("connection is already in a game")
        game_id = generate_game_id()
        while game_id in self._sessions:  # pragma: no cover
            game_id = generate_game_id()

        session = GameSession(
            game_id=game_id,
            players=(
                GamePlayer(
                    conn_id=host.conn_id,
                    name=host.display_name,
                    is_host=True,
                    is_guest=host.is_guest,
                    account_id=host.account_id,
                ),
                GamePlayer(
                    conn_id=guest.conn_id,
                    name=guest.display_name,
                    is_host=False,
                    is_guest=guest.is_guest,
                    account_id=guest.account_id,
                ),
            ),
        )
        self._sessions[game_id] = session
        for connection in (host, guest):
            connection.game_id = game_id
            connection.waiting = False
        self.total_matches += 1
        logger.info(
            "game created",
            game_id=game_id,
            host=host.conn_id,
            guest=guest.conn_id,
            ranked=session.is_ranked,
        )
        return session

    def touch(self, game_id: str) -> GameSession | None:
        """Record activity. The first relayed message moves MATCHED to ACTIVE."""
        session = self._sessions.get(game_id)
        if session is None:
            return None
        session.last_activity_at = time.monotonic()
        if session.status is GameStatus.MATCHED:
            session.status = GameStatus.ACTIVE
        return session

    def pending_outcome(self, game_id: str) -> PendingOutcome | None:
        return self._pending.get(game_id)

    def open_outcome(self, game_id: str) -> PendingOutcome:
        """The game's PendingOutcome, created on the first claim."""
        if game_id not in self._sessions:
            raise KeyError(game_id)
        pending = self._pending.get(game_id)
        if pending is None:
            pending = PendingOutcome(game_id=game_id)
            self._pending[game_id] = pending
        return pending

    async def teardown(
        self,
        game_id: str,
        reason: TeardownReason,
        *,
        departed: str | None = None,
    ) -> GameSession | None:
        """Remove a session and everything hanging off it. Idempotent.

        For a disconnect of one player from an ACTIVE ranked game the forfeit
        handler records the leaver as loser before the survivor is told.
        """
        session = self._sessions.pop(game_id, None)
        if session is None:
            return None
        was_active = session.status is GameStatus.ACTIVE
        session.status = TERMINAL_STATUS[reason]
        self._mirror.discard(game_id)
        self._pending.pop(game_id, None)
        for player in session.players:
            connection = self._registry.get(player.conn_id)
            if connection is not None and connection.game_id == game_id:
                connection.game_id = None

        logger.info("game torn down", game_id=game_id, reason=reason, status=session.status)

        if reason is TeardownReason.DISCONNECT and departed is not None:
            await self._notify_departure(session, departed, forfeit=was_active and session.is_ranked)
        elif reason in (TeardownReason.IDLE, TeardownReason.DISPUTED):
            message = GameEndedMessage(game_id=game_id, reason=reason.value).to_wire()
            for player in session.players:
                await self._registry.send(player.conn_id, message)

        session.status = GameStatus.CLOSED
        return session

    async def _notify_departure(self, session: GameSession, departed: str, *, forfeit: bool) -> None:
        leaver = session.player(departed)
        survivor = session.opponent_of(departed)
        if leaver is None or survivor is None:
            return
        survivor_score = None
        if forfeit and self._forfeit_handler is not None:
            survivor_score = await self._forfeit_handler(session, departed)
        await self._registry.send(
            survivor.conn_id,
            OpponentDisconnectedMessage(
                game_id=session.game_id,
                disconnected_player_name=leaver.name,
                disconnected_player_id=leaver.conn_id,
                is_disconnected_as_loser=survivor_score is not None,
                trophies=survivor_score,
            ).to_wire(),
        )

    def idle(self, now: float | None = None) -> list[GameSession]:
        """Sessions with no relayed message for longer than the idle timeout."""
        now = time.monotonic() if now is None else now
        return [s for s in self._sessions.values() if now - s.last_activity_at > self._idle_timeout]

    def disputed(self, timeout: float, now: float | None = None) -> list[GameSession]:
        """Sessions whose claims have disagreed for longer than ``timeout``."""
        now = time.monotonic() if now is None else now
        return [
            s for s in self._sessions.values() if s.disputed_since is not None and now - s.disputed_since > timeout
        ]

    async def reap_idle(self, now: float | None = None) -> list[str]:
        reaped = []
        for session in self.idle(now):
            logger.info("reaping idle game", game_id=session.game_id)
            await self.teardown(session.game_id, TeardownReason.IDLE)
            reaped.append(session.game_id)
        return reaped
