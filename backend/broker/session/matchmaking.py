"""FIFO matchmaking queue."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from broker.messaging.types import (
    DEFAULT_PLAYER_NAME,
    ErrorCode,
    MatchFoundMessage,
    OpponentInfo,
    WaitingForMatchMessage,
)
from shared.errors import ConflictError

if TYPE_CHECKING:
    from broker.session.games import GameSessionManager
    from broker.session.models import GameSession
    from broker.session.registry import ConnectionRegistry
    from shared.auth.store import AccountStore

logger = structlog.get_logger()


class AlreadyInGameError(ConflictError):
    code = ErrorCode.ALREADY_IN_GAME.value


class MatchmakingQueue:
    """Pairs waiting connections, oldest live waiter first.

    Stale entries (closed transports, vanished records) met while scanning
    are pruned. A connection never appears twice; re-requesting refreshes
    its name and keeps its place.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        games: GameSessionManager,
        accounts: AccountStore | None = None,
    ) -> None:
        self._registry = registry
        self._games = games
        self._accounts = accounts
        self._waiting: dict[str, None] = {}  # insertion-ordered set of conn_ids

    @property
    def waiting_count(self) -> int:
        return len(self._waiting)

    def __contains__(self, conn_id: object) -> bool:
        return conn_id in self._waiting

    def waiting_ids(self) -> list[str]:
        return list(self._waiting)

    def _display_name(self, conn_id: str, requested_name: str | None) -> str:
        """Authenticated players always play under their current nickname."""
        connection = self._registry.get(conn_id)
        if connection is not None and connection.account_id is not None and self._accounts is not None:
            account = self._accounts.get(connection.account_id)
            if account is not None:
                return account.nickname
        return requested_name or DEFAULT_PLAYER_NAME

    def _find_partner(self, conn_id: str) -> str | None:
        requester = self._registry.get(conn_id)
        account_id = requester.account_id if requester is not None else None
        for waiting_id in list(self._waiting):
            if waiting_id == conn_id:
                continue
            candidate = self._registry.get(waiting_id)
            if candidate is None or not candidate.transport.is_open or candidate.game_id is not None:
                logger.info("pruning stale waiter", conn_id=waiting_id)
                self._waiting.pop(waiting_id, None)
                if candidate is not None:
                    candidate.waiting = False
                continue
            if account_id is not None and candidate.account_id == account_id:
                # Another socket of the same account stays queued for someone else.
                continue
            return waiting_id
        return None

    async def request_match(self, conn_id: str, requested_name: str | None = None) -> GameSession | None:
        """Pair the requester with the oldest live waiter, or enqueue it.

        Returns the new session when a match was made.
        """
        connection = self._registry.get(conn_id)
        if connection is None:
            return None
        if connection.game_id is not None:
            raise AlreadyInGameError("You are already in a game.")

        connection.display_name = self._display_name(conn_id, requested_name)
        partner_id = self._find_partner(conn_id)
        if partner_id is None:
            self._waiting[conn_id] = None
            connection.waiting = True
            logger.info("waiting for match", conn_id=conn_id, name=connection.display_name, waiting=self.waiting_count)
            await self._registry.send(
                conn_id,
                WaitingForMatchMessage(waiting_count=self.waiting_count).to_wire(),
            )
            return None

        partner = self._registry.get(partner_id)
        self._waiting.pop(partner_id, None)
        self._waiting.pop(conn_id, None)
        session = self._games.create(connection, partner)
        host, guest = session.players
        await self._registry.send(
            host.conn_id,
            MatchFoundMessage(
                game_id=session.game_id,
                opponent=OpponentInfo(id=guest.conn_id, name=guest.name, is_guest=guest.is_guest),
                is_host=True,
            ).to_wire(),
        )
        await self._registry.send(
            guest.conn_id,
            MatchFoundMessage(
                game_id=session.game_id,
                opponent=OpponentInfo(id=host.conn_id, name=host.name, is_guest=host.is_guest),
                is_host=False,
            ).to_wire(),
        )
        return session

    def cancel(self, conn_id: str) -> bool:
        """Remove a waiter. Returns whether it was waiting."""
        removed = conn_id in self._waiting
        self._waiting.pop(conn_id, None)
        connection = self._registry.get(conn_id)
        if connection is not None:
            connection.waiting = False
        return removed
