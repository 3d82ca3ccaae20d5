"""Broker session orchestration.

SessionManager owns the registry, matchmaking queue, game manager, relay,
state mirror and outcome consensus, and exposes one coroutine per inbound
event. It assumes its caller serializes calls (the inbound dispatcher), so
none of the maps it touches need locking.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from broker.messaging.types import (
    AuthenticatedMessage,
    GameStateRecoveryMessage,
    PongMessage,
    RankingDataMessage,
    ServerStatsMessage,
)
from broker.session.consensus import DISPUTE_TIMEOUT_SECONDS, OutcomeConsensus
from broker.session.games import GAME_IDLE_TIMEOUT_SECONDS, GameSessionManager
from broker.session.matchmaking import MatchmakingQueue
from broker.session.mirror import GameStateMirror
from broker.session.models import TeardownReason
from broker.session.registry import HEARTBEAT_TIMEOUT_SECONDS, ConnectionRegistry
from broker.session.relay import SignalingRelay
from shared.errors import AuthError
from shared.ranking import parse_category

if TYPE_CHECKING:
    from broker.messaging.protocol import ConnectionProtocol
    from broker.messaging.types import RelayMessage
    from broker.session.models import Connection
    from shared.auth.service import AuthService
    from shared.ranking import RankingLedger

logger = structlog.get_logger()

INVALID_SESSION_MESSAGE = "Session expired. Please log in again."


class SessionManager:
    def __init__(
        self,
        auth_service: AuthService,
        ledger: RankingLedger,
        *,
        heartbeat_timeout: float = HEARTBEAT_TIMEOUT_SECONDS,
        idle_timeout: float = GAME_IDLE_TIMEOUT_SECONDS,
        dispute_timeout: float = DISPUTE_TIMEOUT_SECONDS,
    ) -> None:
        self._auth = auth_service
        self._ledger = ledger
        self._dispute_timeout = dispute_timeout
        self.registry = ConnectionRegistry(heartbeat_timeout=heartbeat_timeout)
        self.mirror = GameStateMirror()
        self.games = GameSessionManager(self.registry, self.mirror, idle_timeout=idle_timeout)
        self.matchmaking = MatchmakingQueue(self.registry, self.games, auth_service.accounts)
        self.relay = SignalingRelay(self.registry, self.games, self.mirror)
        self.consensus = OutcomeConsensus(self.games, self.registry, ledger, self.mirror)

    # --- connection lifecycle ---

    async def connect(self, transport: ConnectionProtocol) -> Connection:
        connection = self.registry.register(transport)
        logger.info("connection registered", conn_id=connection.conn_id, total=self.registry.count)
        await self.registry.send(connection.conn_id, self.stats().to_wire())
        return connection

    async def disconnect(self, conn_id: str) -> None:
        """Cascade a transport close. Safe to call more than once."""
        if self.registry.get(conn_id) is None:
            return
        self.matchmaking.cancel(conn_id)
        session = self.games.game_of(conn_id)
        if session is not None:
            await self.games.teardown(session.game_id, TeardownReason.DISCONNECT, departed=conn_id)
        self.registry.remove(conn_id)
        logger.info("connection removed", conn_id=conn_id, total=self.registry.count)
        await self.broadcast_stats()

    async def ping(self, conn_id: str) -> None:
        self.registry.heartbeat(conn_id)
        await self.registry.send(conn_id, PongMessage().to_wire())

    async def authenticate(self, conn_id: str, session_token: str) -> None:
        account_id = self._auth.resolve_session_to_account(session_token)
        account = self._auth.accounts.get(account_id)
        if account is None:
            raise AuthError(INVALID_SESSION_MESSAGE)
        self.registry.mark_authenticated(conn_id, account.account_id, account.nickname)
        logger.info("connection authenticated", conn_id=conn_id, account_id=account.account_id)
        await self.registry.send(
            conn_id,
            AuthenticatedMessage(account=self._auth.view(account)).to_wire(),
        )

    # --- game flow ---

    async def request_match(self, conn_id: str, player_name: str | None) -> None:
        await self.matchmaking.request_match(conn_id, player_name)
        await self.broadcast_stats()

    async def relay_message(self, conn_id: str, message: RelayMessage) -> None:
        await self.relay.relay(message, conn_id)

    async def game_over(self, conn_id: str, winner: Any, game_state: Any = None) -> None:  # noqa: ANN401
        if await self.consensus.claim(conn_id, winner, game_state):
            await self.broadcast_stats()

    async def request_game_state(self, conn_id: str) -> None:
        """Reply with the mirrored snapshot. Silent when there is none."""
        session = self.games.game_of(conn_id)
        if session is None:
            return
        state = self.mirror.recover(session.game_id)
        if state is None:
            return
        await self.registry.send(
            conn_id,
            GameStateRecoveryMessage(game_id=session.game_id, game_state=state).to_wire(),
        )

    async def get_ranking(self, conn_id: str, category: str) -> None:
        parsed = parse_category(category)
        rankings = self._ledger.rankings(parsed, nickname_of=self._nickname_of)
        await self.registry.send(
            conn_id,
            RankingDataMessage(category=parsed.value, rankings=rankings).to_wire(),
        )

    def _nickname_of(self, account_id: str) -> str | None:
        account = self._auth.accounts.get(account_id)
        return account.nickname if account is not None else None

    # --- stats ---

    def stats(self) -> ServerStatsMessage:
        return ServerStatsMessage(
            total_connections=self.registry.count,
            active_games=self.games.active_count,
            waiting_players=self.matchmaking.waiting_count,
            total_matches=self.games.total_matches,
        )

    async def broadcast_stats(self) -> None:
        await self.registry.broadcast(self.stats().to_wire())

    # --- periodic sweeps ---

    async def sweep_heartbeats(self, now: float | None = None) -> list[str]:
        """Close stale transports and run their disconnect cascade."""
        closed = await self.registry.close_stale(now)
        for conn_id in closed:
            await self.disconnect(conn_id)
        return closed

    async def sweep_games(self, now: float | None = None) -> None:
        now = time.monotonic() if now is None else now
        reaped = await self.games.reap_idle(now)
        expired = await self.consensus.expire_disputes(self._dispute_timeout, now)
        if reaped or expired:
            await self.broadcast_stats()

    async def sweep(self) -> None:
        """The 30s maintenance tick: liveness, idle games, disputes, stats."""
        await self.sweep_heartbeats()
        await self.sweep_games()
        stats = self.stats()
        logger.info(
            "server status",
            connections=stats.total_connections,
            games=stats.active_games,
            waiting=stats.waiting_players,
            matches=stats.total_matches,
        )
        await self.registry.broadcast(stats.to_wire())
