"""Two-party outcome consensus.

Neither client is trusted on its own to say who won. Each player files a
claim; the ranking ledger is touched only once both claims name the same
winner. The session is torn down before anyone is notified, so a late or
repeated claim finds no game and the ledger is mutated at most once.

Disagreement is not left hanging: both sides are told, either side may
revise, and a dispute older than the configured timeout ends the game with
no ranking change.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from broker.messaging.types import (
    ClaimRejectedMessage,
    GameOverMessage,
    OutcomeClaimedMessage,
    OutcomeDisputedMessage,
)
from broker.session.models import TeardownReason

if TYPE_CHECKING:
    from broker.session.games import GameSessionManager
    from broker.session.mirror import GameStateMirror
    from broker.session.models import GameSession
    from broker.session.registry import ConnectionRegistry
    from shared.ranking import RankingLedger

logger = structlog.get_logger()

DISPUTE_TIMEOUT_SECONDS = 60

NOT_IN_GAME_REASON = "You are not in a game."
INVALID_WINNER_REASON = "Claimed winner is not a player in this game."


class OutcomeConsensus:
    def __init__(
        self,
        games: GameSessionManager,
        registry: ConnectionRegistry,
        ledger: RankingLedger,
        mirror: GameStateMirror,
    ) -> None:
        self._games = games
        self._registry = registry
        self._ledger = ledger
        self._mirror = mirror
        games.set_forfeit_handler(self._force_forfeit)

    async def claim(self, conn_id: str, winner: Any, game_state: Any = None) -> bool:  # noqa: ANN401
        """Record ``conn_id``'s claim that ``winner`` won. Returns True on commit."""
        session = self._games.game_of(conn_id)
        if session is None:
            await self._reject(conn_id, None, NOT_IN_GAME_REASON)
            return False
        if not isinstance(winner, str) or not session.has_player(winner):
            logger.warning("claim rejected", conn_id=conn_id, game_id=session.game_id, winner=repr(winner))
            await self._reject(conn_id, session.game_id, INVALID_WINNER_REASON)
            return False

        if game_state is not None:
            self._mirror.snapshot(session.game_id, game_state)
        self._games.touch(session.game_id)

        pending = self._games.open_outcome(session.game_id)
        pending.claims[conn_id] = winner
        opponent = session.opponent_of(conn_id)
        opponent_claim = pending.claims.get(opponent.conn_id)
        logger.info("outcome claimed", game_id=session.game_id, conn_id=conn_id, winner=winner)

        if opponent_claim is None:
            await self._registry.send(
                opponent.conn_id,
                OutcomeClaimedMessage(game_id=session.game_id, claimant=conn_id, winner=winner).to_wire(),
            )
            return False

        if opponent_claim == winner:
            await self._commit(session, winner)
            return True

        if session.disputed_since is None:
            session.disputed_since = time.monotonic()
        logger.info("outcome disputed", game_id=session.game_id, claims=dict(pending.claims))
        message = OutcomeDisputedMessage(game_id=session.game_id, claims=dict(pending.claims)).to_wire()
        for player_id in session.player_ids:
            await self._registry.send(player_id, message)
        return False

    async def _reject(self, conn_id: str, game_id: str | None, reason: str) -> None:
        await self._registry.send(conn_id, ClaimRejectedMessage(game_id=game_id, reason=reason).to_wire())

    async def _commit(self, session: GameSession, winner_id: str) -> None:
        winner = session.player(winner_id)
        loser = session.opponent_of(winner_id)
        ranked = session.is_ranked
        await self._games.teardown(session.game_id, TeardownReason.RESOLVED)

        scores: dict[str, int] = {}
        if ranked:
            result = self._ledger.apply_match(winner.account_id, loser.account_id)
            scores = {winner.conn_id: result.winner_score, loser.conn_id: result.loser_score}
        logger.info("outcome committed", game_id=session.game_id, winner=winner_id, ranked=ranked)

        for player_id in session.player_ids:
            await self._registry.send(
                player_id,
                GameOverMessage(
                    game_id=session.game_id,
                    winner=winner.conn_id,
                    winner_name=winner.name,
                    ranked=ranked,
                    trophies=scores.get(player_id),
                ).to_wire(),
            )

    async def _force_forfeit(self, session: GameSession, departed: str) -> int | None:
        """Record the departed player as loser. Returns the survivor's new score."""
        leaver = session.player(departed)
        survivor = session.opponent_of(departed)
        if leaver is None or survivor is None or not session.is_ranked:
            return None
        result = self._ledger.apply_match(survivor.account_id, leaver.account_id)
        logger.info(
            "forfeit recorded",
            game_id=session.game_id,
            winner=survivor.account_id,
            loser=leaver.account_id,
        )
        return result.winner_score

    async def expire_disputes(self, timeout: float = DISPUTE_TIMEOUT_SECONDS, now: float | None = None) -> list[str]:
        """End games whose claims have disagreed for longer than ``timeout``."""
        expired = []
        for session in self._games.disputed(timeout, now):
            logger.info("dispute expired", game_id=session.game_id)
            await self._games.teardown(session.game_id, TeardownReason.DISPUTED)
            expired.append(session.game_id)
        return expired
