from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from broker.messaging.protocol import ConnectionProtocol


class AuthState(StrEnum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class GameStatus(StrEnum):
    """Lifecycle of a GameSession.

    MATCHED on pairing, ACTIVE after the first relayed message, then one of
    the terminal outcomes, then CLOSED once removed from the manager.
    """

    MATCHED = "matched"
    ACTIVE = "active"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"
    IDLE_REAPED = "idle_reaped"
    CLOSED = "closed"


class TeardownReason(StrEnum):
    RESOLVED = "resolved"
    DISCONNECT = "disconnect"
    IDLE = "idle"
    DISPUTED = "disputed"


TERMINAL_STATUS = {
    TeardownReason.RESOLVED: GameStatus.RESOLVED,
    TeardownReason.DISCONNECT: GameStatus.ABANDONED,
    TeardownReason.IDLE: GameStatus.IDLE_REAPED,
    TeardownReason.DISPUTED: GameStatus.ABANDONED,
}


@dataclass
class Connection:
    """One live transport connection.

    Lifecycle:
    - Created on transport connect (guest, not waiting, no game)
    - authenticate: account_id and display_name come from the account
    - requestMatch: waiting until paired, then game_id is set
    - Game teardown clears game_id; transport close removes the record
    """

    transport: ConnectionProtocol
    display_name: str = "Player"
    auth_state: AuthState = AuthState.GUEST
    account_id: str | None = None
    game_id: str | None = None
    waiting: bool = False
    last_heartbeat_at: float = field(default_factory=time.monotonic)

    @property
    def conn_id(self) -> str:
        return self.transport.connection_id

    @property
    def is_guest(self) -> bool:
        return self.auth_state is AuthState.GUEST


@dataclass(frozen=True)
class GamePlayer:
    conn_id: str
    name: str
    is_host: bool
    is_guest: bool
    # Captured at pairing so a forfeit still knows who left after the
    # connection record is gone.
    account_id: str | None = None


@dataclass
class GameSession:
    game_id: str
    players: tuple[GamePlayer, GamePlayer]
    created_at: float = field(default_factory=time.monotonic)
    last_activity_at: float = field(default_factory=time.monotonic)
    status: GameStatus = GameStatus.MATCHED
    disputed_since: float | None = None

    def __post_init__(self) -> None:
        if self.players[0].conn_id == self.players[1].conn_id:
            raise ValueError("a game needs two distinct connections")

    @property
    def player_ids(self) -> tuple[str, str]:
        return self.players[0].conn_id, self.players[1].conn_id

    @property
    def is_ranked(self) -> bool:
        """Both players are authenticated as two different accounts."""
        first, second = self.players
        return first.account_id is not None and second.account_id is not None and first.account_id != second.account_id

    def has_player(self, conn_id: str) -> bool:
        return conn_id in self.player_ids

    def player(self, conn_id: str) -> GamePlayer | None:
        for p in self.players:
            if p.conn_id == conn_id:
                return p
        return None

    def opponent_of(self, conn_id: str) -> GamePlayer | None:
        if not self.has_player(conn_id):
            return None
        return self.players[1] if self.players[0].conn_id == conn_id else self.players[0]


@dataclass
class PendingOutcome:
    game_id: str
    claims: dict[str, str] = field(default_factory=dict)  # claimant conn_id -> claimed winner conn_id
