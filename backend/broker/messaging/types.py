from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from shared.auth.models import AccountView
from shared.ranking import RankingRow

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

DEFAULT_PLAYER_NAME = "Player"
MAX_PLAYER_NAME_LENGTH = 30
_CONNECTION_ID_FIELD = Field(min_length=1, max_length=100)


class ClientMessageType(StrEnum):
    PING = "ping"
    AUTHENTICATE = "authenticate"
    REQUEST_MATCH = "requestMatch"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "iceCandidate"
    GAME_STATE = "gameState"
    CARD_PLAYED = "cardPlayed"
    TURN_END = "turnEnd"
    GAME_OVER = "gameOver"
    REQUEST_GAME_STATE = "requestGameState"
    GET_RANKING = "getRanking"


class ServerMessageType(StrEnum):
    PONG = "pong"
    AUTHENTICATED = "authenticated"
    WAITING_FOR_MATCH = "waitingForMatch"
    MATCH_FOUND = "matchFound"
    OPPONENT_DISCONNECTED = "opponentDisconnected"
    SERVER_STATS = "serverStats"
    GAME_STATE_RECOVERY = "gameStateRecovery"
    OUTCOME_CLAIMED = "outcomeClaimed"
    OUTCOME_DISPUTED = "outcomeDisputed"
    CLAIM_REJECTED = "claimRejected"
    GAME_OVER = "gameOver"
    GAME_ENDED = "gameEnded"
    RANKING_DATA = "rankingData"
    ERROR = "error"


class ErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    ALREADY_IN_GAME = "already_in_game"
    PEER_UNREACHABLE = "peer_unreachable"
    INTERNAL_ERROR = "internal_error"


# Relayed events whose gameState is mirrored.
MIRRORED_TYPES = frozenset({ClientMessageType.GAME_STATE, ClientMessageType.CARD_PLAYED, ClientMessageType.TURN_END})


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# --- client -> server ---


class PingMessage(WireModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


class AuthenticateMessage(WireModel):
    type: Literal[ClientMessageType.AUTHENTICATE] = ClientMessageType.AUTHENTICATE
    session_token: str = Field(min_length=1, max_length=200)


class RequestMatchMessage(WireModel):
    type: Literal[ClientMessageType.REQUEST_MATCH] = ClientMessageType.REQUEST_MATCH
    player_name: str | None = Field(default=None, max_length=MAX_PLAYER_NAME_LENGTH)

    @field_validator("player_name")
    @classmethod
    def _validate_player_name(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
            raise ValueError("playerName must not contain control characters")
        return v.strip() or None


class SignalingMessage(WireModel):
    """offer / answer / iceCandidate. Payload fields are forwarded untouched."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: Literal[ClientMessageType.OFFER, ClientMessageType.ANSWER, ClientMessageType.ICE_CANDIDATE]
    target: str = _CONNECTION_ID_FIELD


class GameEventMessage(WireModel):
    """gameState / cardPlayed / turnEnd. A present gameState is mirrored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: Literal[ClientMessageType.GAME_STATE, ClientMessageType.CARD_PLAYED, ClientMessageType.TURN_END]
    target: str = _CONNECTION_ID_FIELD
    game_state: Any = None


class GameOverClaimMessage(WireModel):
    """A player's claim of who won.

    ``winner`` is deliberately untyped: a malformed claim is answered with
    claimRejected rather than a generic validation error.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    type: Literal[ClientMessageType.GAME_OVER] = ClientMessageType.GAME_OVER
    target: str | None = None
    winner: Any = None
    game_state: Any = None


class RequestGameStateMessage(WireModel):
    type: Literal[ClientMessageType.REQUEST_GAME_STATE] = ClientMessageType.REQUEST_GAME_STATE


class GetRankingMessage(WireModel):
    type: Literal[ClientMessageType.GET_RANKING] = ClientMessageType.GET_RANKING
    category: str = Field(min_length=1, max_length=20)


RelayMessage = SignalingMessage | GameEventMessage

ClientMessage = Annotated[
    PingMessage
    | AuthenticateMessage
    | RequestMatchMessage
    | SignalingMessage
    | GameEventMessage
    | GameOverClaimMessage
    | RequestGameStateMessage
    | GetRankingMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage."""
    return _client_message_adapter.validate_python(data)


def relay_payload(message: RelayMessage, sender_id: str) -> dict[str, Any]:
    """Build the forwarded message: every payload field plus the sender."""
    exclude = {"type", "target"}
    if isinstance(message, GameEventMessage) and message.game_state is None:
        exclude.add("game_state")
    payload = message.model_dump(by_alias=True, exclude=exclude, mode="json")
    payload["type"] = message.type.value
    payload["from"] = sender_id
    return payload


# --- server -> client ---


class PongMessage(WireModel):
    type: Literal[ServerMessageType.PONG] = ServerMessageType.PONG


class AuthenticatedMessage(WireModel):
    type: Literal[ServerMessageType.AUTHENTICATED] = ServerMessageType.AUTHENTICATED
    account: AccountView


class WaitingForMatchMessage(WireModel):
    type: Literal[ServerMessageType.WAITING_FOR_MATCH] = ServerMessageType.WAITING_FOR_MATCH
    message: str = "Looking for an opponent..."
    waiting_count: int


class OpponentInfo(WireModel):
    id: str
    name: str
    is_guest: bool


class MatchFoundMessage(WireModel):
    type: Literal[ServerMessageType.MATCH_FOUND] = ServerMessageType.MATCH_FOUND
    game_id: str
    opponent: OpponentInfo
    is_host: bool


class OpponentDisconnectedMessage(WireModel):
    type: Literal[ServerMessageType.OPPONENT_DISCONNECTED] = ServerMessageType.OPPONENT_DISCONNECTED
    message: str = "Your opponent disconnected."
    game_id: str
    disconnected_player_name: str
    disconnected_player_id: str
    is_disconnected_as_loser: bool
    trophies: int | None = None


class ServerStatsMessage(WireModel):
    type: Literal[ServerMessageType.SERVER_STATS] = ServerMessageType.SERVER_STATS
    total_connections: int
    active_games: int
    waiting_players: int
    total_matches: int


class GameStateRecoveryMessage(WireModel):
    type: Literal[ServerMessageType.GAME_STATE_RECOVERY] = ServerMessageType.GAME_STATE_RECOVERY
    game_id: str
    game_state: Any


class OutcomeClaimedMessage(WireModel):
    type: Literal[ServerMessageType.OUTCOME_CLAIMED] = ServerMessageType.OUTCOME_CLAIMED
    game_id: str
    claimant: str = Field(alias="from")
    winner: str


class OutcomeDisputedMessage(WireModel):
    type: Literal[ServerMessageType.OUTCOME_DISPUTED] = ServerMessageType.OUTCOME_DISPUTED
    game_id: str
    claims: dict[str, str]


class ClaimRejectedMessage(WireModel):
    type: Literal[ServerMessageType.CLAIM_REJECTED] = ServerMessageType.CLAIM_REJECTED
    game_id: str | None = None
    reason: str


class GameOverMessage(WireModel):
    type: Literal[ServerMessageType.GAME_OVER] = ServerMessageType.GAME_OVER
    game_id: str
    winner: str
    winner_name: str
    committed: bool = True
    ranked: bool
    trophies: int | None = None


class GameEndedMessage(WireModel):
    type: Literal[ServerMessageType.GAME_ENDED] = ServerMessageType.GAME_ENDED
    game_id: str
    reason: str


class RankingDataMessage(WireModel):
    type: Literal[ServerMessageType.RANKING_DATA] = ServerMessageType.RANKING_DATA
    category: str
    rankings: list[RankingRow]


class ErrorMessage(WireModel):
    type: Literal[ServerMessageType.ERROR] = ServerMessageType.ERROR
    message: str
    context: str | None = None
    code: ErrorCode | None = None
