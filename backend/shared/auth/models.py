"""Account and login-session models."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DEFAULT_ICON = "👤"

# Views are serialized with by_alias=True: userId, createdAt, ...
_VIEW_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass
class Trophies:
    mock: int = 0
    formal: int = 0


@dataclass
class Account:
    """Registered identity. Mutated only through AccountStore."""

    account_id: str
    username: str
    nickname: str
    password_hash: str
    created_at: float  # time.time()
    icon: str = DEFAULT_ICON
    trophies: Trophies = field(default_factory=Trophies)
    last_nickname_change_at: float = 0.0


@dataclass
class AuthSession:
    """Credential-less login session with a sliding expiry."""

    session_token: str
    account_id: str
    expires_at: float  # time.time() + TTL, pushed forward on every use
    last_used_at: float


class TrophiesView(BaseModel):
    model_config = _VIEW_CONFIG

    mock: int
    formal: int


class AccountView(BaseModel):
    """Public projection of an Account (never includes the password hash)."""

    model_config = _VIEW_CONFIG

    user_id: str
    username: str
    nickname: str
    icon: str
    trophies: TrophiesView

    @classmethod
    def from_account(cls, account: Account) -> AccountView:
        return cls(
            user_id=account.account_id,
            username=account.username,
            nickname=account.nickname,
            icon=account.icon,
            trophies=TrophiesView(mock=account.trophies.mock, formal=account.trophies.formal),
        )


class ProfileView(BaseModel):
    """Profile visible to other players (no username)."""

    model_config = _VIEW_CONFIG

    user_id: str
    nickname: str
    icon: str
    trophies: TrophiesView
    created_at: float
