from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.ranking import MOCK_MAX_DELTA

# Request bodies arrive in camelCase (sessionId, newNickname).
_REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    username: str = Field(min_length=3, max_length=20)
    password: str = Field(min_length=6)
    nickname: str = Field(min_length=2, max_length=15)


class LoginRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    username: str = Field(min_length=3, max_length=20)
    password: str = Field(min_length=6)


class SessionRequest(BaseModel):
    model_config = _REQUEST_CONFIG

    session_id: str = Field(min_length=1)


class ChangeNicknameRequest(SessionRequest):
    new_nickname: str = Field(min_length=2, max_length=15)


class ChangeIconRequest(SessionRequest):
    icon: str = Field(min_length=1)


class UpdateTrophiesRequest(SessionRequest):
    """Client-reported mock duel result. Formal scores only move through consensus."""

    category: Literal["mock"]
    change: int = Field(ge=-MOCK_MAX_DELTA, le=MOCK_MAX_DELTA, strict=True)
