"""Broker server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from broker.session.consensus import DISPUTE_TIMEOUT_SECONDS
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class BrokerSettings(BaseSettings):
    model_config = {"env_prefix": "BROKER_"}

    log_dir: str | None = None
    cors_origins: list[str] = ["http://localhost:3000"]

    # Handed to clients for peer connection bootstrapping
    stun_servers: list[str] = ["stun:stun.l.google.com:19302"]
    turn_servers: list[str] = []
    turn_username: str | None = None
    turn_credential: str | None = None

    # How long disagreeing outcome claims may stand before the game is ended
    dispute_timeout_seconds: int = Field(default=DISPUTE_TIMEOUT_SECONDS, ge=1)

    @field_validator("cors_origins", "stun_servers", mode="before")
    @classmethod
    def validate_required_list(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @field_validator("turn_servers", mode="before")
    @classmethod
    def validate_optional_list(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
