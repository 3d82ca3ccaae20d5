"""Account, session and persistence settings."""

from pydantic import Field
from pydantic_settings import BaseSettings

from shared.auth.session_store import DEFAULT_SESSION_TTL_SECONDS


class AuthSettings(BaseSettings):
    model_config = {"env_prefix": "AUTH_", "populate_by_name": True}

    # Sliding TTL applied on every successful token resolution
    session_ttl_seconds: int = Field(default=DEFAULT_SESSION_TTL_SECONDS, ge=60)

    # "bcrypt" in production, "simple" for tests
    password_hasher: str = Field(default="bcrypt", pattern=r"^(bcrypt|simple)$")

    # Minimum time between two nickname changes
    nickname_cooldown_seconds: int = Field(default=3600, ge=0)

    # SQLite database file path
    database_path: str = "backend/data/broker.db"

    # Legacy JSON snapshot imported once into an empty database
    legacy_data_file: str | None = "data/legacy.json"

    # Coalescing window for debounced saves
    save_debounce_ms: int = Field(default=200, ge=0)
