"""Tests for AuthSettings configuration."""

import pytest
from pydantic import ValidationError

from shared.auth.settings import AuthSettings


class TestAuthSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("AUTH_PASSWORD_HASHER", raising=False)
        settings = AuthSettings()

        assert settings.session_ttl_seconds == 86400
        assert settings.password_hasher == "bcrypt"
        assert settings.nickname_cooldown_seconds == 3600
        assert settings.save_debounce_ms == 200
        assert settings.legacy_data_file == "data/legacy.json"

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("AUTH_DATABASE_PATH", "custom/broker.db")
        monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "3600")

        settings = AuthSettings()

        assert settings.database_path == "custom/broker.db"
        assert settings.session_ttl_seconds == 3600

    def test_unknown_hasher_rejected(self, monkeypatch):
        monkeypatch.setenv("AUTH_PASSWORD_HASHER", "md5")
        with pytest.raises(ValidationError, match="password_hasher"):
            AuthSettings()

    def test_ttl_floor(self):
        with pytest.raises(ValidationError):
            AuthSettings(session_ttl_seconds=10)
