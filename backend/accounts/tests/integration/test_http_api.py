"""Integration tests for the account, ranking and discovery HTTP endpoints."""

import pytest
from starlette.testclient import TestClient

from broker.server.app import create_app
from broker.server.settings import BrokerSettings
from shared.auth import AuthSettings
from shared.errors import GENERIC_SERVER_ERROR


def _auth_settings(tmp_path, **overrides) -> AuthSettings:
    values = {
        "database_path": str(tmp_path / "broker.db"),
        "legacy_data_file": None,
        "password_hasher": "simple",
        "save_debounce_ms": 0,
    }
    values.update(overrides)
    return AuthSettings(**values)


def register(client, username="alice", nickname="Alice", password="secret123"):
    return client.post(
        "/api/register",
        json={"username": username, "password": password, "nickname": nickname},
    )


class TestAccountEndpoints:
    @pytest.fixture
    def client(self, tmp_path):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            yield client

    def test_unexpected_failure_returns_generic_500(self, tmp_path, monkeypatch):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))

        def explode(_account_id):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(app.state.auth_service, "public_profile", explode)
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get("/api/profile/someone")

        assert response.status_code == 500
        assert response.json() == {"error": GENERIC_SERVER_ERROR}

    def test_register_returns_session_and_user(self, client):
        response = register(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["sessionId"]
        user = body["userData"]
        assert user["username"] == "alice"
        assert user["nickname"] == "Alice"
        assert user["trophies"] == {"mock": 0, "formal": 0}
        assert "passwordHash" not in user

    def test_register_duplicate_username_conflicts(self, client):
        register(client)

        response = register(client, nickname="Other")

        assert response.status_code == 409
        assert "error" in response.json()

    def test_register_duplicate_nickname_conflicts(self, client):
        register(client)

        response = register(client, username="bobby")

        assert response.status_code == 409

    def test_register_validation_details(self, client):
        response = register(client, username="al", password="123")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request format."
        fields = {tuple(item["loc"]) for item in body["details"]}
        assert ("username",) in fields
        assert ("password",) in fields

    def test_malformed_json_rejected(self, client):
        response = client.post("/api/register", content=b"{oops", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request format."}

    def test_oversized_body_rejected(self, client):
        response = client.post("/api/login", json={"username": "alice", "password": "x" * 5000})

        assert response.status_code == 400

    def test_login(self, client):
        register(client)

        response = client.post("/api/login", json={"username": "alice", "password": "secret123"})

        assert response.status_code == 200
        assert response.json()["userData"]["nickname"] == "Alice"

    def test_login_wrong_password(self, client):
        register(client)

        response = client.post("/api/login", json={"username": "alice", "password": "wrong-password"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid username or password."}

    def test_login_unknown_user(self, client):
        response = client.post("/api/login", json={"username": "nobody", "password": "secret123"})

        assert response.status_code == 401

    def test_verify_session(self, client):
        session_id = register(client).json()["sessionId"]

        response = client.post("/api/verify-session", json={"sessionId": session_id})

        assert response.status_code == 200
        assert response.json()["userData"]["username"] == "alice"

    def test_verify_unknown_session(self, client):
        response = client.post("/api/verify-session", json={"sessionId": "not-a-session"})

        assert response.status_code == 401

    def test_change_nickname_with_cooldown(self, client):
        session_id = register(client).json()["sessionId"]

        first = client.post("/api/change-nickname", json={"sessionId": session_id, "newNickname": "Ally"})
        assert first.status_code == 200
        assert first.json()["userData"]["nickname"] == "Ally"

        second = client.post("/api/change-nickname", json={"sessionId": session_id, "newNickname": "Alicia"})
        assert second.status_code == 429
        body = second.json()
        assert "minute" in body["error"]
        assert body["details"]["remainingMinutes"] == 60

    def test_change_nickname_taken(self, client):
        register(client, username="bobby", nickname="Bob")
        session_id = register(client).json()["sessionId"]

        response = client.post("/api/change-nickname", json={"sessionId": session_id, "newNickname": "Bob"})

        assert response.status_code == 409

    def test_change_icon(self, client):
        session_id = register(client).json()["sessionId"]

        response = client.post("/api/change-icon", json={"sessionId": session_id, "icon": "🐉"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "icon": "🐉"}

    def test_change_icon_requires_session(self, client):
        response = client.post("/api/change-icon", json={"sessionId": "nope", "icon": "🐉"})

        assert response.status_code == 401

    def test_profile(self, client):
        user = register(client).json()["userData"]

        response = client.get(f"/api/profile/{user['userId']}")

        assert response.status_code == 200
        profile = response.json()["profile"]
        assert profile["nickname"] == "Alice"
        assert "username" not in profile

    def test_unknown_profile(self, client):
        response = client.get("/api/profile/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "User not found."}


class TestRankingEndpoints:
    @pytest.fixture
    def client(self, tmp_path):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            yield client

    def test_new_accounts_listed_at_zero(self, client):
        register(client)

        body = client.get("/api/rankings/formal").json()

        assert body["category"] == "formal"
        assert [row["nickname"] for row in body["rankings"]] == ["Alice"]
        assert body["rankings"][0]["score"] == 0

    def test_unknown_category(self, client):
        response = client.get("/api/rankings/weekly")

        assert response.status_code == 404

    def test_update_mock_trophies(self, client):
        session_id = register(client).json()["sessionId"]

        response = client.post(
            "/api/update-trophies",
            json={"sessionId": session_id, "category": "mock", "change": 3},
        )
        assert response.status_code == 200
        assert response.json()["trophies"] == {"mock": 3, "formal": 0}

        response = client.post(
            "/api/update-trophies",
            json={"sessionId": session_id, "category": "mock", "change": -5},
        )
        assert response.json()["trophies"]["mock"] == 0

        rows = client.get("/api/rankings/mock").json()["rankings"]
        assert rows[0]["score"] == 0

    @pytest.mark.parametrize(
        "payload",
        [
            {"category": "formal", "change": 2},
            {"category": "mock", "change": 6},
            {"category": "mock", "change": -6},
            {"category": "mock", "change": "3"},
        ],
    )
    def test_update_trophies_rejects(self, client, payload):
        session_id = register(client).json()["sessionId"]

        response = client.post("/api/update-trophies", json={"sessionId": session_id, **payload})

        assert response.status_code == 400

    def test_update_trophies_requires_session(self, client):
        response = client.post(
            "/api/update-trophies",
            json={"sessionId": "nope", "category": "mock", "change": 1},
        )

        assert response.status_code == 401


class TestDiscoveryEndpoints:
    def test_health(self, tmp_path):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "version" in body

    def test_default_ice_servers(self, tmp_path):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            body = client.get("/api/ice-servers").json()
        assert body == {"iceServers": [{"urls": "stun:stun.l.google.com:19302"}]}

    def test_turn_servers_included(self, tmp_path):
        settings = BrokerSettings(
            turn_servers=["turn:turn.example:3478"],
            turn_username="user",
            turn_credential="pass",
        )
        app = create_app(settings=settings, auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            servers = client.get("/api/ice-servers").json()["iceServers"]
        assert servers[-1] == {"urls": ["turn:turn.example:3478"], "username": "user", "credential": "pass"}


class TestPersistenceAcrossRestart:
    def test_accounts_and_rankings_survive_restart(self, tmp_path):
        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            session_id = register(client).json()["sessionId"]
            client.post(
                "/api/update-trophies",
                json={"sessionId": session_id, "category": "mock", "change": 4},
            )

        app = create_app(settings=BrokerSettings(), auth_settings=_auth_settings(tmp_path))
        with TestClient(app) as client:
            login = client.post("/api/login", json={"username": "alice", "password": "secret123"})
            assert login.status_code == 200
            assert login.json()["userData"]["trophies"]["mock"] == 4
            verify = client.post("/api/verify-session", json={"sessionId": session_id})
            assert verify.status_code == 200
