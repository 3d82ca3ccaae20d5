"""Tests for Database connection and schema."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from shared.db.connection import Database

if TYPE_CHECKING:
    from pathlib import Path


class TestConnect:
    def test_creates_schema(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "broker.db")
        db.connect()

        tables = {
            row[0] for row in db.connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        assert {"accounts", "sessions", "rankings"} <= tables
        db.close()

    def test_reconnect_is_idempotent(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "broker.db")
        db.connect()
        db.close()
        db.connect()

        assert db.connection.execute("SELECT COUNT(*) FROM accounts").fetchone() == (0,)
        db.close()

    def test_file_permissions_hardened(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "broker.db")
        db.connect()

        assert (tmp_path / "broker.db").stat().st_mode & 0o777 == 0o600
        db.close()

    def test_connection_requires_connect(self) -> None:
        db = Database(":memory:")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_nickname_and_username_unique(self) -> None:
        db = Database(":memory:")
        db.connect()
        insert = "INSERT INTO accounts (id, username, nickname, password_hash, created_at) VALUES (?, ?, ?, ?, 0)"
        db.connection.execute(insert, ("u1", "alice", "Alice", "h"))

        with pytest.raises(sqlite3.IntegrityError):
            db.connection.execute(insert, ("u2", "ALICE", "Other", "h"))
        with pytest.raises(sqlite3.IntegrityError):
            db.connection.execute(insert, ("u3", "carol", "Alice", "h"))
        db.close()
