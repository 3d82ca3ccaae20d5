"""SQLite-backed storage for accounts, login sessions and rankings."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from shared.auth.models import Account, AuthSession
    from shared.db.connection import Database

logger = structlog.get_logger()


@dataclass
class StateSnapshot:
    """Copies of the in-memory state, safe to hand to a writer thread."""

    accounts: list[Account]
    sessions: list[AuthSession]
    rankings: list[tuple[str, str, int]]


class SqliteStateRepository:
    """Raw row reads at startup and whole-state writes on flush.

    Reads return plain dicts so the migration layer can accept older column
    shapes. ``save_snapshot`` is synchronous and blocking; callers run it off
    the event loop.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def _rows(self, sql: str) -> list[dict[str, Any]]:
        cursor = self._db.connection.execute(sql)
        columns = [c[0] for c in cursor.description]
        return [dict(zip(columns, row, strict=True)) for row in cursor.fetchall()]

    def load_account_rows(self) -> list[dict[str, Any]]:
        return self._rows(
            "SELECT id, username, nickname, password_hash, icon, last_nickname_change_at, created_at FROM accounts",
        )

    def load_session_rows(self) -> list[dict[str, Any]]:
        return self._rows("SELECT token, account_id, expires_at, last_used_at FROM sessions")

    def load_ranking_rows(self) -> list[dict[str, Any]]:
        return self._rows("SELECT category, account_id, score FROM rankings")

    def save_snapshot(self, snapshot: StateSnapshot) -> None:
        """Replace all three tables with the snapshot in one transaction.

        Rows no longer present in memory (expired sessions, migrated legacy
        ranking keys) disappear.
        """
        conn = self._db.connection
        try:
            conn.execute("BEGIN")
            self._write_accounts(conn, snapshot.accounts)
            self._write_sessions(conn, snapshot.sessions)
            self._write_rankings(conn, snapshot.rankings)
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise
        logger.debug(
            "state saved",
            accounts=len(snapshot.accounts),
            sessions=len(snapshot.sessions),
            rankings=len(snapshot.rankings),
        )

    @staticmethod
    def _write_accounts(conn: sqlite3.Connection, accounts: list[Account]) -> None:
        # Full replace: two accounts may have swapped nicknames since the last
        # flush, which a row-by-row upsert would trip on the unique index.
        conn.execute("DELETE FROM accounts")
        conn.executemany(
            """
            INSERT INTO accounts (id, username, nickname, password_hash, icon, last_nickname_change_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    a.account_id,
                    a.username,
                    a.nickname,
                    a.password_hash,
                    a.icon,
                    a.last_nickname_change_at,
                    a.created_at,
                )
                for a in accounts
            ],
        )

    @staticmethod
    def _write_sessions(conn: sqlite3.Connection, sessions: list[AuthSession]) -> None:
        conn.execute("DELETE FROM sessions")
        conn.executemany(
            "INSERT INTO sessions (token, account_id, expires_at, last_used_at) VALUES (?, ?, ?, ?)",
            [(s.session_token, s.account_id, s.expires_at, s.last_used_at) for s in sessions],
        )

    @staticmethod
    def _write_rankings(conn: sqlite3.Connection, rankings: list[tuple[str, str, int]]) -> None:
        conn.execute("DELETE FROM rankings")
        conn.executemany("INSERT INTO rankings (category, account_id, score) VALUES (?, ?, ?)", rankings)
