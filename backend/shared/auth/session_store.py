"""In-memory login sessions with sliding expiry."""

import time
from collections.abc import Callable
from uuid import uuid4

import structlog

from shared.auth.models import AuthSession

CLEANUP_INTERVAL_SECONDS = 300  # 5 minutes
DEFAULT_SESSION_TTL_SECONDS = 86400  # 24 hours

logger = structlog.get_logger()


class AuthSessionStore:
    """Token -> AuthSession map.

    Every successful resolve pushes ``expires_at`` to now + TTL. Expired
    sessions are deleted lazily on resolve and in bulk by cleanup_expired().
    ``on_change`` fires after any mutation so the owner can schedule a save.
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._sessions: dict[str, AuthSession] = {}
        self._on_change = on_change

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def set_on_change(self, on_change: Callable[[], None]) -> None:
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def create(self, account_id: str) -> AuthSession:
        now = time.time()
        session = AuthSession(
            session_token=str(uuid4()),
            account_id=account_id,
            expires_at=now + self._ttl_seconds,
            last_used_at=now,
        )
        self._sessions[session.session_token] = session
        self._changed()
        return session

    def resolve(self, token: str | None) -> str | None:
        """Return the account id for a live token and slide its expiry.

        An expired token is deleted and resolves to None.
        """
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        now = time.time()
        if now > session.expires_at:
            del self._sessions[token]
            logger.info("session expired on use", account_id=session.account_id)
            self._changed()
            return None
        session.last_used_at = now
        session.expires_at = now + self._ttl_seconds
        self._changed()
        return session.account_id

    def delete(self, token: str) -> None:
        if self._sessions.pop(token, None) is not None:
            self._changed()

    def cleanup_expired(self) -> int:
        """Remove all expired sessions. Return how many were removed."""
        now = time.time()
        expired = [token for token, s in self._sessions.items() if now > s.expires_at]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.info("cleaned up expired sessions", count=len(expired))
            self._changed()
        return len(expired)

    def load(self, sessions: list[AuthSession]) -> None:
        """Replace the store contents (startup load). Does not fire on_change."""
        self._sessions = {s.session_token: s for s in sessions}

    def snapshot(self) -> list[AuthSession]:
        """Copies of all sessions, safe to hand to a writer thread."""
        return [
            AuthSession(
                session_token=s.session_token,
                account_id=s.account_id,
                expires_at=s.expires_at,
                last_used_at=s.last_used_at,
            )
            for s in self._sessions.values()
        ]

    def __len__(self) -> int:
        return len(self._sessions)
