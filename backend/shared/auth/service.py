"""Auth service coordinating registration, login, and profile changes."""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from shared.auth.models import Account, AccountView, AuthSession, ProfileView, TrophiesView
from shared.auth.password import BCRYPT_MAX_BYTES
from shared.errors import AuthError, NotFoundError, RateLimitedError, RequestValidationError
from shared.ranking import RankingCategory

if TYPE_CHECKING:
    from shared.auth.password import PasswordHasher
    from shared.auth.session_store import AuthSessionStore
    from shared.auth.store import AccountStore
    from shared.ranking import RankingLedger

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20

PASSWORD_MIN_LENGTH = 6

NICKNAME_MIN_LENGTH = 2
NICKNAME_MAX_LENGTH = 15

NICKNAME_COOLDOWN_SECONDS = 3600

INVALID_CREDENTIALS = "Invalid username or password."
INVALID_SESSION = "Invalid or expired session."


class AuthService:
    """Coordinate account registration, login, and session validation."""

    def __init__(
        self,
        accounts: AccountStore,
        sessions: AuthSessionStore,
        ledger: RankingLedger,
        *,
        password_hasher: PasswordHasher,
        nickname_cooldown_seconds: int = NICKNAME_COOLDOWN_SECONDS,
    ) -> None:
        self._accounts = accounts
        self._sessions = sessions
        self._ledger = ledger
        self._hasher = password_hasher
        self._nickname_cooldown_seconds = nickname_cooldown_seconds

    @property
    def accounts(self) -> AccountStore:
        return self._accounts

    async def register(self, username: str, password: str, nickname: str) -> tuple[Account, AuthSession]:
        """Create an account, backfill its ranking entries and log it in."""
        _validate_username(username)
        _validate_password(password)
        _validate_nickname(nickname)
        self._accounts.ensure_username_available(username)
        self._accounts.ensure_nickname_available(nickname)

        password_hashed = await self._hasher.hash(password)
        # Re-check after the hashing await: HTTP handlers are not serialized
        # through the broker's dispatcher.
        self._accounts.ensure_username_available(username)
        self._accounts.ensure_nickname_available(nickname)

        account = Account(
            account_id=str(uuid4()),
            username=username,
            nickname=nickname,
            password_hash=password_hashed,
            created_at=time.time(),
        )
        self._accounts.add(account)
        for category in RankingCategory:
            self._ledger.ensure(category, account.account_id)
        return account, self._sessions.create(account.account_id)

    async def login(self, username: str, password: str) -> tuple[Account, AuthSession]:
        account = self._accounts.get_by_username(username)
        if account is None:
            raise AuthError(INVALID_CREDENTIALS)
        if not await self._hasher.verify(password, account.password_hash):
            raise AuthError(INVALID_CREDENTIALS)
        return account, self._sessions.create(account.account_id)

    def resolve_session_to_account(self, token: str | None) -> str | None:
        """Return the account id for a live token (sliding its expiry), else None."""
        account_id = self._sessions.resolve(token)
        if account_id is None or account_id not in self._accounts:
            return None
        return account_id

    def verify(self, token: str | None) -> Account:
        """Resolve a session token to its Account or raise AuthError."""
        account = self._accounts.get(self.resolve_session_to_account(token))
        if account is None:
            raise AuthError(INVALID_SESSION)
        return account

    def change_nickname(self, token: str | None, new_nickname: str) -> Account:
        account = self.verify(token)
        _validate_nickname(new_nickname)
        now = time.time()
        elapsed = now - account.last_nickname_change_at
        if account.last_nickname_change_at and elapsed < self._nickname_cooldown_seconds:
            remaining_minutes = math.ceil((self._nickname_cooldown_seconds - elapsed) / 60)
            raise RateLimitedError(
                f"Nickname can be changed again in {remaining_minutes} minute(s).",
                details={"remainingMinutes": remaining_minutes},
            )
        return self._accounts.rename(account.account_id, new_nickname, changed_at=now)

    def change_icon(self, token: str | None, icon: str) -> Account:
        account = self.verify(token)
        if not icon or not icon.strip():
            raise RequestValidationError("Please choose an icon.")
        return self._accounts.set_icon(account.account_id, icon)

    def view(self, account: Account) -> AccountView:
        return AccountView.from_account(account)

    def public_profile(self, account_id: str) -> ProfileView:
        account = self._accounts.get(account_id)
        if account is None:
            raise NotFoundError("User not found.")
        return ProfileView(
            user_id=account.account_id,
            nickname=account.nickname,
            icon=account.icon,
            trophies=TrophiesView(mock=account.trophies.mock, formal=account.trophies.formal),
            created_at=account.created_at,
        )


def _validate_username(username: str) -> None:
    if len(username) < USERNAME_MIN_LENGTH or len(username) > USERNAME_MAX_LENGTH:
        raise RequestValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )


def _validate_password(password: str) -> None:
    """At least 6 characters, at most 72 UTF-8 bytes (bcrypt limit)."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise RequestValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise RequestValidationError(f"Password must not exceed {BCRYPT_MAX_BYTES} bytes when encoded")


def _validate_nickname(nickname: str) -> None:
    if len(nickname) < NICKNAME_MIN_LENGTH or len(nickname) > NICKNAME_MAX_LENGTH:
        raise RequestValidationError(
            f"Nickname must be between {NICKNAME_MIN_LENGTH} and {NICKNAME_MAX_LENGTH} characters"
        )
