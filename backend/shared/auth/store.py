"""In-memory account registry with username and nickname indexes."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.errors import ConflictError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from shared.auth.models import Account

logger = structlog.get_logger()


class AccountStore:
    """Owns every Account mutation.

    Usernames are unique case-insensitively; nicknames are unique as typed
    (they are what other players see). Loaded once at startup by the
    persistence gateway and flushed back through ``on_change``.
    """

    def __init__(self, on_change: Callable[[], None] | None = None) -> None:
        self._accounts: dict[str, Account] = {}  # account_id -> Account
        self._by_username: dict[str, str] = {}  # lowercased username -> account_id
        self._by_nickname: dict[str, str] = {}  # nickname -> account_id
        self._on_change = on_change

    def set_on_change(self, on_change: Callable[[], None]) -> None:
        self._on_change = on_change

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def load(self, accounts: list[Account]) -> None:
        """Replace the registry contents (startup). Does not fire on_change."""
        self._accounts.clear()
        self._by_username.clear()
        self._by_nickname.clear()
        for account in accounts:
            self._index(account)

    def _index(self, account: Account) -> None:
        self._accounts[account.account_id] = account
        self._by_username[account.username.lower()] = account.account_id
        self._by_nickname[account.nickname] = account.account_id

    def add(self, account: Account) -> None:
        if account.account_id in self._accounts:
            raise ConflictError(f"Account '{account.account_id}' already exists")
        self.ensure_username_available(account.username)
        self.ensure_nickname_available(account.nickname)
        self._index(account)
        logger.info("account created", account_id=account.account_id, username=account.username)
        self._changed()

    def ensure_username_available(self, username: str) -> None:
        if username.lower() in self._by_username:
            raise ConflictError("That username is already in use.")

    def ensure_nickname_available(self, nickname: str, *, exclude_account_id: str | None = None) -> None:
        owner = self._by_nickname.get(nickname)
        if owner is not None and owner != exclude_account_id:
            raise ConflictError("That nickname is already in use.")

    def get(self, account_id: str | None) -> Account | None:
        if account_id is None:
            return None
        return self._accounts.get(account_id)

    def get_by_username(self, username: str) -> Account | None:
        account_id = self._by_username.get(username.lower())
        return self._accounts.get(account_id) if account_id is not None else None

    def get_by_nickname(self, nickname: str) -> Account | None:
        account_id = self._by_nickname.get(nickname)
        return self._accounts.get(account_id) if account_id is not None else None

    def rename(self, account_id: str, nickname: str, *, changed_at: float) -> Account:
        account = self._accounts[account_id]
        self.ensure_nickname_available(nickname, exclude_account_id=account_id)
        old = account.nickname
        self._by_nickname.pop(old, None)
        account.nickname = nickname
        account.last_nickname_change_at = changed_at
        self._by_nickname[nickname] = account_id
        logger.info("nickname changed", account_id=account_id, old_nickname=old, new_nickname=nickname)
        self._changed()
        return account

    def set_icon(self, account_id: str, icon: str) -> Account:
        account = self._accounts[account_id]
        account.icon = icon
        self._changed()
        return account

    def record_trophies(self, account_id: str, category: str, score: int) -> None:
        """Mirror a ranking score into the account's denormalized trophies."""
        account = self._accounts.get(account_id)
        if account is None:
            return
        setattr(account.trophies, category, score)

    def __iter__(self) -> Iterator[Account]:
        return iter(list(self._accounts.values()))

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts
