"""Conversion of stored and legacy records into the current in-memory shape.

Older deployments left behind several encodings that are accepted on load
and only ever written back in the current shape:

- integer account ids (now opaque strings),
- ranking entries keyed by nickname instead of account id,
- sessions stored as a bare account id with no TTL record,
- session rows with NULL ``expires_at``/``last_used_at``,
- millisecond timestamps, missing icons and missing trophies.

Everything here is pure: the persistence gateway feeds rows in and stores
the result.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from shared.auth.models import DEFAULT_ICON, Account, AuthSession, Trophies
from shared.ranking import RankingCategory

logger = structlog.get_logger()

# Anything above this is a JavaScript Date.now() value, not epoch seconds.
_MILLISECONDS_THRESHOLD = 100_000_000_000

_CATEGORIES = frozenset(c.value for c in RankingCategory)


@dataclass
class MigratedState:
    accounts: list[Account] = field(default_factory=list)
    sessions: list[AuthSession] = field(default_factory=list)
    rankings: list[tuple[str, str, int]] = field(default_factory=list)
    # Number of records whose stored form differed from the current shape.
    upgraded: int = 0


def account_id_of(value: Any) -> str:
    """Account ids are strings; legacy integer ids become their decimal form."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid account id: {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str) and value:
        return value
    raise ValueError(f"Invalid account id: {value!r}")


def to_seconds(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    number = float(value)
    if number > _MILLISECONDS_THRESHOLD:
        return number / 1000.0
    return number


def _pairs(container: Any) -> Iterable[tuple[Any, Any]]:
    """Accept both a JSON object and a serialized Map (list of [key, value])."""
    if container is None:
        return []
    if isinstance(container, Mapping):
        return container.items()
    if isinstance(container, list):
        return [(item[0], item[1]) for item in container if isinstance(item, list | tuple) and len(item) == 2]
    raise ValueError(f"Expected an object or a list of pairs, got {type(container).__name__}")


def account_from_record(key: Any, record: Mapping[str, Any]) -> tuple[Account, bool]:
    """Build an Account from a row or legacy record. Return (account, upgraded)."""
    raw_id = record.get("id", record.get("account_id", record.get("userId", key)))
    account_id = account_id_of(raw_id)
    upgraded = not isinstance(raw_id, str)

    icon = record.get("icon")
    if not icon:
        icon = DEFAULT_ICON
        upgraded = True

    trophies = record.get("trophies")
    if isinstance(trophies, Mapping):
        trophies = Trophies(mock=int(trophies.get("mock") or 0), formal=int(trophies.get("formal") or 0))
    else:
        trophies = Trophies(
            mock=int(record.get("trophiesMock") or 0),
            formal=int(record.get("trophiesFormal") or 0),
        )

    password_hash = record.get("password_hash", record.get("password"))
    if not password_hash:
        raise ValueError(f"Account {account_id!r} has no password hash")

    last_change = record.get("last_nickname_change_at", record.get("lastNicknameChange"))
    created_at = record.get("created_at", record.get("createdAt"))
    account = Account(
        account_id=account_id,
        username=str(record["username"]),
        nickname=str(record.get("nickname") or record["username"]),
        password_hash=str(password_hash),
        created_at=to_seconds(created_at),
        icon=str(icon),
        trophies=trophies,
        last_nickname_change_at=to_seconds(last_change),
    )
    return account, upgraded


def session_from_record(token: str, value: Any, *, ttl_seconds: float, now: float) -> tuple[AuthSession, bool]:
    """Build an AuthSession. A bare account id or a missing expiry gets a fresh TTL."""
    if isinstance(value, Mapping):
        raw_account = value.get("account_id", value.get("accountId", value.get("userId")))
        expires_at = value.get("expires_at", value.get("expiresAt"))
        last_used_at = value.get("last_used_at", value.get("lastUsedAt"))
    else:
        raw_account, expires_at, last_used_at = value, None, None

    account_id = account_id_of(raw_account)
    upgraded = not isinstance(raw_account, str)
    if expires_at is None or last_used_at is None:
        expires_at = now + ttl_seconds
        last_used_at = now
        upgraded = True
    session = AuthSession(
        session_token=token,
        account_id=account_id,
        expires_at=to_seconds(expires_at),
        last_used_at=to_seconds(last_used_at),
    )
    return session, upgraded


def resolve_ranking_keys(
    entries: Iterable[tuple[str, Any, Any]],
    accounts: list[Account],
) -> tuple[list[tuple[str, str, int]], int]:
    """Map ranking keys onto account ids.

    A key that is not an account id is looked up as a nickname; unknown keys
    and unknown categories are dropped with a warning. When two keys resolve
    to the same account, the higher score is kept.
    """
    by_id = {a.account_id for a in accounts}
    by_nickname = {a.nickname: a.account_id for a in accounts}
    resolved: dict[tuple[str, str], int] = {}
    upgraded = 0
    for category, key, score in entries:
        if category not in _CATEGORIES:
            logger.warning("dropping ranking entry with unknown category", category=category, key=key)
            upgraded += 1
            continue
        key_str = str(key)
        if key_str in by_id:
            account_id = key_str
            if not isinstance(key, str):
                upgraded += 1
        elif key_str in by_nickname:
            account_id = by_nickname[key_str]
            upgraded += 1
        else:
            logger.warning("dropping ranking entry for unknown player", category=category, key=key_str)
            upgraded += 1
            continue
        value = max(0, int(score or 0))
        slot = (str(category), account_id)
        resolved[slot] = max(value, resolved.get(slot, 0))
    return [(category, account_id, score) for (category, account_id), score in resolved.items()], upgraded


def sync_trophies(accounts: list[Account], rankings: list[tuple[str, str, int]]) -> list[tuple[str, str, int]]:
    """Make account trophies and ranking entries agree.

    Ranking entries win. An account without an entry in a category keeps its
    stored trophy count, which is materialized as the entry.
    """
    present = {(category, account_id): score for category, account_id, score in rankings}
    merged = list(rankings)
    for account in accounts:
        for category in RankingCategory:
            score = present.get((category.value, account.account_id))
            if score is None:
                score = getattr(account.trophies, category.value)
                merged.append((category.value, account.account_id, score))
            setattr(account.trophies, category.value, score)
    return merged


def migrate_rows(
    account_rows: Iterable[Mapping[str, Any]],
    session_rows: Iterable[Mapping[str, Any]],
    ranking_rows: Iterable[Mapping[str, Any]],
    *,
    ttl_seconds: float,
    now: float,
) -> MigratedState:
    """Convert database rows (as mappings) into the in-memory state."""
    state = MigratedState()
    for row in account_rows:
        account, upgraded = account_from_record(row["id"], row)
        state.accounts.append(account)
        state.upgraded += upgraded
    for row in session_rows:
        session, upgraded = session_from_record(row["token"], row, ttl_seconds=ttl_seconds, now=now)
        state.sessions.append(session)
        state.upgraded += upgraded
    rankings, upgraded = resolve_ranking_keys(
        ((row["category"], row["account_id"], row["score"]) for row in ranking_rows),
        state.accounts,
    )
    state.rankings = sync_trophies(state.accounts, rankings)
    state.upgraded += upgraded + len(state.rankings) - len(rankings)
    return state


def migrate_legacy_snapshot(data: Mapping[str, Any], *, ttl_seconds: float, now: float) -> MigratedState:
    """Convert a legacy JSON snapshot ``{"users", "sessions", "rankings"}``."""
    if not isinstance(data, Mapping):
        raise ValueError("Legacy snapshot must be a JSON object")

    state = MigratedState()
    seen_usernames: set[str] = set()
    seen_nicknames: set[str] = set()
    for key, record in _pairs(data.get("users")):
        if not isinstance(record, Mapping):
            raise ValueError(f"Invalid user record for key {key!r}")
        account, _ = account_from_record(key, record)
        if account.username.lower() in seen_usernames or account.nickname in seen_nicknames:
            logger.warning("dropping duplicate legacy account", account_id=account.account_id, username=account.username)
            continue
        seen_usernames.add(account.username.lower())
        seen_nicknames.add(account.nickname)
        state.accounts.append(account)

    known_ids = {a.account_id for a in state.accounts}
    for token, value in _pairs(data.get("sessions")):
        session, _ = session_from_record(str(token), value, ttl_seconds=ttl_seconds, now=now)
        if session.account_id not in known_ids:
            logger.warning("dropping legacy session for unknown account", account_id=session.account_id)
            continue
        state.sessions.append(session)

    raw_rankings = data.get("rankings") or {}
    entries = [
        (str(category), key, score)
        for category, table in _pairs(raw_rankings)
        for key, score in _pairs(table)
    ]
    rankings, _ = resolve_ranking_keys(entries, state.accounts)
    state.rankings = sync_trophies(state.accounts, rankings)
    state.upgraded = len(state.accounts) + len(state.sessions) + len(state.rankings)
    return state
