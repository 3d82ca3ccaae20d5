"""Persistence gateway: startup load with legacy migration, debounced saves.

All three stores call ``schedule_save`` after mutating. Calls inside the
debounce window collapse into one flush. At most one flush is in flight;
a save requested while a flush runs marks the state dirty and produces
exactly one follow-up flush. The snapshot is taken on the event loop and
written on a worker thread.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from shared.db.state_repository import StateSnapshot
from shared.migration import MigratedState, migrate_legacy_snapshot, migrate_rows

if TYPE_CHECKING:
    from shared.auth.models import Account
    from shared.auth.session_store import AuthSessionStore
    from shared.auth.store import AccountStore
    from shared.db.state_repository import SqliteStateRepository
    from shared.ranking import RankingLedger

logger = structlog.get_logger()

DEFAULT_DEBOUNCE_SECONDS = 0.2


class PersistenceGateway:
    def __init__(
        self,
        repository: SqliteStateRepository,
        accounts: AccountStore,
        sessions: AuthSessionStore,
        ledger: RankingLedger,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        legacy_data_file: str | Path | None = None,
    ) -> None:
        self._repository = repository
        self._accounts = accounts
        self._sessions = sessions
        self._ledger = ledger
        self._debounce_seconds = debounce_seconds
        self._legacy_data_file = Path(legacy_data_file) if legacy_data_file else None

        self._timer: asyncio.TimerHandle | None = None
        self._flush_task: asyncio.Task[None] | None = None
        self._dirty = False
        self.flush_count = 0

        accounts.set_on_change(self.schedule_save)
        sessions.set_on_change(self.schedule_save)
        ledger.set_on_change(self.schedule_save)

    @property
    def pending(self) -> bool:
        """True while a save is scheduled, running, or owed."""
        return self._dirty or self._timer is not None or self._flush_task is not None

    # --- startup ---

    async def load(self) -> MigratedState:
        """Load all entity sets into the stores, migrating legacy encodings.

        The legacy JSON snapshot is imported only into an empty database.
        Anything that had to be upgraded is written back immediately in the
        current shape.
        """
        now = time.time()
        ttl = self._sessions.ttl_seconds
        account_rows = self._repository.load_account_rows()
        session_rows = self._repository.load_session_rows()
        ranking_rows = self._repository.load_ranking_rows()

        if not (account_rows or session_rows or ranking_rows) and self._legacy_data_file is not None:
            state = self._read_legacy_file(self._legacy_data_file, ttl_seconds=ttl, now=now)
        else:
            state = migrate_rows(account_rows, session_rows, ranking_rows, ttl_seconds=ttl, now=now)

        self._accounts.load(state.accounts)
        self._sessions.load(state.sessions)
        self._ledger.load(state.rankings)
        logger.info(
            "state loaded",
            accounts=len(state.accounts),
            sessions=len(state.sessions),
            rankings=len(state.rankings),
            upgraded=state.upgraded,
        )
        if state.upgraded:
            self._dirty = True
            await self.flush_now()
        return state

    @staticmethod
    def _read_legacy_file(path: Path, *, ttl_seconds: float, now: float) -> MigratedState:
        if not path.exists():
            return MigratedState()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            msg = f"Failed to read legacy data file: {path}"
            raise OSError(msg) from exc
        except ValueError as exc:
            msg = f"Malformed JSON in legacy data file: {path}"
            raise OSError(msg) from exc

        try:
            state = migrate_legacy_snapshot(data, ttl_seconds=ttl_seconds, now=now)
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Invalid record in legacy data file: {path}"
            raise OSError(msg) from exc
        logger.info("migrated legacy data file", path=str(path), accounts=len(state.accounts))
        return state

    # --- saving ---

    def schedule_save(self) -> None:
        """Request a flush. Never blocks; safe to call from any handler."""
        self._dirty = True
        if self._timer is not None or self._flush_task is not None:
            return
        self._arm_timer()

    def _arm_timer(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_seconds, self._start_flush)

    def _start_flush(self) -> None:
        self._timer = None
        self._flush_task = asyncio.create_task(self._run_flush())

    async def _run_flush(self) -> None:
        try:
            written = await self._write()
        finally:
            self._flush_task = None
        if written and self._dirty and self._timer is None:
            self._arm_timer()

    async def _write(self) -> bool:
        self._dirty = False
        snapshot = self._snapshot()
        try:
            await asyncio.to_thread(self._repository.save_snapshot, snapshot)
        except Exception:
            # Keep the state owed so the next schedule or shutdown retries.
            logger.exception("state flush failed")
            self._dirty = True
            return False
        self.flush_count += 1
        return True

    def _snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            accounts=[_copy_account(a) for a in self._accounts],
            sessions=self._sessions.snapshot(),
            rankings=self._ledger.snapshot(),
        )

    async def flush_now(self) -> None:
        """Drain any scheduled or running flush, then write if still dirty.

        The final write runs as the in-flight flush, so a save requested while
        it runs is coalesced into a follow-up instead of overlapping it.
        """
        self._cancel_timer()
        if self._flush_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._flush_task
            self._cancel_timer()
        if self._dirty:
            self._flush_task = asyncio.create_task(self._run_flush())
            await self._flush_task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


def _copy_account(account: Account) -> Account:
    return replace(account, trophies=replace(account.trophies))
