"""Per-category trophy ledger.

Scores are non-negative integers keyed by ``(category, account_id)``. An
absent entry reads as 0. Every mutation fires ``on_change`` (the persistence
gateway's debounced save) and mirrors the new score into the account's
denormalized trophies through ``on_score``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from shared.errors import NotFoundError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

FORMAL_WIN_DELTA = 2
FORMAL_LOSS_DELTA = -1
MOCK_MAX_DELTA = 5


class RankingCategory(StrEnum):
    MOCK = "mock"
    FORMAL = "formal"


class RankingRow(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    nickname: str
    score: int


class MatchResult(BaseModel):
    winner_id: str
    loser_id: str
    winner_score: int
    loser_score: int


def parse_category(value: str) -> RankingCategory:
    try:
        return RankingCategory(value)
    except ValueError:
        raise NotFoundError(f"Unknown ranking category: {value!r}") from None


class RankingLedger:
    def __init__(
        self,
        on_change: Callable[[], None] | None = None,
        on_score: Callable[[str, str, int], None] | None = None,
    ) -> None:
        self._scores: dict[RankingCategory, dict[str, int]] = {c: {} for c in RankingCategory}
        self._on_change = on_change
        self._on_score = on_score

    def set_on_change(self, on_change: Callable[[], None]) -> None:
        self._on_change = on_change

    def _store(self, category: RankingCategory | str, account_id: str, score: int) -> None:
        category = parse_category(category)
        self._scores[category][account_id] = score
        if self._on_score is not None:
            self._on_score(account_id, category.value, score)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def lookup(self, category: RankingCategory | str, account_id: str) -> int:
        return self._scores[parse_category(category)].get(account_id, 0)

    def ensure(self, category: RankingCategory | str, account_id: str) -> int:
        """Materialize a 0 entry if the account has none yet. Return the score."""
        scores = self._scores[parse_category(category)]
        if account_id in scores:
            return scores[account_id]
        self._store(category, account_id, 0)
        self._changed()
        return 0

    def adjust(self, category: RankingCategory | str, account_id: str, delta: int) -> int:
        """Apply ``delta`` clamped at 0. Return the new score."""
        old = self.lookup(category, account_id)
        new = max(0, old + delta)
        self._store(category, account_id, new)
        logger.info(
            "ranking adjusted",
            category=str(category),
            account_id=account_id,
            old_score=old,
            new_score=new,
        )
        self._changed()
        return new

    def apply_match(self, winner_id: str, loser_id: str) -> MatchResult:
        """Formal scoring: winner +2 (no ceiling), loser -1 (floor 0)."""
        winner_score = self.adjust(RankingCategory.FORMAL, winner_id, FORMAL_WIN_DELTA)
        loser_score = self.adjust(RankingCategory.FORMAL, loser_id, FORMAL_LOSS_DELTA)
        return MatchResult(
            winner_id=winner_id,
            loser_id=loser_id,
            winner_score=winner_score,
            loser_score=loser_score,
        )

    def rankings(
        self,
        category: RankingCategory | str,
        nickname_of: Callable[[str], str | None] | None = None,
    ) -> list[RankingRow]:
        """Materialized entries sorted by score descending, ties by account id."""
        scores = self._scores[parse_category(category)]
        ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
        rows = []
        for account_id, score in ordered:
            nickname = nickname_of(account_id) if nickname_of is not None else None
            rows.append(RankingRow(user_id=account_id, nickname=nickname or f"(ID:{account_id})", score=score))
        return rows

    def load(self, entries: list[tuple[str, str, int]]) -> None:
        """Replace contents from ``(category, account_id, score)`` rows. Silent."""
        for scores in self._scores.values():
            scores.clear()
        for category, account_id, score in entries:
            self._scores[parse_category(category)][account_id] = max(0, int(score))

    def snapshot(self) -> list[tuple[str, str, int]]:
        return [
            (category.value, account_id, score)
            for category, scores in self._scores.items()
            for account_id, score in scores.items()
        ]
