"""
RankedScoreStore — ordered (period, user_id) -> score table.

Ordering
--------
score DESC, then user_id ASC. Rank is derived, never stored:

  rank(u) = #{score > s_u} + #{score == s_u and user_id < u} + 1

so N entries in a period always occupy exactly ranks 1..N.

Atomic raise
------------
raise_if_greater never compares in Python and then writes. It is either
  INSERT ... ON CONFLICT DO NOTHING          (first score for the user)
or
  UPDATE ... SET score = :s WHERE ... AND score < :s
and `applied` is the statement's rowcount. A lower concurrent write can
therefore never overwrite a higher one.

All database failures surface as StoreUnavailableError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.orm import Session

from leaderboard_engine.core.errors import InvalidRangeError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.score_entry import ScoreEntry
from leaderboard_engine.services.periods import Clock, WEEKLY_PREFIX, is_expired, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class RaiseResult:
    applied: bool
    previous_score: Optional[int]   # None when the user had no entry


@dataclass
class RankedEntry:
    rank: int
    user_id: str
    score: int


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class RankedScoreStore:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self._clock = clock

    def get_score(self, period: str, user_id: str) -> Optional[int]:
        with store_errors("get_score"):
            return self.db.execute(
                select(ScoreEntry.score).where(
                    ScoreEntry.period == period,
                    ScoreEntry.user_id == user_id,
                )
            ).scalar_one_or_none()

    def raise_if_greater(self, period: str, user_id: str, score: int) -> RaiseResult:
        """Set the entry to `score` only if it is strictly higher than what is stored."""
        if score < 0:
            raise ValueError(f"score must be >= 0, got {score}")

        with store_errors("raise_if_greater"):
            previous = self.get_score(period, user_id)
            now = self._clock()

            if previous is None:
                created = insert_if_missing(
                    self.db,
                    ScoreEntry,
                    {"period": period, "user_id": user_id, "score": score, "updated_at": now},
                    ("period", "user_id"),
                )
                if created:
                    return RaiseResult(applied=True, previous_score=None)
                # Lost the insert race; compete through the conditional update.
                previous = self.get_score(period, user_id)

            result = self.db.execute(
                update(ScoreEntry)
                .where(
                    ScoreEntry.period == period,
                    ScoreEntry.user_id == user_id,
                    ScoreEntry.score < score,
                )
                .values(score=score, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            return RaiseResult(applied=result.rowcount == 1, previous_score=previous)

    # ---- ranking ---------------------------------------------------------

    def count_at_least(self, period: str, score: int, exclude_user_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(ScoreEntry).where(
            ScoreEntry.period == period,
            ScoreEntry.score >= score,
        )
        if exclude_user_id is not None:
            stmt = stmt.where(ScoreEntry.user_id != exclude_user_id)
        with store_errors("count_at_least"):
            return self.db.execute(stmt).scalar_one()

    def count_ahead_of(
        self,
        period: str,
        score: int,
        user_id: str,
        exclude_user_id: Optional[str] = None,
    ) -> int:
        """Entries that sort strictly before (score, user_id)."""
        stmt = select(func.count()).select_from(ScoreEntry).where(
            ScoreEntry.period == period,
            or_(
                ScoreEntry.score > score,
                and_(ScoreEntry.score == score, ScoreEntry.user_id < user_id),
            ),
        )
        if exclude_user_id is not None:
            stmt = stmt.where(ScoreEntry.user_id != exclude_user_id)
        with store_errors("count_ahead_of"):
            return self.db.execute(stmt).scalar_one()

    def get_rank(self, period: str, user_id: str) -> Optional[int]:
        score = self.get_score(period, user_id)
        if score is None:
            return None
        return self.count_ahead_of(period, score, user_id) + 1

    def get_range(self, period: str, start_rank: int, end_rank: int) -> list[RankedEntry]:
        """Entries ranked start_rank..end_rank inclusive, 1-indexed."""
        if start_rank < 1 or end_rank < start_rank:
            raise InvalidRangeError(start_rank, end_rank)
        with store_errors("get_range"):
            rows = self.db.execute(
                select(ScoreEntry.user_id, ScoreEntry.score)
                .where(ScoreEntry.period == period)
                .order_by(ScoreEntry.score.desc(), ScoreEntry.user_id.asc())
                .offset(start_rank - 1)
                .limit(end_rank - start_rank + 1)
            ).all()
        return [
            RankedEntry(rank=start_rank + i, user_id=row.user_id, score=row.score)
            for i, row in enumerate(rows)
        ]

    def size(self, period: str) -> int:
        with store_errors("size"):
            return self.db.execute(
                select(func.count()).select_from(ScoreEntry).where(ScoreEntry.period == period)
            ).scalar_one()

    # ---- retention -------------------------------------------------------

    def periods(self) -> list[str]:
        with store_errors("periods"):
            return list(self.db.execute(select(ScoreEntry.period).distinct()).scalars())

    def delete_period(self, period: str) -> int:
        with store_errors("delete_period"):
            result = self.db.execute(
                delete(ScoreEntry)
                .where(ScoreEntry.period == period)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount

    def purge_expired(self, now: datetime) -> list[str]:
        """Drop every weekly period past its retention window. Global is untouched."""
        purged = []
        for period in self.periods():
            if period.startswith(WEEKLY_PREFIX) and is_expired(period, now):
                removed = self.delete_period(period)
                logger.info("Purged %d score entries for expired period %s", removed, period)
                purged.append(period)
        return purged
