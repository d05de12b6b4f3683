"""
WeeklyScoreAggregator — per-user running totals for a weekly period.

cumulative_score is the canonical weekly ranking metric. The engine mirrors it
into the ranked store under the same period key through the weekly
OvertakeDetector, so a run's weekly bookkeeping is accumulate() followed by
that raise. engagement_score (best_streak * 10 + run_count) is derived for
display only.

The increment is a single UPDATE (cumulative = cumulative + :streak, ...),
never a read-modify-write in Python, so concurrent runs for one user cannot
lose each other's contribution.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.orm import Session

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import InvalidPeriodError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.weekly_stats import WeeklyStats
from leaderboard_engine.services.periods import Clock, parse_period, retention_deadline, utcnow

logger = logging.getLogger(__name__)


@dataclass
class WeeklyStatsView:
    period: str
    user_id: str
    cumulative_score: int
    best_streak: int
    run_count: int
    last_updated: datetime

    @property
    def engagement_score(self) -> int:
        return self.best_streak * 10 + self.run_count


def is_guest(user_id: str) -> bool:
    return user_id.startswith(settings.GUEST_PREFIX)


class WeeklyScoreAggregator:
    def __init__(self, db: Session, clock: Clock = utcnow):
        self.db = db
        self._clock = clock

    def accumulate(self, user_id: str, period: str, streak: int) -> Optional[WeeklyStatsView]:
        """
        Add one run to the user's weekly stats and return the updated totals.
        Guests are ignored (returns None). Does not touch the ranked store.
        """
        if is_guest(user_id):
            return None
        if streak < 0:
            raise ValueError(f"streak must be >= 0, got {streak}")
        parsed = parse_period(period)
        if not parsed.is_weekly:
            raise InvalidPeriodError(period)
        key = parsed.key
        now = self._clock()

        with store_errors("weekly_accumulate"):
            insert_if_missing(
                self.db,
                WeeklyStats,
                {
                    "period": key,
                    "user_id": user_id,
                    "cumulative_score": 0,
                    "best_streak": 0,
                    "run_count": 0,
                    "last_updated": now,
                    "expires_at": retention_deadline(key),
                },
                ("period", "user_id"),
            )
            self.db.execute(
                update(WeeklyStats)
                .where(WeeklyStats.period == key, WeeklyStats.user_id == user_id)
                .values(
                    cumulative_score=WeeklyStats.cumulative_score + streak,
                    best_streak=case(
                        (WeeklyStats.best_streak < streak, streak),
                        else_=WeeklyStats.best_streak,
                    ),
                    run_count=WeeklyStats.run_count + 1,
                    last_updated=now,
                )
                .execution_options(synchronize_session=False)
            )
        return self.get_stats(key, user_id)

    def get_stats(self, period: str, user_id: str) -> Optional[WeeklyStatsView]:
        with store_errors("weekly_get_stats"):
            row = self.db.execute(
                select(
                    WeeklyStats.period,
                    WeeklyStats.user_id,
                    WeeklyStats.cumulative_score,
                    WeeklyStats.best_streak,
                    WeeklyStats.run_count,
                    WeeklyStats.last_updated,
                ).where(WeeklyStats.period == period, WeeklyStats.user_id == user_id)
            ).one_or_none()
        if row is None:
            return None
        return WeeklyStatsView(
            period=row.period,
            user_id=row.user_id,
            cumulative_score=row.cumulative_score,
            best_streak=row.best_streak,
            run_count=row.run_count,
            last_updated=row.last_updated,
        )

    def purge_expired(self, now: datetime) -> int:
        with store_errors("weekly_purge"):
            result = self.db.execute(
                delete(WeeklyStats)
                .where(WeeklyStats.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount:
            logger.info("Purged %d expired weekly stats rows", result.rowcount)
        return result.rowcount
