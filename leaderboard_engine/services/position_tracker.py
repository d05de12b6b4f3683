"""
PositionChangeTracker — rank movement between page loads.

check() reads the stored baseline, computes the live rank and overwrites the
baseline in the same call. A second check with no score change in between
therefore always reports changed=False. The first check for a user/board
only seeds the baseline.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import InvalidPeriodError
from leaderboard_engine.db.base import insert_if_missing, store_errors
from leaderboard_engine.models.position_record import PositionRecord
from leaderboard_engine.services.notifications import EventKind, Notifier, safe_notify
from leaderboard_engine.services.periods import BOARDS, Clock, current_period, utcnow
from leaderboard_engine.services.ranked_store import RankedScoreStore

logger = logging.getLogger(__name__)


@dataclass
class PositionChange:
    changed: bool
    previous_rank: Optional[int]
    current_rank: Optional[int]
    direction: Optional[str]    # "up" | "down" | None
    rank_change: int            # absolute number of places moved

    def to_dict(self) -> dict:
        return asdict(self)


class PositionChangeTracker:
    def __init__(
        self,
        db: Session,
        store: RankedScoreStore,
        notifier: Notifier,
        clock: Clock = utcnow,
        ttl_days: Optional[int] = None,
    ):
        self.db = db
        self.store = store
        self.notifier = notifier
        self._clock = clock
        self.ttl = timedelta(days=settings.WEEKLY_RETENTION_DAYS if ttl_days is None else ttl_days)

    def check(self, user_id: str, board: str) -> PositionChange:
        if board not in BOARDS:
            raise InvalidPeriodError(board)
        now = self._clock()
        period = current_period(board, now)

        previous = self._load(board, user_id, now)
        current = self.store.get_rank(period, user_id)

        if current is None:
            return PositionChange(
                changed=False, previous_rank=previous, current_rank=None,
                direction=None, rank_change=0,
            )

        self._store(board, user_id, current, now)

        if previous is None or previous == current:
            return PositionChange(
                changed=False, previous_rank=previous, current_rank=current,
                direction=None, rank_change=0,
            )

        result = PositionChange(
            changed=True,
            previous_rank=previous,
            current_rank=current,
            direction="up" if current < previous else "down",
            rank_change=abs(previous - current),
        )
        safe_notify(self.notifier, user_id, EventKind.RANK_CHANGED, {"board": board, **result.to_dict()})
        return result

    def _load(self, board: str, user_id: str, now: datetime) -> Optional[int]:
        with store_errors("position_load"):
            return self.db.execute(
                select(PositionRecord.last_observed_rank).where(
                    PositionRecord.board == board,
                    PositionRecord.user_id == user_id,
                    PositionRecord.expires_at > now,
                )
            ).scalar_one_or_none()

    def _store(self, board: str, user_id: str, rank: int, now: datetime) -> None:
        values = {"last_observed_rank": rank, "updated_at": now, "expires_at": now + self.ttl}
        with store_errors("position_store"):
            created = insert_if_missing(
                self.db,
                PositionRecord,
                {"board": board, "user_id": user_id, **values},
                ("board", "user_id"),
            )
            if not created:
                self.db.execute(
                    update(PositionRecord)
                    .where(PositionRecord.board == board, PositionRecord.user_id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

    def purge_expired(self, now: datetime) -> int:
        with store_errors("position_purge"):
            result = self.db.execute(
                delete(PositionRecord)
                .where(PositionRecord.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount
