"""
ScoreEntry: one ranked score per (period, user_id).

period values:
  "global"              — unbounded, best single streak
  "weekly:<YYYY-MM-DD>" — 7-day window starting that Sunday, cumulative score

The score column only ever moves up; see RankedScoreStore.raise_if_greater.
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, Index, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class ScoreEntry(Base):
    __tablename__ = "score_entries"
    __table_args__ = (
        UniqueConstraint("period", "user_id", name="uq_score_entry_period_user"),
        Index("ix_score_entries_period_score_user", "period", "score", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
