from datetime import datetime
from sqlalchemy import Integer, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class WeeklyStats(Base):
    """Per-user running totals for one weekly period."""

    __tablename__ = "weekly_stats"
    __table_args__ = (
        UniqueConstraint("period", "user_id", name="uq_weekly_stats_period_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    cumulative_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    run_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
        comment="Window start + retention; purged afterwards",
    )
