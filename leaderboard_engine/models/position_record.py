from datetime import datetime
from sqlalchemy import Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class PositionRecord(Base):
    """Last rank a user was shown on a board; overwritten on every check."""

    __tablename__ = "position_records"
    __table_args__ = (
        UniqueConstraint("board", "user_id", name="uq_position_board_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    board: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    last_observed_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
