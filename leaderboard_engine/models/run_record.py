"""
RunRecord — an accepted game run, immutable once stored.

guesses / reprieve_rounds are JSON-encoded lists stored as Text.
run_id is unique so a run can count toward the leaderboard only once.
"""
from datetime import datetime
from sqlalchemy import BigInteger, Boolean, Integer, String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class RunRecord(Base):
    __tablename__ = "run_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    run_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    seed: Mapped[str] = mapped_column(String(256), nullable=False)
    started_at: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="epoch ms")
    streak: Mapped[int] = mapped_column(Integer, nullable=False)
    pool_snapshot_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reprieve_rounds: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    guesses: Mapped[str] = mapped_column(Text, nullable=False)
    verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
        comment="True when the run passed full replay validation",
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
