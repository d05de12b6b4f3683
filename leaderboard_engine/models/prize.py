"""
Prize pool configuration and the write-once archive of finalized payouts.

PrizePool.status moves active -> completed exactly once. PrizeArchive rows
are never updated after insert; the unique period constraint is what makes
concurrent finalizers agree on a single distribution.

distribution: JSON-encoded list of {rank, user_id, score, amount} stored as
Text, amounts serialized as strings to keep Decimal precision.
"""
from datetime import datetime
from decimal import Decimal
import enum

from sqlalchemy import Integer, String, Text, Numeric, DateTime, Enum, func
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class PrizePoolStatus(str, enum.Enum):
    active = "active"
    completed = "completed"


class PrizePool(Base):
    __tablename__ = "prize_pools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    total_prize_pool: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    sponsor: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(PrizePoolStatus, name="prize_pool_status_enum"),
        nullable=False,
        default=PrizePoolStatus.active,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class PrizeArchive(Base):
    __tablename__ = "prize_archives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    period: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    total_prize_pool: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    distribution: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(PrizePoolStatus, name="prize_pool_status_enum"),
        nullable=False,
        default=PrizePoolStatus.completed,
    )
    finalized_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
