from datetime import datetime
from sqlalchemy import Integer, String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class TokenPoolSnapshot(Base):
    """Frozen token list a run was played against. tokens: JSON-encoded list."""

    __tablename__ = "token_pool_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    snapshot_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    tokens: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
