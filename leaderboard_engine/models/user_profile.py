"""
UserProfile — persisted display identity, stored with an explicit variant tag.

kind values:
  "resolved" — produced by the identity service (display_name, avatar_url, source)
  "basic"    — fallback identity derived from the user id alone

Readers branch on `kind`; they never infer the variant from which columns
happen to be filled.
"""
from datetime import datetime
import enum

from sqlalchemy import Integer, String, DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from leaderboard_engine.db.base import Base


class ProfileKind(str, enum.Enum):
    resolved = "resolved"
    basic = "basic"


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    kind: Mapped[str] = mapped_column(
        Enum(ProfileKind, name="profile_kind_enum"), nullable=False
    )
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="address")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
