"""ORM models for the achievement engine and the records it reads.

Engine-owned tables: achievements, user_achievements, user_progression,
user_streaks. The applications and user_goals tables belong to the
application-tracking layer; they are mapped here read-only for fact
collection.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from applytrak.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Achievement engine
# ---------------------------------------------------------------------------


class AchievementRow(Base):
    """Reference copy of the in-code catalog, upserted at startup."""

    __tablename__ = "achievements"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    icon: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    requirements: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UnlockRecord(Base):
    """Unlock ledger. UNIQUE(user_id, achievement_id) makes unlocks exactly-once.

    No foreign key to achievements: rows outlive catalog renames and are
    skipped (with a warning) during aggregation.
    """

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="user_achievements_user_id_achievement_id_key"),
        Index("idx_user_achievements_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserProgression(Base):
    """Denormalized progression, always rebuilt from the ledger."""

    __tablename__ = "user_progression"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    achievements_unlocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class UserStreak(Base):
    """Daily activity streak, recomputed from the full set of activity dates."""

    __tablename__ = "user_streaks"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    daily_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    streak_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Application tracking (read by the SQL fact source)
# ---------------------------------------------------------------------------


class ApplicationRow(Base):
    """A tracked job application."""

    __tablename__ = "applications"
    __table_args__ = (Index("idx_applications_user", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    company: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    position: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    date_applied: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Applied")
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="Onsite")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachments: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserGoals(Base):
    """Weekly and monthly application targets set by the user."""

    __tablename__ = "user_goals"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    weekly_goal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_goal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
