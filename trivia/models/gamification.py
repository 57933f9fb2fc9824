"""Gamification models: achievements, championship belts and daily challenges."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trivia.models.base import Base, utcnow

if TYPE_CHECKING:
    from trivia.models.quiz import QuizCategory
    from trivia.models.user import User


class BeltTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    CHAMPIONSHIP = "championship"


class BeltRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class Achievement(Base):
    """Static achievement definition shared by all users."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    # Tagged criteria record, parsed by trivia.services.criteria
    unlock_criteria: Mapped[dict[str, Any]] = mapped_column(JSON)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Use String to avoid PostgreSQL enum mapping issues
    belt_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)

    user_achievements: Mapped[list["UserAchievement"]] = relationship(
        back_populates="achievement", cascade="all, delete-orphan"
    )


class UserAchievement(Base):
    """Unlock record, created exactly once per (user, achievement)."""

    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    achievement_id: Mapped[int] = mapped_column(
        ForeignKey("achievements.id", ondelete="CASCADE"), index=True
    )
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    is_equipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship(back_populates="achievements")
    achievement: Mapped["Achievement"] = relationship(back_populates="user_achievements")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )


class ChampionshipBelt(Base):
    """Collectible belt, optionally tied to one category."""

    __tablename__ = "championship_belts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    description: Mapped[str] = mapped_column(Text, default="")
    image_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("quiz_categories.id", ondelete="SET NULL"), nullable=True
    )
    unlock_criteria: Mapped[dict[str, Any]] = mapped_column(JSON)
    rarity: Mapped[str] = mapped_column(String(20), default=BeltRarity.COMMON.value)
    xp_reward: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    category: Mapped[Optional["QuizCategory"]] = relationship(lazy="joined")
    user_belts: Mapped[list["UserBelt"]] = relationship(
        back_populates="belt", cascade="all, delete-orphan"
    )


class UserBelt(Base):
    __tablename__ = "user_belts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    belt_id: Mapped[int] = mapped_column(
        ForeignKey("championship_belts.id", ondelete="CASCADE"), index=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    is_displayed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship(back_populates="belts")
    belt: Mapped["ChampionshipBelt"] = relationship(back_populates="user_belts")

    __table_args__ = (
        UniqueConstraint("user_id", "belt_id", name="uq_user_belt"),
    )


class DailyChallenge(Base):
    __tablename__ = "daily_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_date: Mapped[date] = mapped_column(Date, unique=True, index=True)
    question_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    bonus_xp: Mapped[int] = mapped_column(Integer, default=250, nullable=False)


class UserDailyChallenge(Base):
    __tablename__ = "user_daily_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    challenge_id: Mapped[int] = mapped_column(
        ForeignKey("daily_challenges.id", ondelete="CASCADE"), index=True
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bonus_xp_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    challenge: Mapped["DailyChallenge"] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_user_daily_challenge"),
        Index("ix_user_daily_challenge_user", "user_id", "completed"),
    )
