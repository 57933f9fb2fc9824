"""Quiz content and per-user answer/progress records."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
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
    from trivia.models.user import User


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class QuizCategory(Base):
    """Themed question category, e.g. "Attitude Era"."""

    __tablename__ = "quiz_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unlock_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    questions: Mapped[list["Question"]] = relationship(back_populates="category")


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("quiz_categories.id", ondelete="CASCADE"), index=True
    )
    question_text: Mapped[str] = mapped_column(Text)
    answer_options: Mapped[list[str]] = mapped_column(JSON, default=list)
    correct_answer: Mapped[str] = mapped_column(String(255))
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Use String to avoid PostgreSQL enum mapping issues - values validated at app layer
    difficulty: Mapped[str] = mapped_column(String(20), default=Difficulty.MEDIUM.value)
    xp_reward: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    time_limit: Mapped[int] = mapped_column(Integer, default=20, nullable=False)  # seconds
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    category: Mapped["QuizCategory"] = relationship(back_populates="questions")

    __table_args__ = (
        Index("ix_question_category_active", "category_id", "is_active"),
    )


class UserAnswer(Base):
    """Immutable record of one submitted answer. One per (user, question)."""

    __tablename__ = "user_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"))
    answer_given: Mapped[str] = mapped_column(String(255))
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_taken: Mapped[int] = mapped_column(Integer, nullable=False)  # seconds
    xp_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    answered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_user_answer_question"),
        Index("ix_user_answer_user_date", "user_id", "answered_at"),
    )


class UserProgress(Base):
    """Per-category progress for one user."""

    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("quiz_categories.id", ondelete="CASCADE"), index=True
    )
    questions_answered: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    questions_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category_xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0-5
    last_attempted: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped["User"] = relationship(back_populates="progress")
    category: Mapped["QuizCategory"] = relationship()

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", name="uq_user_progress_category"),
    )
