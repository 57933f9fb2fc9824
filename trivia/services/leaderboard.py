"""Leaderboards: all-time XP, XP earned this week, and per-category XP."""

from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trivia.core.config import settings
from trivia.models.base import utcnow
from trivia.models.quiz import QuizCategory, UserAnswer, UserProgress
from trivia.models.user import User
from trivia.services.errors import NotFoundError

GLOBAL_LIMIT = 100
WEEKLY_LIMIT = 50
CATEGORY_LIMIT = 25


def week_start(now: datetime, tz: tzinfo) -> datetime:
    """Monday 00:00 of the week containing ``now`` in ``tz``, as a UTC datetime."""
    local = now.astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time.min, tzinfo=tz).astimezone(timezone.utc)


def _user_entry(rank: int, user: User) -> dict[str, Any]:
    return {
        "rank": rank,
        "user_id": user.id,
        "username": user.username,
        "display_name": user.display_name or user.username,
        "level": user.level,
    }


class LeaderboardService:
    """Service for leaderboard functionality."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get_global(
        self,
        limit: int = GLOBAL_LIMIT,
        offset: int = 0,
        user_id: int | None = None,
    ) -> dict[str, Any]:
        """Top users by total XP."""
        limit = max(0, min(limit, GLOBAL_LIMIT))
        result = await self.db.execute(
            select(User)
            .order_by(User.total_xp.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        leaderboard = []
        for i, user in enumerate(result.scalars().all(), offset + 1):
            entry = _user_entry(i, user)
            entry["total_xp"] = user.total_xp
            entry["current_streak"] = user.current_streak
            leaderboard.append(entry)

        user_rank = None
        if user_id is not None:
            result = await self.db.execute(select(User.total_xp).where(User.id == user_id))
            user_xp = result.scalar_one_or_none()
            # Unknown users have no rank
            if user_xp is not None:
                result = await self.db.execute(
                    select(func.count(User.id)).where(User.total_xp > user_xp)
                )
                user_rank = (result.scalar() or 0) + 1

        result = await self.db.execute(select(func.count(User.id)))
        return {
            "leaderboard": leaderboard,
            "user_rank": user_rank,
            "total": result.scalar() or 0,
        }

    async def get_weekly(
        self,
        limit: int = WEEKLY_LIMIT,
        offset: int = 0,
        user_id: int | None = None,
    ) -> dict[str, Any]:
        """Top users by XP earned from answers since Monday."""
        limit = max(0, min(limit, WEEKLY_LIMIT))
        start = week_start(self.clock(), settings.timezone)
        weekly_xp = func.coalesce(func.sum(UserAnswer.xp_earned), 0).label("weekly_xp")

        result = await self.db.execute(
            select(User, weekly_xp)
            .join(UserAnswer, UserAnswer.user_id == User.id)
            .where(UserAnswer.answered_at >= start)
            .group_by(User.id)
            .order_by(weekly_xp.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        leaderboard = []
        for i, (user, xp) in enumerate(result.all(), offset + 1):
            entry = _user_entry(i, user)
            entry["weekly_xp"] = int(xp)
            leaderboard.append(entry)

        user_rank = None
        user_weekly_xp = 0
        if user_id is not None:
            result = await self.db.execute(
                select(func.coalesce(func.sum(UserAnswer.xp_earned), 0)).where(
                    UserAnswer.user_id == user_id,
                    UserAnswer.answered_at >= start,
                )
            )
            user_weekly_xp = int(result.scalar() or 0)

            if user_weekly_xp > 0:
                totals = (
                    select(UserAnswer.user_id, func.sum(UserAnswer.xp_earned).label("xp"))
                    .where(UserAnswer.answered_at >= start)
                    .group_by(UserAnswer.user_id)
                    .subquery()
                )
                result = await self.db.execute(
                    select(func.count()).select_from(totals).where(totals.c.xp > user_weekly_xp)
                )
                user_rank = (result.scalar() or 0) + 1

        return {
            "leaderboard": leaderboard,
            "user_rank": user_rank,
            "user_weekly_xp": user_weekly_xp,
            "week_start": start.isoformat(),
        }

    async def get_category(
        self,
        slug: str,
        limit: int = CATEGORY_LIMIT,
        offset: int = 0,
        user_id: int | None = None,
    ) -> dict[str, Any]:
        """Top users in one category by category XP."""
        result = await self.db.execute(select(QuizCategory).where(QuizCategory.slug == slug))
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError(f"Category {slug!r} not found")

        limit = max(0, min(limit, CATEGORY_LIMIT))
        result = await self.db.execute(
            select(UserProgress, User)
            .join(User, User.id == UserProgress.user_id)
            .where(UserProgress.category_id == category.id)
            .order_by(UserProgress.category_xp.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        leaderboard = []
        for i, (progress, user) in enumerate(result.all(), offset + 1):
            entry = _user_entry(i, user)
            entry.update({
                "category_xp": progress.category_xp,
                "mastery_level": progress.mastery_level,
                "questions_correct": progress.questions_correct,
                "questions_answered": progress.questions_answered,
                "accuracy": (
                    progress.questions_correct / progress.questions_answered * 100
                    if progress.questions_answered > 0
                    else 0
                ),
            })
            leaderboard.append(entry)

        user_rank = None
        if user_id is not None:
            result = await self.db.execute(
                select(UserProgress.category_xp).where(
                    UserProgress.user_id == user_id,
                    UserProgress.category_id == category.id,
                )
            )
            user_xp = result.scalar_one_or_none()
            if user_xp is not None:
                result = await self.db.execute(
                    select(func.count(UserProgress.id)).where(
                        UserProgress.category_id == category.id,
                        UserProgress.category_xp > user_xp,
                    )
                )
                user_rank = (result.scalar() or 0) + 1

        return {
            "category": {"id": category.id, "name": category.name, "slug": category.slug},
            "leaderboard": leaderboard,
            "user_rank": user_rank,
        }
