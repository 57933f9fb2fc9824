"""Persistence boundary for the progression service.

``ProgressionRepository`` is what the orchestrator needs from storage;
``SqlProgressionRepository`` implements it on an async SQLAlchemy session.
"""

from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from typing import Protocol

from sqlalchemy import case, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trivia.models.gamification import (
    Achievement,
    ChampionshipBelt,
    UserAchievement,
    UserBelt,
)
from trivia.models.quiz import QuizCategory, Question, UserAnswer, UserProgress
from trivia.models.user import User
from trivia.services.criteria import PERFECT_RUN_LENGTH, CategoryStats, UserStats
from trivia.services.errors import DuplicateAnswerError


class ProgressionRepository(Protocol):
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Commit everything written inside the block, or roll it all back."""
        ...

    async def get_user(self, user_id: int, *, for_update: bool = False) -> User | None: ...

    async def get_question(self, question_id: int) -> Question | None: ...

    async def get_answer(self, user_id: int, question_id: int) -> UserAnswer | None: ...

    async def add_answer(self, answer: UserAnswer) -> None: ...

    async def get_category_progress(self, user_id: int, category_id: int) -> UserProgress | None: ...

    async def record_category_answer(
        self,
        user_id: int,
        category_id: int,
        is_correct: bool,
        xp_earned: int,
        answered_at: datetime,
    ) -> UserProgress: ...

    async def count_active_questions(self, category_id: int) -> int: ...

    async def count_answers(self, user_id: int) -> tuple[int, int]: ...

    async def count_unlocks(self, user_id: int) -> tuple[int, int]: ...

    async def pending_achievements(self, user_id: int) -> list[Achievement]: ...

    async def pending_belts(self, user_id: int) -> list[ChampionshipBelt]: ...

    async def build_stats(self, user: User, speed_thresholds: Iterable[int] = ()) -> UserStats: ...

    async def add_achievement_unlock(
        self, user_id: int, achievement_id: int, unlocked_at: datetime
    ) -> UserAchievement: ...

    async def add_belt_unlock(self, user_id: int, belt_id: int, earned_at: datetime) -> UserBelt: ...


class SqlProgressionRepository:
    """ProgressionRepository backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self):
        try:
            yield
        except Exception:
            await self.db.rollback()
            raise
        else:
            await self.db.commit()

    async def get_user(self, user_id: int, *, for_update: bool = False) -> User | None:
        query = select(User).where(User.id == user_id)
        if for_update:
            # Row lock on backends that support it; SQLite ignores it
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_question(self, question_id: int) -> Question | None:
        return await self.db.get(Question, question_id)

    async def get_answer(self, user_id: int, question_id: int) -> UserAnswer | None:
        result = await self.db.execute(
            select(UserAnswer).where(
                UserAnswer.user_id == user_id,
                UserAnswer.question_id == question_id,
            )
        )
        return result.scalar_one_or_none()

    async def add_answer(self, answer: UserAnswer) -> None:
        """Insert an answer; the unique (user, question) constraint is authoritative."""
        self.db.add(answer)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise DuplicateAnswerError(
                f"User {answer.user_id} already answered question {answer.question_id}"
            ) from exc

    async def get_category_progress(self, user_id: int, category_id: int) -> UserProgress | None:
        result = await self.db.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.category_id == category_id,
            )
        )
        return result.scalar_one_or_none()

    async def record_category_answer(
        self,
        user_id: int,
        category_id: int,
        is_correct: bool,
        xp_earned: int,
        answered_at: datetime,
    ) -> UserProgress:
        """Create or bump the (user, category) progress counters."""
        progress = await self.get_category_progress(user_id, category_id)
        if progress is None:
            progress = UserProgress(
                user_id=user_id,
                category_id=category_id,
                questions_answered=0,
                questions_correct=0,
                category_xp=0,
                mastery_level=0,
            )
            self.db.add(progress)

        progress.questions_answered += 1
        if is_correct:
            progress.questions_correct += 1
        progress.category_xp += xp_earned
        progress.last_attempted = answered_at
        await self.db.flush()
        return progress

    async def count_active_questions(self, category_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Question.id)).where(
                Question.category_id == category_id,
                Question.is_active.is_(True),
            )
        )
        return result.scalar() or 0

    async def count_answers(self, user_id: int) -> tuple[int, int]:
        """Return (total answers, correct answers) for a user."""
        result = await self.db.execute(
            select(
                func.count(UserAnswer.id),
                func.coalesce(func.sum(case((UserAnswer.is_correct.is_(True), 1), else_=0)), 0),
            ).where(UserAnswer.user_id == user_id)
        )
        total, correct = result.one()
        return int(total or 0), int(correct or 0)

    async def count_unlocks(self, user_id: int) -> tuple[int, int]:
        """Return (achievements unlocked, belts owned) for a user."""
        achievements = await self.db.execute(
            select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
        )
        belts = await self.db.execute(
            select(func.count(UserBelt.id)).where(UserBelt.user_id == user_id)
        )
        return achievements.scalar() or 0, belts.scalar() or 0

    async def pending_achievements(self, user_id: int) -> list[Achievement]:
        """Achievements the user does not hold yet."""
        result = await self.db.execute(
            select(Achievement)
            .where(
                ~exists(
                    select(UserAchievement.id).where(
                        UserAchievement.achievement_id == Achievement.id,
                        UserAchievement.user_id == user_id,
                    )
                )
            )
            .order_by(Achievement.id)
        )
        return list(result.scalars().all())

    async def pending_belts(self, user_id: int) -> list[ChampionshipBelt]:
        """Belts the user does not own yet, with their category loaded."""
        result = await self.db.execute(
            select(ChampionshipBelt)
            .where(
                ~exists(
                    select(UserBelt.id).where(
                        UserBelt.belt_id == ChampionshipBelt.id,
                        UserBelt.user_id == user_id,
                    )
                )
            )
            .order_by(ChampionshipBelt.id)
        )
        return list(result.scalars().all())

    async def build_stats(self, user: User, speed_thresholds: Iterable[int] = ()) -> UserStats:
        """Snapshot the aggregates unlock criteria are evaluated against."""
        total_answers, total_correct = await self.count_answers(user.id)

        result = await self.db.execute(
            select(Question.category_id, func.count(Question.id))
            .where(Question.is_active.is_(True))
            .group_by(Question.category_id)
        )
        active_by_category = {row[0]: row[1] for row in result.all()}

        result = await self.db.execute(
            select(UserProgress, QuizCategory.slug)
            .join(QuizCategory, QuizCategory.id == UserProgress.category_id)
            .where(UserProgress.user_id == user.id)
        )
        categories = {
            slug: CategoryStats(
                slug=slug,
                questions_answered=progress.questions_answered,
                questions_correct=progress.questions_correct,
                mastery_level=progress.mastery_level,
                active_questions=active_by_category.get(progress.category_id, 0),
            )
            for progress, slug in result.all()
        }

        result = await self.db.execute(select(func.count(QuizCategory.id)))
        total_categories = result.scalar() or 0

        result = await self.db.execute(
            select(UserAnswer.is_correct)
            .where(UserAnswer.user_id == user.id)
            .order_by(UserAnswer.answered_at.desc(), UserAnswer.id.desc())
            .limit(PERFECT_RUN_LENGTH)
        )
        recent_results = tuple(bool(row[0]) for row in result.all())

        fast_correct_counts = {}
        for threshold in sorted(set(speed_thresholds)):
            result = await self.db.execute(
                select(func.count(UserAnswer.id)).where(
                    UserAnswer.user_id == user.id,
                    UserAnswer.is_correct.is_(True),
                    UserAnswer.time_taken <= threshold,
                )
            )
            fast_correct_counts[threshold] = result.scalar() or 0

        _, owned_belts = await self.count_unlocks(user.id)

        return UserStats(
            total_answers=total_answers,
            total_correct=total_correct,
            level=user.level,
            current_streak=user.current_streak,
            total_categories=total_categories,
            owned_belts=owned_belts,
            categories=categories,
            recent_results=recent_results,
            fast_correct_counts=fast_correct_counts,
        )

    async def add_achievement_unlock(
        self, user_id: int, achievement_id: int, unlocked_at: datetime
    ) -> UserAchievement:
        unlock = UserAchievement(
            user_id=user_id,
            achievement_id=achievement_id,
            unlocked_at=unlocked_at,
            is_equipped=False,
        )
        self.db.add(unlock)
        await self.db.flush()
        return unlock

    async def add_belt_unlock(self, user_id: int, belt_id: int, earned_at: datetime) -> UserBelt:
        unlock = UserBelt(
            user_id=user_id,
            belt_id=belt_id,
            earned_at=earned_at,
            is_displayed=False,
        )
        self.db.add(unlock)
        await self.db.flush()
        return unlock
