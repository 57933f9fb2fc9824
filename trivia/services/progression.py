"""Progression service - scores answers and updates XP, level, streak, mastery and unlocks.

One answer submission runs these steps in a single transaction while holding
the user's lock:

    validate -> score -> record answer -> category progress + mastery
    -> total XP + level -> streak -> achievement/belt unlocks

A second submission for the same (user, question) changes nothing and returns
the recorded outcome with 0 XP.
"""

import asyncio
import logging
import weakref
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import date, datetime

from trivia.models.base import utcnow
from trivia.models.quiz import UserAnswer
from trivia.models.user import User
from trivia.schemas import (
    AnswerResult,
    LevelProgressResponse,
    UnlockedAchievement,
    UnlockedBelt,
    UserProgressResponse,
)
from trivia.services.errors import (
    DuplicateAnswerError,
    NotFoundError,
    ProgressionError,
    ValidationError,
)
from trivia.services.mastery import mastery_level
from trivia.services.repository import ProgressionRepository
from trivia.services.streaks import local_today, next_streak
from trivia.services.unlocks import (
    achievement_candidates,
    belt_candidates,
    select_unlocks,
    speed_thresholds,
)
from trivia.services.xp import level_for_total_xp, progress_toward_next_level, xp_for_answer

logger = logging.getLogger(__name__)

# One lock per user id, shared by every service instance in this process.
# Entries disappear once no coroutine holds a reference to the lock.
_user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(user_id: int) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


def answers_match(submitted: str, correct: str) -> bool:
    """Case-insensitive comparison after trimming whitespace."""
    return submitted.strip().lower() == correct.strip().lower()


class ProgressionService:
    """Applies answers and bonuses to a user's progression state."""

    def __init__(
        self,
        repo: ProgressionRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.clock = clock

    def today(self) -> date:
        return local_today(now=self.clock())

    @asynccontextmanager
    async def locked_user(self, user_id: int):
        """Serialize progression updates for one user.

        Holds the in-process lock and the user's row lock for the duration of
        one transaction, yielding the locked ``User``.
        """
        async with _lock_for(user_id):
            async with self._user_transaction(user_id) as user:
                yield user

    @asynccontextmanager
    async def _user_transaction(self, user_id: int):
        async with self.repo.transaction():
            user = await self.repo.get_user(user_id, for_update=True)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            yield user

    async def submit_answer(
        self,
        user_id: int,
        question_id: int,
        answer: str,
        time_taken: int,
    ) -> AnswerResult:
        """Score an answer and apply every progression update it triggers."""
        if answer is None or not answer.strip():
            raise ValidationError("Answer is required")
        if time_taken is None or time_taken < 0:
            raise ValidationError("Time taken must be a non-negative integer")

        try:
            async with _lock_for(user_id):
                try:
                    async with self._user_transaction(user_id) as user:
                        return await self._apply_answer(user, question_id, answer, time_taken)
                except DuplicateAnswerError:
                    return await self._already_answered(user_id, question_id)
        except ProgressionError:
            raise
        except Exception as exc:
            logger.exception(
                "Answer submission failed: user=%d question=%d", user_id, question_id
            )
            raise ProgressionError("Failed to submit answer") from exc

    async def _apply_answer(
        self,
        user: User,
        question_id: int,
        answer: str,
        time_taken: int,
    ) -> AnswerResult:
        question = await self.repo.get_question(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")

        # Earlier answers stay readable after a question is retired
        if await self.repo.get_answer(user.id, question.id) is not None:
            raise DuplicateAnswerError(f"User {user.id} already answered question {question.id}")
        if not question.is_active:
            raise NotFoundError(f"Question {question_id} not found")

        is_correct = answers_match(answer, question.correct_answer)
        xp_earned = (
            xp_for_answer(question.xp_reward, question.time_limit, time_taken, user.current_streak)
            if is_correct
            else 0
        )

        now = self.clock()
        await self.repo.add_answer(
            UserAnswer(
                user_id=user.id,
                question_id=question.id,
                answer_given=answer,
                is_correct=is_correct,
                time_taken=time_taken,
                xp_earned=xp_earned,
                answered_at=now,
            )
        )

        # Category progress and mastery
        progress = await self.repo.record_category_answer(
            user.id, question.category_id, is_correct, xp_earned, now
        )
        total_questions = await self.repo.count_active_questions(question.category_id)
        new_mastery = mastery_level(
            progress.questions_answered, progress.questions_correct, total_questions
        )
        if new_mastery != progress.mastery_level:
            progress.mastery_level = new_mastery

        # XP and level
        level_before = user.level
        user.total_xp += xp_earned
        user.level = level_for_total_xp(user.total_xp)

        # Streak, counted on the first answer of the day
        today = self.today()
        streak = next_streak(user.last_played_date, today, user.current_streak, user.longest_streak)
        if streak.changed:
            user.current_streak = streak.current_streak
            user.longest_streak = streak.longest_streak
            user.last_played_date = today

        new_achievements, new_belts = await self.check_unlocks(user, now)

        if user.level > level_before:
            logger.info("User %d leveled up: %d -> %d", user.id, level_before, user.level)

        return AnswerResult(
            is_correct=is_correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            xp_earned=xp_earned,
            total_xp=user.total_xp,
            level=user.level,
            leveled_up=user.level > level_before,
            streak=user.current_streak,
            mastery_level=new_mastery,
            new_achievements=new_achievements,
            new_belts=new_belts,
        )

    async def _already_answered(self, user_id: int, question_id: int) -> AnswerResult:
        """The recorded outcome of an earlier submission, earning nothing."""
        async with self.repo.transaction():
            question = await self.repo.get_question(question_id)
            user = await self.repo.get_user(user_id)
            prior = await self.repo.get_answer(user_id, question_id)
            if question is None or user is None or prior is None:
                raise NotFoundError(f"No recorded answer for question {question_id}")
            progress = await self.repo.get_category_progress(user_id, question.category_id)

            return AnswerResult(
                is_correct=prior.is_correct,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                xp_earned=0,
                total_xp=user.total_xp,
                level=user.level,
                leveled_up=False,
                streak=user.current_streak,
                mastery_level=progress.mastery_level if progress else 0,
                already_answered=True,
            )

    async def check_unlocks(
        self,
        user: User,
        now: datetime,
    ) -> tuple[list[UnlockedAchievement], list[UnlockedBelt]]:
        """Unlock every pending achievement and belt the user now qualifies for.

        Must run inside ``locked_user``. Bonus XP is added to the user and the
        level recomputed once the whole batch is decided.
        """
        candidates = achievement_candidates(await self.repo.pending_achievements(user.id))
        candidates += belt_candidates(await self.repo.pending_belts(user.id))
        if not candidates:
            return [], []

        stats = await self.repo.build_stats(user, speed_thresholds(candidates))
        new_achievements: list[UnlockedAchievement] = []
        new_belts: list[UnlockedBelt] = []
        bonus_xp = 0

        for candidate in select_unlocks(candidates, stats):
            definition = candidate.definition
            if candidate.kind == "achievement":
                unlock = await self.repo.add_achievement_unlock(user.id, definition.id, now)
                new_achievements.append(
                    UnlockedAchievement(
                        id=definition.id,
                        name=definition.name,
                        description=definition.description,
                        xp_reward=candidate.xp_reward,
                        belt_tier=definition.belt_tier,
                        unlocked_at=unlock.unlocked_at,
                    )
                )
            else:
                unlock = await self.repo.add_belt_unlock(user.id, definition.id, now)
                new_belts.append(
                    UnlockedBelt(
                        id=definition.id,
                        name=definition.name,
                        description=definition.description,
                        rarity=definition.rarity,
                        category_slug=definition.category.slug if definition.category else None,
                        xp_reward=candidate.xp_reward,
                        earned_at=unlock.earned_at,
                    )
                )
            bonus_xp += candidate.xp_reward
            logger.info(
                "User %d unlocked %s %d (%s), bonus %d XP",
                user.id, candidate.kind, definition.id, definition.name, candidate.xp_reward,
            )

        if bonus_xp:
            user.total_xp += bonus_xp
            user.level = level_for_total_xp(user.total_xp)

        return new_achievements, new_belts

    async def get_progress(self, user_id: int) -> UserProgressResponse:
        """Profile view: level progress, streaks and totals."""
        async with self.repo.transaction():
            user = await self.repo.get_user(user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            total_answers, correct_answers = await self.repo.count_answers(user_id)
            total_achievements, total_belts = await self.repo.count_unlocks(user_id)

            xp_progress = progress_toward_next_level(user.total_xp)
            return UserProgressResponse(
                user_id=user.id,
                total_xp=user.total_xp,
                level=user.level,
                xp_progress=LevelProgressResponse(
                    current_level=xp_progress.current_level,
                    current_level_xp=xp_progress.current_level_xp,
                    next_level_xp=xp_progress.next_level_xp,
                    progress=xp_progress.progress,
                ),
                current_streak=user.current_streak,
                longest_streak=user.longest_streak,
                last_played_date=user.last_played_date,
                total_answers=total_answers,
                correct_answers=correct_answers,
                accuracy=(correct_answers / total_answers * 100) if total_answers else 0.0,
                total_achievements=total_achievements,
                total_belts=total_belts,
            )
