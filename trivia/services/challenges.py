"""Daily challenge: one shared question set per calendar day, with a bonus for finishing it."""

import logging
import math
import random
from collections.abc import Callable
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from trivia.core.config import settings
from trivia.models.base import utcnow
from trivia.models.gamification import DailyChallenge, UserDailyChallenge
from trivia.models.quiz import Question
from trivia.schemas import ChallengeResult
from trivia.services.errors import (
    ChallengeAlreadyCompletedError,
    NotFoundError,
    ProgressionError,
    ValidationError,
)
from trivia.services.progression import ProgressionService
from trivia.services.questions import QuestionService
from trivia.services.repository import SqlProgressionRepository
from trivia.services.xp import level_for_total_xp

logger = logging.getLogger(__name__)

HISTORY_WINDOW_DAYS = 30


def challenge_bonus(bonus_xp: int, correct_count: int, total_questions: int) -> int:
    """Full bonus for a perfect run, scaled down by accuracy otherwise."""
    return math.floor(bonus_xp * correct_count / total_questions)


class ChallengeService:
    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.progression = ProgressionService(SqlProgressionRepository(db), clock=clock)
        self.questions = QuestionService(db)

    async def _find(self, challenge_date: date) -> DailyChallenge | None:
        result = await self.db.execute(
            select(DailyChallenge).where(DailyChallenge.challenge_date == challenge_date)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, challenge_date: date) -> DailyChallenge:
        """The challenge for a date, drawing its questions on first request."""
        challenge = await self._find(challenge_date)
        if challenge is not None:
            return challenge

        result = await self.db.execute(select(Question.id).where(Question.is_active.is_(True)))
        ids = [row[0] for row in result.all()]
        question_ids = random.sample(ids, min(settings.daily_challenge_size, len(ids)))

        challenge = DailyChallenge(
            challenge_date=challenge_date,
            question_ids=question_ids,
            bonus_xp=settings.daily_challenge_bonus_xp,
        )
        self.db.add(challenge)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another request created it first
            await self.db.rollback()
            challenge = await self._find(challenge_date)
            if challenge is None:
                raise
            return challenge
        await self.db.refresh(challenge)

        logger.info(
            "Created daily challenge %d for %s with %d questions",
            challenge.id, challenge_date.isoformat(), len(question_ids),
        )
        return challenge

    async def _user_record(self, user_id: int, challenge_id: int) -> UserDailyChallenge | None:
        result = await self.db.execute(
            select(UserDailyChallenge).where(
                UserDailyChallenge.user_id == user_id,
                UserDailyChallenge.challenge_id == challenge_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_today(self, user_id: int) -> dict[str, Any]:
        """Today's challenge and, unless already completed, its questions."""
        challenge = await self.get_or_create(self.progression.today())
        record = await self._user_record(user_id, challenge.id)
        completed = bool(record and record.completed)

        return {
            "challenge": {
                "id": challenge.id,
                "date": challenge.challenge_date.isoformat(),
                "bonus_xp": challenge.bonus_xp,
                "question_count": len(challenge.question_ids),
                "completed": completed,
                "score": record.score if record else 0,
                "completed_at": record.completed_at.isoformat() if record and record.completed_at else None,
            },
            "questions": [] if completed else await self.questions.questions_by_id(challenge.question_ids),
        }

    async def complete(
        self,
        user_id: int,
        challenge_id: int,
        score: int,
        correct_count: int,
        total_questions: int,
    ) -> ChallengeResult:
        """Record a finished challenge and award its bonus XP once."""
        if total_questions <= 0:
            raise ValidationError("total_questions must be positive")
        if not 0 <= correct_count <= total_questions:
            raise ValidationError("correct_count must be between 0 and total_questions")
        if score < 0:
            raise ValidationError("score must be non-negative")

        try:
            async with self.progression.locked_user(user_id) as user:
                challenge = await self.db.get(DailyChallenge, challenge_id)
                if challenge is None:
                    raise NotFoundError(f"Challenge {challenge_id} not found")

                record = await self._user_record(user_id, challenge_id)
                if record is not None and record.completed:
                    raise ChallengeAlreadyCompletedError("Challenge already completed")
                if record is None:
                    record = UserDailyChallenge(user_id=user_id, challenge_id=challenge_id)
                    self.db.add(record)

                now = self.progression.clock()
                bonus_xp = challenge_bonus(challenge.bonus_xp, correct_count, total_questions)
                record.completed = True
                record.score = score
                record.bonus_xp_earned = bonus_xp
                record.completed_at = now

                level_before = user.level
                user.total_xp += bonus_xp
                user.level = level_for_total_xp(user.total_xp)
                await self.db.flush()

                new_achievements, new_belts = await self.progression.check_unlocks(user, now)

                logger.info(
                    "User %d completed challenge %d: %d/%d correct, bonus %d XP",
                    user_id, challenge_id, correct_count, total_questions, bonus_xp,
                )
                return ChallengeResult(
                    challenge_id=challenge_id,
                    score=score,
                    correct_count=correct_count,
                    total_questions=total_questions,
                    accuracy=correct_count / total_questions * 100,
                    bonus_xp_earned=bonus_xp,
                    total_xp=user.total_xp,
                    level=user.level,
                    leveled_up=user.level > level_before,
                    new_achievements=new_achievements,
                    new_belts=new_belts,
                )
        except ProgressionError:
            raise
        except Exception as exc:
            logger.exception("Completing challenge %d failed for user %d", challenge_id, user_id)
            raise ProgressionError("Failed to complete challenge") from exc

    async def history(self, user_id: int, limit: int = 30) -> dict[str, Any]:
        """Recent challenges for a user plus completion stats for the last 30 days."""
        result = await self.db.execute(
            select(UserDailyChallenge)
            .join(DailyChallenge, DailyChallenge.id == UserDailyChallenge.challenge_id)
            .where(UserDailyChallenge.user_id == user_id)
            .order_by(DailyChallenge.challenge_date.desc())
            .limit(limit)
        )
        records = result.scalars().all()

        window_start = self.progression.today() - timedelta(days=HISTORY_WINDOW_DAYS)
        result = await self.db.execute(
            select(func.count(DailyChallenge.id)).where(DailyChallenge.challenge_date >= window_start)
        )
        total_challenges = result.scalar() or 0
        completed_challenges = sum(
            1 for r in records if r.completed and r.challenge.challenge_date >= window_start
        )

        return {
            "history": [
                {
                    "challenge_id": r.challenge_id,
                    "date": r.challenge.challenge_date.isoformat(),
                    "bonus_xp": r.challenge.bonus_xp,
                    "completed": r.completed,
                    "score": r.score,
                    "bonus_xp_earned": r.bonus_xp_earned,
                    "completed_at": r.completed_at.isoformat() if r.completed_at else None,
                }
                for r in records
            ],
            "stats": {
                "total_challenges": total_challenges,
                "completed_challenges": completed_challenges,
                "completion_rate": (
                    completed_challenges / total_challenges * 100 if total_challenges > 0 else 0
                ),
            },
        }
