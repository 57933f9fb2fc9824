"""Category listing and quiz question selection."""

import random
from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trivia.core.config import settings
from trivia.models.quiz import Difficulty, QuizCategory, Question, UserAnswer, UserProgress
from trivia.models.user import User
from trivia.services.errors import NotFoundError, ValidationError

T = TypeVar("T")

RECENT_ANSWERS_LIMIT = 10


def shuffled(items: Sequence[T]) -> list[T]:
    """Uniformly random permutation of ``items`` (Fisher-Yates via random.sample)."""
    return random.sample(list(items), len(items))


def is_category_locked(unlock_level: int, mastery_level: int | None, is_admin: bool = False) -> bool:
    """Categories open up as the user's mastery in them grows."""
    if is_admin:
        return False
    return unlock_level > (mastery_level or 0) + 1


def _progress_dict(progress: UserProgress | None) -> dict[str, Any] | None:
    if progress is None:
        return None
    return {
        "questions_answered": progress.questions_answered,
        "questions_correct": progress.questions_correct,
        "category_xp": progress.category_xp,
        "mastery_level": progress.mastery_level,
        "last_attempted": progress.last_attempted.isoformat() if progress.last_attempted else None,
    }


def question_view(question: Question, category: QuizCategory) -> dict[str, Any]:
    """Public view of a question: options shuffled, correct answer withheld."""
    return {
        "id": question.id,
        "question_text": question.question_text,
        "difficulty": question.difficulty,
        "answer_options": shuffled(question.answer_options or []),
        "xp_reward": question.xp_reward,
        "time_limit": question.time_limit,
        "category": {"id": category.id, "name": category.name, "slug": category.slug},
    }


class QuestionService:
    """Read-side queries for categories and quiz sessions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_categories(self, user_id: int | None = None) -> list[dict[str, Any]]:
        """All categories with question counts, the user's progress and lock state."""
        result = await self.db.execute(
            select(QuizCategory, func.count(Question.id))
            .outerjoin(
                Question,
                (Question.category_id == QuizCategory.id) & Question.is_active.is_(True),
            )
            .group_by(QuizCategory.id)
            .order_by(QuizCategory.sort_order, QuizCategory.id)
        )
        rows = result.all()

        user = None
        progress_by_category: dict[int, UserProgress] = {}
        if user_id is not None:
            user = await self.db.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found")
            result = await self.db.execute(
                select(UserProgress).where(UserProgress.user_id == user_id)
            )
            progress_by_category = {p.category_id: p for p in result.scalars().all()}

        categories = []
        for category, question_count in rows:
            progress = progress_by_category.get(category.id)
            if user is None:
                locked = category.unlock_level > 1
            else:
                locked = is_category_locked(
                    category.unlock_level,
                    progress.mastery_level if progress else 0,
                    user.is_admin,
                )
            categories.append({
                "id": category.id,
                "name": category.name,
                "slug": category.slug,
                "description": category.description,
                "unlock_level": category.unlock_level,
                "question_count": question_count,
                "is_locked": locked,
                "progress": _progress_dict(progress),
            })
        return categories

    async def _category_by_slug(self, slug: str) -> QuizCategory:
        result = await self.db.execute(select(QuizCategory).where(QuizCategory.slug == slug))
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError(f"Category {slug!r} not found")
        return category

    async def _user_category_progress(self, user_id: int, category_id: int) -> UserProgress | None:
        result = await self.db.execute(
            select(UserProgress).where(
                UserProgress.user_id == user_id,
                UserProgress.category_id == category_id,
            )
        )
        return result.scalar_one_or_none()

    async def category_detail(self, slug: str, user_id: int | None = None) -> dict[str, Any]:
        """One category with its difficulty breakdown and, for a user, their progress."""
        category = await self._category_by_slug(slug)

        result = await self.db.execute(
            select(Question.difficulty, func.count(Question.id))
            .where(Question.category_id == category.id, Question.is_active.is_(True))
            .group_by(Question.difficulty)
        )
        counts = dict(result.all())
        breakdown = {d.value: counts.get(d.value, 0) for d in Difficulty}

        progress = None
        answered_questions = 0
        if user_id is not None:
            if await self.db.get(User, user_id) is None:
                raise NotFoundError(f"User {user_id} not found")
            progress = await self._user_category_progress(user_id, category.id)
            result = await self.db.execute(
                select(func.count(UserAnswer.id))
                .join(Question, Question.id == UserAnswer.question_id)
                .where(UserAnswer.user_id == user_id, Question.category_id == category.id)
            )
            answered_questions = result.scalar() or 0

        return {
            "id": category.id,
            "name": category.name,
            "slug": category.slug,
            "description": category.description,
            "unlock_level": category.unlock_level,
            "question_count": sum(counts.values()),
            "difficulty_breakdown": breakdown,
            "progress": _progress_dict(progress),
            "answered_questions": answered_questions,
        }

    async def category_progress(self, slug: str, user_id: int) -> dict[str, Any]:
        """A user's progress in one category and their latest answers there."""
        category = await self._category_by_slug(slug)
        progress = await self._user_category_progress(user_id, category.id)

        result = await self.db.execute(
            select(UserAnswer, Question)
            .join(Question, Question.id == UserAnswer.question_id)
            .where(UserAnswer.user_id == user_id, Question.category_id == category.id)
            .order_by(UserAnswer.answered_at.desc(), UserAnswer.id.desc())
            .limit(RECENT_ANSWERS_LIMIT)
        )
        recent_answers = [
            {
                "question_id": question.id,
                "question_text": question.question_text,
                "difficulty": question.difficulty,
                "answer_given": answer.answer_given,
                "is_correct": answer.is_correct,
                "time_taken": answer.time_taken,
                "xp_earned": answer.xp_earned,
                "answered_at": answer.answered_at.isoformat(),
            }
            for answer, question in result.all()
        ]
        return {"progress": _progress_dict(progress), "recent_answers": recent_answers}

    async def random_questions(
        self,
        category_slug: str | None = None,
        difficulty: str | None = None,
        count: int = 10,
    ) -> list[dict[str, Any]]:
        """A uniformly random set of active questions for a quiz session."""
        if count < 1:
            raise ValidationError("Question count must be at least 1")
        count = min(count, settings.max_quiz_questions)

        query = select(Question.id).where(Question.is_active.is_(True))
        if category_slug:
            result = await self.db.execute(
                select(QuizCategory.id).where(QuizCategory.slug == category_slug)
            )
            category_id = result.scalar_one_or_none()
            if category_id is None:
                raise NotFoundError(f"Category {category_slug!r} not found")
            query = query.where(Question.category_id == category_id)
        if difficulty:
            try:
                query = query.where(Question.difficulty == Difficulty(difficulty.lower()).value)
            except ValueError as exc:
                raise ValidationError(f"Unknown difficulty {difficulty!r}") from exc

        result = await self.db.execute(query)
        ids = [row[0] for row in result.all()]
        selected = random.sample(ids, min(count, len(ids)))
        return await self.questions_by_id(selected)

    async def questions_by_id(self, question_ids: Sequence[int]) -> list[dict[str, Any]]:
        """Question views in the order of ``question_ids``."""
        if not question_ids:
            return []
        result = await self.db.execute(
            select(Question, QuizCategory)
            .join(QuizCategory, QuizCategory.id == Question.category_id)
            .where(Question.id.in_(question_ids))
        )
        views = {question.id: question_view(question, category) for question, category in result.all()}
        return [views[qid] for qid in question_ids if qid in views]
