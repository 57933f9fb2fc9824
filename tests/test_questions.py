"""Tests for category listing and quiz question selection."""
from datetime import datetime, timedelta, timezone

import pytest

from tests.conftest import make_category, make_questions, make_user
from trivia.models import UserAnswer, UserProgress
from trivia.services.errors import NotFoundError, ValidationError
from trivia.services.questions import QuestionService, is_category_locked, shuffled


@pytest.fixture
def questions(db):
    return QuestionService(db)


class TestShuffled:

    def test_is_a_permutation(self):
        items = list(range(20))
        result = shuffled(items)
        assert sorted(result) == items
        assert items == list(range(20))

    def test_every_position_reachable(self):
        """Each item lands first at least once over many shuffles."""
        firsts = {shuffled(["a", "b", "c", "d"])[0] for _ in range(500)}
        assert firsts == {"a", "b", "c", "d"}

    def test_empty(self):
        assert shuffled([]) == []


class TestIsCategoryLocked:

    @pytest.mark.parametrize(
        "unlock_level, mastery, expected",
        [
            (1, 0, False),
            (2, 0, True),
            (2, 1, False),
            (4, 2, True),
            (3, 2, False),
            (3, None, True),
        ],
    )
    def test_mastery_opens_categories(self, unlock_level, mastery, expected):
        assert is_category_locked(unlock_level, mastery) is expected

    def test_admins_see_everything(self):
        assert is_category_locked(5, 0, is_admin=True) is False


class TestListCategories:

    async def test_anonymous(self, db, questions):
        era = await make_category(db, "attitude-era", sort_order=1)
        await make_category(db, "golden-era", unlock_level=3, sort_order=0)
        await make_questions(db, era, count=3)
        await make_questions(db, era, count=2, is_active=False)

        categories = await questions.list_categories()

        assert [c["slug"] for c in categories] == ["golden-era", "attitude-era"]
        assert categories[0]["is_locked"] is True
        assert categories[0]["question_count"] == 0
        assert categories[1]["is_locked"] is False
        assert categories[1]["question_count"] == 3
        assert categories[1]["progress"] is None

    async def test_user_mastery_unlocks(self, db, questions):
        golden = await make_category(db, "golden-era", unlock_level=3)
        user = await make_user(db)
        db.add(UserProgress(
            user_id=user.id, category_id=golden.id, questions_answered=10,
            questions_correct=7, category_xp=350, mastery_level=2,
        ))
        await db.commit()

        [category] = await questions.list_categories(user.id)

        assert category["is_locked"] is False
        assert category["progress"]["mastery_level"] == 2
        assert category["progress"]["category_xp"] == 350

    async def test_admin(self, db, questions):
        await make_category(db, "golden-era", unlock_level=5)
        admin = await make_user(db, "vince", is_admin=True)

        [category] = await questions.list_categories(admin.id)

        assert category["is_locked"] is False

    async def test_unknown_user(self, questions):
        with pytest.raises(NotFoundError):
            await questions.list_categories(999)


ANSWERED = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def answer(user, question, minutes=0, correct=True):
    return UserAnswer(
        user_id=user.id,
        question_id=question.id,
        answer_given="Stone Cold" if correct else "The Rock",
        is_correct=correct,
        time_taken=5,
        xp_earned=50 if correct else 0,
        answered_at=ANSWERED + timedelta(minutes=minutes),
    )


class TestCategoryDetail:

    async def test_breakdown_and_user_progress(self, db, questions):
        era = await make_category(db, "attitude-era")
        other = await make_category(db, "golden-era")
        easy = await make_questions(db, era, count=2, difficulty="easy")
        [hard] = await make_questions(db, era, difficulty="hard")
        await make_questions(db, era, difficulty="medium", is_active=False)
        [elsewhere] = await make_questions(db, other)
        user = await make_user(db)
        db.add_all([answer(user, easy[0]), answer(user, hard, correct=False), answer(user, elsewhere)])
        db.add(UserProgress(
            user_id=user.id, category_id=era.id, questions_answered=2,
            questions_correct=1, category_xp=50, mastery_level=1,
        ))
        await db.commit()

        detail = await questions.category_detail("attitude-era", user.id)

        assert detail["slug"] == "attitude-era"
        assert detail["question_count"] == 3
        assert detail["difficulty_breakdown"] == {"easy": 2, "medium": 0, "hard": 1}
        assert detail["answered_questions"] == 2
        assert detail["progress"]["questions_answered"] == 2
        assert detail["progress"]["mastery_level"] == 1

    async def test_anonymous(self, db, questions):
        era = await make_category(db)
        await make_questions(db, era, count=2, difficulty="medium")

        detail = await questions.category_detail("attitude-era")

        assert detail["difficulty_breakdown"] == {"easy": 0, "medium": 2, "hard": 0}
        assert detail["progress"] is None
        assert detail["answered_questions"] == 0

    async def test_unknown_category(self, questions):
        with pytest.raises(NotFoundError):
            await questions.category_detail("no-such-era")

    async def test_unknown_user(self, db, questions):
        await make_category(db)
        with pytest.raises(NotFoundError):
            await questions.category_detail("attitude-era", 999)


class TestCategoryProgress:

    async def test_ten_most_recent_answers(self, db, questions):
        era = await make_category(db, "attitude-era")
        other = await make_category(db, "golden-era")
        era_questions = await make_questions(db, era, count=12, difficulty="hard")
        [elsewhere] = await make_questions(db, other)
        user = await make_user(db)
        db.add_all([answer(user, q, minutes=i) for i, q in enumerate(era_questions)])
        db.add(answer(user, elsewhere, minutes=60))
        db.add(UserProgress(
            user_id=user.id, category_id=era.id, questions_answered=12,
            questions_correct=12, category_xp=600, mastery_level=3,
        ))
        await db.commit()

        result = await questions.category_progress("attitude-era", user.id)

        assert result["progress"]["category_xp"] == 600
        recent = result["recent_answers"]
        assert [a["question_id"] for a in recent] == [q.id for q in reversed(era_questions[2:])]
        assert recent[0]["difficulty"] == "hard"
        assert recent[0]["is_correct"] is True
        assert recent[0]["xp_earned"] == 50
        assert recent[0]["question_text"] == era_questions[11].question_text

    async def test_no_answers_yet(self, db, questions):
        await make_category(db)
        user = await make_user(db)

        result = await questions.category_progress("attitude-era", user.id)

        assert result == {"progress": None, "recent_answers": []}

    async def test_unknown_category(self, questions):
        with pytest.raises(NotFoundError):
            await questions.category_progress("no-such-era", 1)


class TestRandomQuestions:

    async def test_capped_and_answer_withheld(self, db, questions):
        era = await make_category(db)
        await make_questions(db, era, count=25)

        selected = await questions.random_questions("attitude-era", count=50)

        assert len(selected) == 20
        assert len({q["id"] for q in selected}) == 20
        for question in selected:
            assert "correct_answer" not in question
            assert sorted(question["answer_options"]) == sorted(
                ["Stone Cold", "The Rock", "Mankind", "Triple H"]
            )
            assert question["category"]["slug"] == "attitude-era"

    async def test_difficulty_filter(self, db, questions):
        era = await make_category(db)
        await make_questions(db, era, count=5, difficulty="easy")
        await make_questions(db, era, count=3, difficulty="hard")

        selected = await questions.random_questions(difficulty="HARD", count=10)

        assert len(selected) == 3
        assert {q["difficulty"] for q in selected} == {"hard"}

    async def test_inactive_questions_excluded(self, db, questions):
        era = await make_category(db)
        await make_questions(db, era, count=2)
        await make_questions(db, era, count=4, is_active=False)

        assert len(await questions.random_questions(count=10)) == 2

    async def test_unknown_category(self, questions):
        with pytest.raises(NotFoundError):
            await questions.random_questions("no-such-era")

    async def test_unknown_difficulty(self, questions):
        with pytest.raises(ValidationError):
            await questions.random_questions(difficulty="extreme")

    async def test_count_must_be_positive(self, questions):
        with pytest.raises(ValidationError):
            await questions.random_questions(count=0)

    async def test_questions_by_id_keeps_order(self, db, questions):
        era = await make_category(db)
        made = await make_questions(db, era, count=3)
        ids = [made[2].id, made[0].id, made[1].id]

        assert [q["id"] for q in await questions.questions_by_id(ids)] == ids
