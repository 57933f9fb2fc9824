"""Shared test fixtures: in-memory async SQLite database and data factories."""

import os

# Set env vars BEFORE importing app modules (config reads at import time)
os.environ.setdefault("TRIVIA_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TRIVIA_STREAK_TIMEZONE", "UTC")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from trivia.models import (  # noqa: E402
    Achievement,
    Base,
    ChampionshipBelt,
    QuizCategory,
    Question,
    User,
)


class FrozenClock:
    """Callable clock for services; advance it to move between days."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine):
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def expiring_db(engine):
    """Session with the default expire_on_commit, as an app would configure it."""
    async with async_sessionmaker(engine, class_=AsyncSession)() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


# --- Test data factories ---

async def make_user(db: AsyncSession, username: str = "stone_cold", **overrides) -> User:
    defaults = {
        "username": username,
        "display_name": username.replace("_", " ").title(),
        "total_xp": 0,
        "level": 1,
        "current_streak": 0,
        "longest_streak": 0,
        "last_played_date": None,
        "is_admin": False,
    }
    defaults.update(overrides)
    user = User(**defaults)
    db.add(user)
    await db.commit()
    return user


async def make_category(
    db: AsyncSession,
    slug: str = "attitude-era",
    name: str | None = None,
    unlock_level: int = 1,
    sort_order: int = 0,
) -> QuizCategory:
    category = QuizCategory(
        slug=slug,
        name=name or slug.replace("-", " ").title(),
        unlock_level=unlock_level,
        sort_order=sort_order,
    )
    db.add(category)
    await db.commit()
    return category


async def make_questions(
    db: AsyncSession,
    category: QuizCategory,
    count: int = 1,
    xp_reward: int = 50,
    time_limit: int = 15,
    difficulty: str = "easy",
    is_active: bool = True,
) -> list[Question]:
    questions = [
        Question(
            category_id=category.id,
            question_text=f"{category.name} question {i}?",
            answer_options=["Stone Cold", "The Rock", "Mankind", "Triple H"],
            correct_answer="Stone Cold",
            explanation="Austin 3:16 says so.",
            difficulty=difficulty,
            xp_reward=xp_reward,
            time_limit=time_limit,
            is_active=is_active,
        )
        for i in range(count)
    ]
    db.add_all(questions)
    await db.commit()
    return questions


async def make_achievement(
    db: AsyncSession,
    name: str,
    criteria: dict,
    xp_reward: int = 0,
    belt_tier: str | None = None,
) -> Achievement:
    achievement = Achievement(
        name=name,
        description=f"{name} description",
        unlock_criteria=criteria,
        xp_reward=xp_reward,
        belt_tier=belt_tier,
    )
    db.add(achievement)
    await db.commit()
    return achievement


async def make_belt(
    db: AsyncSession,
    name: str,
    criteria: dict,
    category: QuizCategory | None = None,
    xp_reward: int = 0,
    rarity: str = "common",
) -> ChampionshipBelt:
    belt = ChampionshipBelt(
        name=name,
        description=f"{name} description",
        category_id=category.id if category else None,
        unlock_criteria=criteria,
        rarity=rarity,
        xp_reward=xp_reward,
    )
    db.add(belt)
    await db.commit()
    return belt
