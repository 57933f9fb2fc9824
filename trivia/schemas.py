from datetime import date, datetime

from pydantic import BaseModel, Field


class UnlockedAchievement(BaseModel):
    """An achievement unlocked during a progression update."""

    id: int
    name: str
    description: str
    xp_reward: int
    belt_tier: str | None = None
    unlocked_at: datetime


class UnlockedBelt(BaseModel):
    """A championship belt earned during a progression update."""

    id: int
    name: str
    description: str
    rarity: str
    category_slug: str | None = None
    xp_reward: int = 0
    earned_at: datetime


class AnswerResult(BaseModel):
    """Outcome of submitting one answer."""

    is_correct: bool
    correct_answer: str
    explanation: str | None = None
    xp_earned: int = Field(description="XP from the answer itself, excluding unlock bonuses")
    total_xp: int
    level: int
    leveled_up: bool
    streak: int
    mastery_level: int = Field(ge=0, le=5)
    new_achievements: list[UnlockedAchievement] = Field(default_factory=list)
    new_belts: list[UnlockedBelt] = Field(default_factory=list)
    already_answered: bool = Field(
        default=False, description="True when this question was answered before; nothing changed"
    )


class LevelProgressResponse(BaseModel):
    current_level: int
    current_level_xp: int
    next_level_xp: int
    progress: float = Field(ge=0, lt=1)


class UserProgressResponse(BaseModel):
    """Profile view of a user's progression."""

    user_id: int
    total_xp: int
    level: int
    xp_progress: LevelProgressResponse
    current_streak: int
    longest_streak: int
    last_played_date: date | None = None
    total_answers: int
    correct_answers: int
    accuracy: float
    total_achievements: int
    total_belts: int


class ChallengeResult(BaseModel):
    """Outcome of completing the daily challenge."""

    challenge_id: int
    completed: bool = True
    score: int
    correct_count: int
    total_questions: int
    accuracy: float = Field(description="Percentage of questions answered correctly")
    bonus_xp_earned: int
    total_xp: int
    level: int
    leveled_up: bool
    new_achievements: list[UnlockedAchievement] = Field(default_factory=list)
    new_belts: list[UnlockedBelt] = Field(default_factory=list)
