from trivia.models.base import Base
from trivia.models.user import User
from trivia.models.quiz import Difficulty, QuizCategory, Question, UserAnswer, UserProgress
from trivia.models.gamification import (
    Achievement,
    BeltRarity,
    BeltTier,
    ChampionshipBelt,
    DailyChallenge,
    UserAchievement,
    UserBelt,
    UserDailyChallenge,
)

__all__ = [
    "Base",
    "User",
    "Difficulty",
    "QuizCategory",
    "Question",
    "UserAnswer",
    "UserProgress",
    "Achievement",
    "BeltRarity",
    "BeltTier",
    "ChampionshipBelt",
    "DailyChallenge",
    "UserAchievement",
    "UserBelt",
    "UserDailyChallenge",
]
