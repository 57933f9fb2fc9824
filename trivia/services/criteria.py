"""Unlock criteria for achievements and championship belts.

Criteria are stored as tagged JSON records (``{"type": "level", "value": 10}``)
and parsed into one pydantic model per type. Every model answers ``is_met``
against a read-only ``UserStats`` snapshot. All predicates are ">= threshold"
comparisons, so a criterion never stops being met as the counters grow.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, model_validator

SPEED_DEMON_REQUIRED_ANSWERS = 10
PERFECT_RUN_LENGTH = 10
DEFAULT_ACCURACY_MIN_ANSWERS = 10
DEFAULT_ACCURACY_PERCENT = 80
DEFAULT_MASTERY_LEVEL = 5
DEFAULT_SPEED_SECONDS = 5
DEFAULT_BELT_COUNT = 5


@dataclass(frozen=True)
class CategoryStats:
    """One user's progress in one category."""

    slug: str
    questions_answered: int
    questions_correct: int
    mastery_level: int
    active_questions: int

    @property
    def accuracy(self) -> float:
        """Accuracy as a percentage."""
        if not self.questions_answered:
            return 0.0
        return self.questions_correct / self.questions_answered * 100


@dataclass(frozen=True)
class UserStats:
    """Aggregate stats captured once before an unlock batch runs."""

    total_answers: int = 0
    total_correct: int = 0
    level: int = 1
    current_streak: int = 0
    total_categories: int = 0
    owned_belts: int = 0
    categories: Mapping[str, CategoryStats] = field(default_factory=dict)
    # Newest first, at most PERFECT_RUN_LENGTH entries are needed
    recent_results: tuple[bool, ...] = ()
    # Correct answers with time_taken <= threshold, keyed by threshold seconds
    fast_correct_counts: Mapping[int, int] = field(default_factory=dict)

    @property
    def categories_played(self) -> int:
        return sum(1 for c in self.categories.values() if c.questions_answered > 0)


def _category_slug():
    return Field(validation_alias=AliasChoices("category_slug", "categorySlug"))


class _Criteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    def is_met(self, stats: UserStats) -> bool:
        raise NotImplementedError


class FirstQuizCriteria(_Criteria):
    type: Literal["first_quiz"]

    def is_met(self, stats: UserStats) -> bool:
        return stats.total_answers >= 1


class TotalCorrectCriteria(_Criteria):
    type: Literal["total_correct"]
    value: int = Field(ge=0)

    def is_met(self, stats: UserStats) -> bool:
        return stats.total_correct >= self.value


class TotalAnswersCriteria(_Criteria):
    type: Literal["total_answers"]
    value: int = Field(ge=0)

    def is_met(self, stats: UserStats) -> bool:
        return stats.total_answers >= self.value


class LevelCriteria(_Criteria):
    type: Literal["level"]
    value: int = Field(ge=1)

    def is_met(self, stats: UserStats) -> bool:
        return stats.level >= self.value


class StreakCriteria(_Criteria):
    type: Literal["streak"]
    # Older records put the day count under "streak"; it wins over "value"
    value: int = Field(ge=1, validation_alias=AliasChoices("streak", "value"))

    @model_validator(mode="before")
    @classmethod
    def _blank_streak_falls_back(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and "streak" in data and not data["streak"]:
            return {k: v for k, v in data.items() if k != "streak"}
        return data

    def is_met(self, stats: UserStats) -> bool:
        return stats.current_streak >= self.value


class CategoryCorrectCriteria(_Criteria):
    type: Literal["category_correct"]
    category_slug: str = _category_slug()
    value: int = Field(ge=0)

    def is_met(self, stats: UserStats) -> bool:
        progress = stats.categories.get(self.category_slug)
        return progress is not None and progress.questions_correct >= self.value


class CategoryAccuracyCriteria(_Criteria):
    type: Literal["category_accuracy"]
    category_slug: str = _category_slug()
    accuracy: float = Field(default=DEFAULT_ACCURACY_PERCENT, ge=0, le=100)  # percent
    min_answers: int = Field(default=DEFAULT_ACCURACY_MIN_ANSWERS, ge=1)

    def is_met(self, stats: UserStats) -> bool:
        progress = stats.categories.get(self.category_slug)
        if progress is None or progress.questions_answered < self.min_answers:
            return False
        return progress.accuracy >= self.accuracy


class CategoryMasteryCriteria(_Criteria):
    type: Literal["category_mastery"]
    category_slug: str = _category_slug()
    value: int = Field(default=DEFAULT_MASTERY_LEVEL, ge=0, le=5)

    def is_met(self, stats: UserStats) -> bool:
        progress = stats.categories.get(self.category_slug)
        return progress is not None and progress.mastery_level >= self.value


class AllCategoriesCriteria(_Criteria):
    type: Literal["all_categories"]

    def is_met(self, stats: UserStats) -> bool:
        return stats.total_categories > 0 and stats.categories_played >= stats.total_categories


class SpeedDemonCriteria(_Criteria):
    type: Literal["speed_demon"]
    value: int = Field(default=DEFAULT_SPEED_SECONDS, ge=0)  # max seconds per answer

    def is_met(self, stats: UserStats) -> bool:
        return stats.fast_correct_counts.get(self.value, 0) >= SPEED_DEMON_REQUIRED_ANSWERS


class PerfectQuizCriteria(_Criteria):
    type: Literal["perfect_quiz"]

    def is_met(self, stats: UserStats) -> bool:
        recent = stats.recent_results[:PERFECT_RUN_LENGTH]
        return len(recent) >= PERFECT_RUN_LENGTH and all(recent)


class CategoryCompleteCriteria(_Criteria):
    type: Literal["category_complete"]
    category_slug: str = _category_slug()

    def is_met(self, stats: UserStats) -> bool:
        progress = stats.categories.get(self.category_slug)
        return progress is not None and progress.questions_answered >= progress.active_questions


class TotalBeltsCriteria(_Criteria):
    type: Literal["total_belts"]
    value: int = Field(default=DEFAULT_BELT_COUNT, ge=0)

    def is_met(self, stats: UserStats) -> bool:
        return stats.owned_belts >= self.value


_SHARED_CRITERIA = (
    FirstQuizCriteria,
    TotalCorrectCriteria,
    TotalAnswersCriteria,
    LevelCriteria,
    StreakCriteria,
    CategoryCorrectCriteria,
    CategoryAccuracyCriteria,
    CategoryMasteryCriteria,
    AllCategoriesCriteria,
    SpeedDemonCriteria,
    PerfectQuizCriteria,
)

AchievementCriteria = Annotated[
    Union[_SHARED_CRITERIA],
    Field(discriminator="type"),
]
BeltCriteria = Annotated[
    Union[_SHARED_CRITERIA + (CategoryCompleteCriteria, TotalBeltsCriteria)],
    Field(discriminator="type"),
]

_achievement_adapter: TypeAdapter[AchievementCriteria] = TypeAdapter(AchievementCriteria)
_belt_adapter: TypeAdapter[BeltCriteria] = TypeAdapter(BeltCriteria)


def parse_achievement_criteria(raw: Mapping[str, Any]) -> AchievementCriteria:
    """Parse a stored achievement criteria record.

    Raises pydantic.ValidationError for unknown types or missing fields.
    """
    return _achievement_adapter.validate_python(dict(raw))


def parse_belt_criteria(
    raw: Mapping[str, Any],
    category_slug: str | None = None,
) -> BeltCriteria:
    """Parse a stored belt criteria record.

    Category criteria without their own slug apply to the belt's category.
    """
    data = dict(raw)
    if category_slug and "category_slug" not in data and "categorySlug" not in data:
        data["category_slug"] = category_slug
    return _belt_adapter.validate_python(data)
