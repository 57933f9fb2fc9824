"""Tests for unlock criteria parsing and evaluation.

Covers:
  - Parsing tagged records, legacy keys and belt-only types
  - Rejecting unknown types and missing thresholds
  - Each predicate at and around its threshold
"""
import pytest
from pydantic import ValidationError

from trivia.services.criteria import (
    AllCategoriesCriteria,
    CategoryAccuracyCriteria,
    CategoryCompleteCriteria,
    CategoryStats,
    LevelCriteria,
    StreakCriteria,
    TotalBeltsCriteria,
    UserStats,
    parse_achievement_criteria,
    parse_belt_criteria,
)


def category(slug="attitude-era", answered=0, correct=0, mastery=0, active=20):
    return CategoryStats(
        slug=slug,
        questions_answered=answered,
        questions_correct=correct,
        mastery_level=mastery,
        active_questions=active,
    )


def stats(**overrides) -> UserStats:
    return UserStats(**overrides)


# =============================================================================
# PARSING
# =============================================================================

class TestParsing:

    def test_level(self):
        criteria = parse_achievement_criteria({"type": "level", "value": 10})
        assert isinstance(criteria, LevelCriteria)
        assert criteria.value == 10

    def test_streak_legacy_key(self):
        criteria = parse_achievement_criteria({"type": "streak", "streak": 7})
        assert isinstance(criteria, StreakCriteria)
        assert criteria.value == 7

    def test_streak_legacy_key_wins_over_value(self):
        criteria = parse_achievement_criteria({"type": "streak", "streak": 7, "value": 3})
        assert criteria.value == 7

    def test_streak_value_key(self):
        assert parse_achievement_criteria({"type": "streak", "value": 3}).value == 3

    def test_streak_null_legacy_key_uses_value(self):
        criteria = parse_achievement_criteria({"type": "streak", "streak": None, "value": 7})
        assert criteria.value == 7
        assert parse_achievement_criteria({"type": "streak", "streak": 0, "value": 3}).value == 3

    def test_camel_case_category_slug(self):
        criteria = parse_achievement_criteria(
            {"type": "category_correct", "categorySlug": "ruthless-aggression", "value": 25}
        )
        assert criteria.category_slug == "ruthless-aggression"

    def test_accuracy_min_answers_defaults_to_ten(self):
        criteria = parse_achievement_criteria(
            {"type": "category_accuracy", "category_slug": "nwo", "accuracy": 90}
        )
        assert isinstance(criteria, CategoryAccuracyCriteria)
        assert criteria.min_answers == 10

    def test_threshold_defaults(self):
        accuracy = parse_achievement_criteria({"type": "category_accuracy", "category_slug": "nwo"})
        mastery = parse_achievement_criteria({"type": "category_mastery", "category_slug": "nwo"})
        speed = parse_achievement_criteria({"type": "speed_demon"})
        belts = parse_belt_criteria({"type": "total_belts"})
        assert accuracy.accuracy == 80
        assert mastery.value == 5
        assert speed.value == 5
        assert belts.value == 5

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_achievement_criteria({"type": "secret_handshake", "value": 1})

    def test_missing_threshold_rejected(self):
        with pytest.raises(ValidationError):
            parse_achievement_criteria({"type": "total_correct"})

    def test_missing_category_rejected(self):
        with pytest.raises(ValidationError):
            parse_achievement_criteria({"type": "category_mastery", "value": 3})

    def test_mastery_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            parse_achievement_criteria(
                {"type": "category_mastery", "category_slug": "nwo", "value": 6}
            )

    def test_belt_only_types_rejected_for_achievements(self):
        with pytest.raises(ValidationError):
            parse_achievement_criteria({"type": "total_belts", "value": 3})
        with pytest.raises(ValidationError):
            parse_achievement_criteria({"type": "category_complete", "category_slug": "nwo"})

    def test_belt_types(self):
        assert isinstance(parse_belt_criteria({"type": "total_belts", "value": 3}), TotalBeltsCriteria)
        criteria = parse_belt_criteria({"type": "category_complete", "category_slug": "nwo"})
        assert isinstance(criteria, CategoryCompleteCriteria)

    def test_belt_inherits_its_category(self):
        criteria = parse_belt_criteria({"type": "category_complete"}, category_slug="nwo")
        assert criteria.category_slug == "nwo"

    def test_belt_own_category_wins(self):
        criteria = parse_belt_criteria(
            {"type": "category_correct", "categorySlug": "wcw", "value": 5},
            category_slug="nwo",
        )
        assert criteria.category_slug == "wcw"

    def test_belt_without_category_needs_slug(self):
        with pytest.raises(ValidationError):
            parse_belt_criteria({"type": "category_complete"})

    def test_criteria_are_immutable(self):
        criteria = parse_achievement_criteria({"type": "level", "value": 10})
        with pytest.raises(ValidationError):
            criteria.value = 1


# =============================================================================
# PREDICATES
# =============================================================================

class TestPredicates:

    def test_first_quiz(self):
        criteria = parse_achievement_criteria({"type": "first_quiz"})
        assert not criteria.is_met(stats())
        assert criteria.is_met(stats(total_answers=1))

    def test_total_correct(self):
        criteria = parse_achievement_criteria({"type": "total_correct", "value": 100})
        assert not criteria.is_met(stats(total_correct=99))
        assert criteria.is_met(stats(total_correct=100))

    def test_total_answers(self):
        criteria = parse_achievement_criteria({"type": "total_answers", "value": 50})
        assert not criteria.is_met(stats(total_answers=49))
        assert criteria.is_met(stats(total_answers=50))

    def test_level(self):
        criteria = parse_achievement_criteria({"type": "level", "value": 5})
        assert not criteria.is_met(stats(level=4))
        assert criteria.is_met(stats(level=5))
        assert criteria.is_met(stats(level=12))

    def test_streak(self):
        criteria = parse_achievement_criteria({"type": "streak", "streak": 7})
        assert not criteria.is_met(stats(current_streak=6))
        assert criteria.is_met(stats(current_streak=7))

    def test_category_correct(self):
        criteria = parse_achievement_criteria(
            {"type": "category_correct", "category_slug": "attitude-era", "value": 10}
        )
        assert not criteria.is_met(stats())
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=12, correct=9)}))
        assert criteria.is_met(stats(categories={"attitude-era": category(answered=12, correct=10)}))

    def test_category_accuracy_needs_min_answers(self):
        criteria = parse_achievement_criteria(
            {"type": "category_accuracy", "category_slug": "attitude-era", "accuracy": 90}
        )
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=9, correct=9)}))
        assert criteria.is_met(stats(categories={"attitude-era": category(answered=10, correct=9)}))
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=10, correct=8)}))

    def test_category_accuracy_custom_min_answers(self):
        criteria = parse_belt_criteria(
            {"type": "category_accuracy", "accuracy": 90, "min_answers": 20},
            category_slug="attitude-era",
        )
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=19, correct=19)}))
        assert criteria.is_met(stats(categories={"attitude-era": category(answered=20, correct=18)}))

    def test_category_mastery(self):
        criteria = parse_achievement_criteria(
            {"type": "category_mastery", "category_slug": "attitude-era", "value": 3}
        )
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=5, mastery=2)}))
        assert criteria.is_met(stats(categories={"attitude-era": category(answered=5, mastery=3)}))

    def test_all_categories(self):
        criteria = AllCategoriesCriteria(type="all_categories")
        played = {
            "a": category("a", answered=1),
            "b": category("b", answered=2),
        }
        assert criteria.is_met(stats(total_categories=2, categories=played))
        assert not criteria.is_met(stats(total_categories=3, categories=played))

    def test_all_categories_needs_at_least_one_category(self):
        criteria = AllCategoriesCriteria(type="all_categories")
        assert not criteria.is_met(stats(total_categories=0))

    def test_speed_demon(self):
        criteria = parse_achievement_criteria({"type": "speed_demon", "value": 5})
        assert not criteria.is_met(stats())
        assert not criteria.is_met(stats(fast_correct_counts={5: 9}))
        assert criteria.is_met(stats(fast_correct_counts={5: 10}))
        assert not criteria.is_met(stats(fast_correct_counts={3: 50}))

    def test_perfect_quiz(self):
        criteria = parse_achievement_criteria({"type": "perfect_quiz"})
        assert criteria.is_met(stats(recent_results=(True,) * 10))
        assert not criteria.is_met(stats(recent_results=(True,) * 9))
        assert not criteria.is_met(stats(recent_results=(True,) * 9 + (False,)))
        assert not criteria.is_met(stats(recent_results=(False,) + (True,) * 9))

    def test_category_complete(self):
        criteria = parse_belt_criteria({"type": "category_complete"}, category_slug="attitude-era")
        assert not criteria.is_met(stats())
        assert not criteria.is_met(stats(categories={"attitude-era": category(answered=19, active=20)}))
        assert criteria.is_met(stats(categories={"attitude-era": category(answered=20, active=20)}))

    def test_total_belts(self):
        criteria = parse_belt_criteria({"type": "total_belts", "value": 3})
        assert not criteria.is_met(stats(owned_belts=2))
        assert criteria.is_met(stats(owned_belts=3))

    def test_met_criteria_stay_met_as_counters_grow(self):
        criteria = [
            parse_achievement_criteria({"type": "total_correct", "value": 10}),
            parse_achievement_criteria({"type": "level", "value": 3}),
            parse_achievement_criteria({"type": "total_answers", "value": 10}),
        ]
        for n in range(10, 40):
            snapshot = stats(total_correct=n, total_answers=n, level=3 + n // 10)
            assert all(c.is_met(snapshot) for c in criteria)
