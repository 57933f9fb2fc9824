"""Per-category mastery tiers (0-5 stars)."""

# (tier, min accuracy, min completion rate), checked highest tier first.
# Tier 1 is special-cased below: it needs accuracy OR completion.
MASTERY_TIERS = (
    (5, 0.90, 0.80),
    (4, 0.80, 0.60),
    (3, 0.70, 0.40),
    (2, 0.60, 0.20),
)
TIER_ONE_ACCURACY = 0.50
TIER_ONE_COMPLETION = 0.10
MAX_MASTERY_LEVEL = 5


def mastery_level(
    questions_answered: int,
    questions_correct: int,
    total_questions_in_category: int,
) -> int:
    """Compute the mastery tier from accuracy and completion rate."""
    if questions_answered == 0:
        return 0
    if total_questions_in_category <= 0:
        raise ValueError(
            "total_questions_in_category must be positive when questions have been answered"
        )
    if questions_correct > questions_answered:
        raise ValueError("questions_correct cannot exceed questions_answered")

    accuracy = questions_correct / questions_answered
    completion_rate = questions_answered / total_questions_in_category

    for tier, min_accuracy, min_completion in MASTERY_TIERS:
        if accuracy >= min_accuracy and completion_rate >= min_completion:
            return tier
    if accuracy >= TIER_ONE_ACCURACY or completion_rate >= TIER_ONE_COMPLETION:
        return 1
    return 0
