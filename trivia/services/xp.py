"""XP curve: per-answer awards and the level thresholds.

XP required to go from level N to N+1 is floor(500 * N^1.5), so every level
costs strictly more than the previous one.
"""

import math
from dataclasses import dataclass

LEVEL_BASE_XP = 500
LEVEL_EXPONENT = 1.5

SPEED_BONUS_PER_SECOND = 2
STREAK_BONUS_PER_DAY = 0.1
MAX_STREAK_MULTIPLIER = 2.0


def xp_for_answer(
    base_xp: int,
    time_limit_seconds: int,
    time_taken_seconds: int,
    current_streak: int,
) -> int:
    """XP for a correct answer: (base + speed bonus) * streak multiplier.

    Callers award 0 for incorrect answers and must reject negative times.
    """
    speed_bonus = max(0, (time_limit_seconds - time_taken_seconds) * SPEED_BONUS_PER_SECOND)
    streak_multiplier = min(MAX_STREAK_MULTIPLIER, 1 + current_streak * STREAK_BONUS_PER_DAY)
    return math.floor((base_xp + speed_bonus) * streak_multiplier)


def xp_to_complete_level(level: int) -> int:
    """XP needed to go from ``level`` to ``level + 1``."""
    return math.floor(LEVEL_BASE_XP * level ** LEVEL_EXPONENT)


def cumulative_xp_for_level(level: int) -> int:
    """Total XP at which ``level`` starts. Level 1 starts at 0."""
    return sum(xp_to_complete_level(i) for i in range(1, level))


def level_for_total_xp(total_xp: int) -> int:
    """Highest level whose starting threshold is <= total_xp."""
    level = 1
    xp_required = 0
    while True:
        next_level_xp = xp_to_complete_level(level)
        if xp_required + next_level_xp > total_xp:
            return level
        xp_required += next_level_xp
        level += 1


@dataclass(frozen=True)
class LevelProgress:
    current_level: int
    current_level_xp: int
    next_level_xp: int
    progress: float


def progress_toward_next_level(total_xp: int) -> LevelProgress:
    """Where ``total_xp`` sits between the current and next level thresholds."""
    current_level = level_for_total_xp(total_xp)
    current_level_xp = cumulative_xp_for_level(current_level)
    next_level_xp = current_level_xp + xp_to_complete_level(current_level)
    progress = (total_xp - current_level_xp) / (next_level_xp - current_level_xp)
    return LevelProgress(
        current_level=current_level,
        current_level_xp=current_level_xp,
        next_level_xp=next_level_xp,
        progress=progress,
    )
