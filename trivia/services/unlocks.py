"""Batch selection of achievements and belts a user has just earned.

Every candidate in a batch is checked against the same stats snapshot, so the
bonus XP of one unlock never satisfies another criterion in the same batch.
Candidates are checked in (kind, id) order; the order only affects how the
unlocks are listed, never which ones unlock.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Union

from pydantic import ValidationError

from trivia.models.gamification import Achievement, ChampionshipBelt
from trivia.services.criteria import (
    AchievementCriteria,
    BeltCriteria,
    SpeedDemonCriteria,
    UserStats,
    parse_achievement_criteria,
    parse_belt_criteria,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UnlockCandidate:
    kind: Literal["achievement", "belt"]
    definition: Union[Achievement, ChampionshipBelt]
    criteria: Union[AchievementCriteria, BeltCriteria]

    @property
    def xp_reward(self) -> int:
        return self.definition.xp_reward or 0


def achievement_candidates(achievements: Iterable[Achievement]) -> list[UnlockCandidate]:
    """Parse achievement definitions, skipping ones with malformed criteria."""
    candidates = []
    for achievement in achievements:
        try:
            criteria = parse_achievement_criteria(achievement.unlock_criteria or {})
        except ValidationError as exc:
            logger.warning(
                "Skipping achievement %s (%s): invalid unlock criteria: %s",
                achievement.id, achievement.name, exc.errors(include_url=False),
            )
            continue
        candidates.append(UnlockCandidate("achievement", achievement, criteria))
    return candidates


def belt_candidates(belts: Iterable[ChampionshipBelt]) -> list[UnlockCandidate]:
    """Parse belt definitions; category criteria default to the belt's category."""
    candidates = []
    for belt in belts:
        category_slug = belt.category.slug if belt.category is not None else None
        try:
            criteria = parse_belt_criteria(belt.unlock_criteria or {}, category_slug)
        except ValidationError as exc:
            logger.warning(
                "Skipping belt %s (%s): invalid unlock criteria: %s",
                belt.id, belt.name, exc.errors(include_url=False),
            )
            continue
        candidates.append(UnlockCandidate("belt", belt, criteria))
    return candidates


def speed_thresholds(candidates: Iterable[UnlockCandidate]) -> set[int]:
    """Time thresholds the stats snapshot must count fast answers for."""
    return {
        c.criteria.value for c in candidates if isinstance(c.criteria, SpeedDemonCriteria)
    }


def select_unlocks(
    candidates: Iterable[UnlockCandidate],
    stats: UserStats,
) -> list[UnlockCandidate]:
    """Return the candidates whose criteria the snapshot satisfies."""
    ordered = sorted(candidates, key=lambda c: (c.kind, c.definition.id))
    return [c for c in ordered if c.criteria.is_met(stats)]
