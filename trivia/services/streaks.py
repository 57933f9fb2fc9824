"""Daily streak bookkeeping keyed on calendar days in the reference timezone."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo

from trivia.core.config import settings


@dataclass(frozen=True)
class StreakUpdate:
    current_streak: int
    longest_streak: int
    changed: bool


def local_today(tz: tzinfo | None = None, now: datetime | None = None) -> date:
    """Current calendar date in ``tz`` (defaults to the configured timezone)."""
    tz = tz or settings.timezone
    now = now or datetime.now(timezone.utc)
    return now.astimezone(tz).date()


def next_streak(
    last_played: date | None,
    today: date,
    current_streak: int,
    longest_streak: int,
) -> StreakUpdate:
    """Continue, reset or start a streak for a play on ``today``.

    Playing again on the same day (or on a date already in the future, which
    only happens when the reference timezone changes) leaves the streak as is.
    """
    if last_played is not None and last_played >= today:
        return StreakUpdate(current_streak, max(longest_streak, current_streak), False)

    if last_played == today - timedelta(days=1):
        new_streak = current_streak + 1
    else:
        new_streak = 1
    return StreakUpdate(new_streak, max(longest_streak, new_streak), True)
