"""Gamified trivia progression: XP, levels, streaks, mastery and unlocks."""

__version__ = "0.1.0"
