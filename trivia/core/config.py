from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "Trivia Progression"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://localhost:5432/trivia"

    # Reference timezone for calendar days (streaks, daily challenge, weekly board)
    streak_timezone: str = "UTC"

    # Daily challenge
    daily_challenge_size: int = 10
    daily_challenge_bonus_xp: int = 250

    # Quiz sessions
    max_quiz_questions: int = 20

    # Collection limits
    max_equipped_achievements: int = 3
    max_displayed_belts: int = 3

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "TRIVIA_",
        "extra": "ignore",
    }

    @field_validator("streak_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Reject timezone names zoneinfo cannot resolve."""
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.streak_timezone)


settings = Settings()
