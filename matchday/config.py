"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # football-data.org (v4)
    FOOTBALL_DATA_API_KEY: str = ""  # Empty = not configured
    FOOTBALL_DATA_BASE_URL: str = "https://api.football-data.org/v4"
    API_TIMEOUT_SECONDS: float = 30.0

    # Rate limiting (free tier: 10 r/m, 2 reserved for live polling)
    API_REQUESTS_PER_MINUTE: int = 10
    API_PRIORITY_RESERVE: int = 2
    API_RATE_WINDOW_SECONDS: float = 60.0
    API_RATE_SAFETY_MARGIN_SECONDS: float = 0.1

    # Reference data
    TEAM_CACHE_TTL_HOURS: int = 24
    NEXT_MATCH_LOOKAHEAD_DAYS: int = 183  # ~6 months, dateTo is required upstream

    # Service
    TRACKED_TEAM_IDS: str = ""  # Comma-separated, e.g. "65,66"
    DISPLAY_TIMEZONE: str = "UTC"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def tracked_team_ids(self) -> list[int]:
        """Parse TRACKED_TEAM_IDS into a list of ints, skipping blanks."""
        ids = []
        for raw in self.TRACKED_TEAM_IDS.split(","):
            raw = raw.strip()
            if raw:
                ids.append(int(raw))
        return ids


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
