"""Data access for football-data.org: provider, rate limiter, typed errors."""

from matchday.etl.base import DataProvider, MatchData, TeamData, TeamRef
from matchday.etl.competitions import COMPETITIONS, FREE_TIER_COMPETITIONS, Competition
from matchday.etl.errors import (
    AuthenticationFailed,
    ConfigurationError,
    FootballDataError,
    RateLimitExceeded,
    TransportError,
    UpstreamError,
)
from matchday.etl.football_data import FootballDataProvider
from matchday.etl.rate_limiter import SlidingWindowRateLimiter

__all__ = [
    "AuthenticationFailed",
    "COMPETITIONS",
    "Competition",
    "ConfigurationError",
    "DataProvider",
    "FREE_TIER_COMPETITIONS",
    "FootballDataError",
    "FootballDataProvider",
    "MatchData",
    "RateLimitExceeded",
    "SlidingWindowRateLimiter",
    "TeamData",
    "TeamRef",
    "TransportError",
    "UpstreamError",
]
