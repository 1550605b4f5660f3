"""Abstract base class and DTOs for football data providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from matchday.constants import MatchStatus


@dataclass(frozen=True)
class TeamRef:
    """One side of a match as the provider reports it."""

    id: int
    name: str
    short_name: str  # Falls back to name when the API omits shortName

    @property
    def display_name(self) -> str:
        return self.short_name or self.name


@dataclass
class TeamData:
    """Data transfer object for the team directory."""

    id: int
    name: str
    short_name: Optional[str]
    tla: Optional[str]
    crest: Optional[str]
    competition: str = ""
    competition_code: str = ""


@dataclass
class MatchData:
    """Data transfer object for a single match."""

    id: int
    status: MatchStatus
    kickoff: datetime  # Timezone-aware UTC
    competition: str
    home_team: TeamRef
    away_team: TeamRef
    home_score: int = 0  # score.fullTime, 0 when not yet known
    away_score: int = 0
    # score.halfTime stays None until the API reports it
    half_time_home: Optional[int] = None
    half_time_away: Optional[int] = None
    minute: int = 0

    def involves(self, team_id: int) -> bool:
        return team_id in (self.home_team.id, self.away_team.id)

    def is_home(self, team_id: int) -> bool:
        return self.home_team.id == team_id

    def opponent_of(self, team_id: int) -> TeamRef:
        return self.away_team if self.is_home(team_id) else self.home_team

    @property
    def score_line(self) -> str:
        return f"{self.home_score}-{self.away_score}"


class DataProvider(ABC):
    """Abstract base class for football data providers."""

    @abstractmethod
    async def get_today_matches(self, high_priority: bool = False) -> list[MatchData]:
        """
        Fetch every match scheduled for today (UTC) in one request.

        Args:
            high_priority: Allowed to use the reserved part of the rate quota.

        Returns:
            List of MatchData objects.
        """
        pass

    @abstractmethod
    async def get_team_matches(
        self,
        team_id: int,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[MatchData]:
        """
        Fetch matches for one team.

        Args:
            team_id: The team ID.
            status: Comma-separated status filter, e.g. "SCHEDULED,TIMED".
            date_from: Optional start date filter.
            date_to: Optional end date filter.
            limit: Optional maximum number of matches.

        Returns:
            List of MatchData objects.
        """
        pass

    async def get_team_live_matches(self, team_id: int) -> list[MatchData]:
        """Fetch the team's live match (IN_PLAY or PAUSED), if any."""
        return await self.get_team_matches(team_id, status="IN_PLAY,PAUSED", limit=1)

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
