"""Shared fixtures: match builders, wire payloads, a fake provider."""

from datetime import date, datetime, timezone
from typing import Optional

import pytest

from matchday.config import Settings
from matchday.constants import MatchStatus
from matchday.etl.base import DataProvider, MatchData, TeamRef

HOME_ID = 65
AWAY_ID = 66
KICKOFF = datetime(2026, 10, 19, 19, 0, tzinfo=timezone.utc)

HOME = TeamRef(id=HOME_ID, name="Manchester City FC", short_name="Man City")
AWAY = TeamRef(id=AWAY_ID, name="Manchester United FC", short_name="Man United")


def build_match(
    match_id: int = 1001,
    status: MatchStatus = MatchStatus.TIMED,
    home_score: int = 0,
    away_score: int = 0,
    kickoff: datetime = KICKOFF,
    home: TeamRef = HOME,
    away: TeamRef = AWAY,
    half_time: Optional[tuple[int, int]] = None,
    minute: int = 0,
    competition: str = "Premier League",
) -> MatchData:
    return MatchData(
        id=match_id,
        status=status,
        kickoff=kickoff,
        competition=competition,
        home_team=home,
        away_team=away,
        home_score=home_score,
        away_score=away_score,
        half_time_home=half_time[0] if half_time else None,
        half_time_away=half_time[1] if half_time else None,
        minute=minute,
    )


def build_payload(
    match_id: int = 1001,
    status: str = "TIMED",
    utc_date: str = "2026-10-19T19:00:00Z",
    home_id: int = HOME_ID,
    away_id: int = AWAY_ID,
    full_time: tuple = (None, None),
    half_time: tuple = (None, None),
    minute: Optional[int] = None,
) -> dict:
    """A /matches entry as football-data.org v4 returns it."""
    payload = {
        "id": match_id,
        "utcDate": utc_date,
        "status": status,
        "competition": {"id": 2021, "name": "Premier League", "code": "PL"},
        "homeTeam": {"id": home_id, "name": "Manchester City FC", "shortName": "Man City", "tla": "MCI"},
        "awayTeam": {"id": away_id, "name": "Manchester United FC", "shortName": "Man United", "tla": "MUN"},
        "score": {
            "fullTime": {"home": full_time[0], "away": full_time[1]},
            "halfTime": {"home": half_time[0], "away": half_time[1]},
        },
    }
    if minute is not None:
        payload["minute"] = minute
    return payload


class FakeProvider(DataProvider):
    """In-memory provider; `today` is what the next poll returns."""

    def __init__(self, today: Optional[list[MatchData]] = None):
        self.today = list(today or [])
        self.team_matches: list[MatchData] = []
        self.error: Optional[Exception] = None
        self.today_calls: list[bool] = []
        self.team_calls: list[dict] = []
        self.closed = False

    async def get_today_matches(self, high_priority: bool = False) -> list[MatchData]:
        self.today_calls.append(high_priority)
        if self.error is not None:
            raise self.error
        return list(self.today)

    async def get_team_matches(
        self,
        team_id: int,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[MatchData]:
        self.team_calls.append(
            {"team_id": team_id, "status": status, "date_from": date_from, "date_to": date_to, "limit": limit}
        )
        if self.error is not None:
            raise self.error
        return [m for m in self.team_matches if m.involves(team_id)]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    return Settings(FOOTBALL_DATA_API_KEY="test-key", DISPLAY_TIMEZONE="Europe/Amsterdam")


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def make_match():
    return build_match


@pytest.fixture
def make_payload():
    return build_payload
