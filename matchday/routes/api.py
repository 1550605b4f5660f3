"""HTTP routes: health, metrics, provider checks, team state.

Components are composed in the lifespan (matchday.main) and read from
`request.app.state`: provider, scheduler, trackers.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from matchday.etl.base import MatchData
from matchday.etl.errors import ConfigurationError, FootballDataError
from matchday.etl.football_data import team_to_dict
from matchday.matches.cache import MatchSnapshot
from matchday.telemetry import get_metrics_text

logger = logging.getLogger(__name__)

router = APIRouter(tags=["matchday"])


class HealthResponse(BaseModel):
    status: str
    polling_state: str
    tracked_teams: int


class ApiKeyUpdate(BaseModel):
    api_key: str = Field(..., min_length=1)


def _provider_error(e: FootballDataError) -> HTTPException:
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


def snapshot_to_dict(snapshot: Optional[MatchSnapshot]) -> Optional[dict]:
    if snapshot is None:
        return None
    return {
        "id": snapshot.id,
        "status": snapshot.status.value,
        "kickoff": snapshot.kickoff.isoformat(),
        "competition": snapshot.competition,
        "homeTeam": {"id": snapshot.home_team_id, "name": snapshot.home_team_name},
        "awayTeam": {"id": snapshot.away_team_id, "name": snapshot.away_team_name},
        "score": {"home": snapshot.home_score, "away": snapshot.away_score},
        "minute": snapshot.minute,
    }


def match_to_dict(match: MatchData) -> dict:
    return {
        "id": match.id,
        "status": match.status.value,
        "kickoff": match.kickoff.isoformat(),
        "competition": match.competition,
        "homeTeam": {"id": match.home_team.id, "name": match.home_team.name},
        "awayTeam": {"id": match.away_team.id, "name": match.away_team.name},
        "score": {"home": match.home_score, "away": match.away_score},
    }


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint."""
    scheduler = request.app.state.scheduler
    return HealthResponse(
        status="ok",
        polling_state=scheduler.state.value,
        tracked_teams=len(scheduler.tracked_team_ids),
    )


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus scrape endpoint."""
    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)


@router.get("/api/test")
async def test_connection(request: Request):
    """Check the configured API key against /competitions."""
    try:
        return await request.app.state.provider.test_connection()
    except FootballDataError as e:
        logger.warning(f"API connection test failed: {e}")
        raise _provider_error(e)


@router.get("/api/search")
async def search_teams(request: Request, query: str = Query("")):
    try:
        teams = await request.app.state.provider.search_teams(query)
    except FootballDataError as e:
        raise _provider_error(e)
    return [team_to_dict(team) for team in teams]


@router.get("/api/teams/{team_id}")
async def get_team_state(request: Request, team_id: int):
    """Tracker state plus whatever the poll cache holds for the team today."""
    tracker = request.app.state.trackers.get(team_id)
    if tracker is None:
        raise HTTPException(status_code=404, detail="Team not tracked")

    scheduler = request.app.state.scheduler
    return {
        **tracker.to_dict(),
        "live_match": snapshot_to_dict(scheduler.get_team_live_match(team_id)),
        "match_today": snapshot_to_dict(scheduler.get_team_match_today(team_id)),
    }


@router.get("/api/teams/{team_id}/next-match")
async def get_team_next_match(request: Request, team_id: int):
    try:
        match = await request.app.state.scheduler.get_team_next_match(team_id)
    except FootballDataError as e:
        raise _provider_error(e)
    return {"match": match_to_dict(match) if match else None}


@router.put("/api/settings/api-key")
async def update_api_key(request: Request, body: ApiKeyUpdate):
    """Replace the credential at runtime; the next request uses it."""
    request.app.state.provider.set_api_key(body.api_key)
    return {"success": True}
