"""football-data.org (v4) data provider implementation."""

import asyncio
import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

import httpx

from matchday.config import Settings, get_settings
from matchday.constants import MatchStatus
from matchday.etl.base import DataProvider, MatchData, TeamData, TeamRef
from matchday.etl.competitions import FREE_TIER_COMPETITIONS
from matchday.etl.errors import (
    AuthenticationFailed,
    ConfigurationError,
    RateLimitExceeded,
    TransportError,
    UpstreamError,
)
from matchday.etl.rate_limiter import SlidingWindowRateLimiter
from matchday.telemetry.metrics import record_provider_error, record_provider_request

logger = logging.getLogger(__name__)

SEARCH_MIN_QUERY_LENGTH = 2
SEARCH_MAX_RESULTS = 20


def parse_utc(value: str) -> datetime:
    """Parse an ISO-8601 timestamp ("2026-10-19T19:00:00Z") into aware UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_team_ref(team: dict) -> TeamRef:
    name = team.get("name") or ""
    return TeamRef(
        id=int(team["id"]),
        name=name,
        short_name=team.get("shortName") or name,
    )


def parse_match(raw: dict) -> MatchData:
    """Parse a single /matches entry into MatchData.

    Raises KeyError/ValueError/TypeError on records missing id, status,
    utcDate or team ids, or carrying a status outside MatchStatus.
    """
    score = raw.get("score") or {}
    full_time = score.get("fullTime") or {}
    half_time = score.get("halfTime") or {}
    competition = raw.get("competition") or {}

    return MatchData(
        id=int(raw["id"]),
        status=MatchStatus(raw["status"]),
        kickoff=parse_utc(raw["utcDate"]),
        competition=competition.get("name") or "",
        home_team=_parse_team_ref(raw["homeTeam"]),
        away_team=_parse_team_ref(raw["awayTeam"]),
        home_score=full_time.get("home") or 0,
        away_score=full_time.get("away") or 0,
        half_time_home=half_time.get("home"),
        half_time_away=half_time.get("away"),
        minute=raw.get("minute") or 0,
    )


def _parse_team(team: dict, competition: str = "", competition_code: str = "") -> TeamData:
    running = team.get("runningCompetitions") or []
    if not competition and running:
        competition = running[0].get("name") or ""
        competition_code = running[0].get("code") or ""
    return TeamData(
        id=int(team["id"]),
        name=team.get("name") or "",
        short_name=team.get("shortName"),
        tla=team.get("tla"),
        crest=team.get("crest"),
        competition=competition,
        competition_code=competition_code,
    )


def _relevance(team: TeamData, query: str) -> tuple:
    """Sort key: exact name match, then prefix match, then alphabetical."""
    name = team.name.lower()
    return (name != query, not name.startswith(query), name)


class FootballDataProvider(DataProvider):
    """football-data.org provider with a shared sliding-window rate limit."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        limiter: Optional[SlidingWindowRateLimiter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self._api_key = api_key if api_key is not None else self.settings.FOOTBALL_DATA_API_KEY

        self.client = httpx.AsyncClient(
            base_url=self.settings.FOOTBALL_DATA_BASE_URL,
            headers={"Content-Type": "application/json"},
            timeout=self.settings.API_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.limiter = limiter or SlidingWindowRateLimiter(
            quota=self.settings.API_REQUESTS_PER_MINUTE,
            reserve=self.settings.API_PRIORITY_RESERVE,
            window_seconds=self.settings.API_RATE_WINDOW_SECONDS,
            safety_margin=self.settings.API_RATE_SAFETY_MARGIN_SECONDS,
        )
        self._clock = clock

        # Team directory (read-through, single-flight)
        self._team_cache: Optional[dict[int, TeamData]] = None
        self._team_cache_expires_at: float = 0.0
        self._team_cache_task: Optional[asyncio.Task] = None

    def set_api_key(self, api_key: str) -> None:
        """Replace the credential; the next request picks it up."""
        self._api_key = api_key
        logger.info("API key updated")

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    async def _request(
        self,
        path: str,
        params: Optional[dict] = None,
        high_priority: bool = False,
        endpoint: str = "matches",
    ) -> dict:
        """
        Make a rate-limited request to the API.

        Waits for a slot in the sliding window first (high-priority requests
        may use the reserved allowance), then maps failures to typed errors.

        Args:
            path: API path relative to the base URL.
            params: Query parameters; None values are dropped.
            high_priority: Allowed to use the reserved quota.
            endpoint: Low-cardinality label for telemetry.
        """
        if not self._api_key:
            raise ConfigurationError("API key not configured")

        await self.limiter.acquire(high_priority)

        query = {k: v for k, v in (params or {}).items() if v is not None}
        logger.debug(f"API Request: {path} {query}")
        start_time = time.time()

        try:
            response = await self.client.get(
                path, params=query, headers={"X-Auth-Token": self._api_key}
            )
        except httpx.TransportError as e:
            latency_ms = (time.time() - start_time) * 1000
            record_provider_request(endpoint, 0, latency_ms)
            record_provider_error("transport")
            logger.error(f"Transport error on {path}: {e}")
            raise TransportError(f"Request to {path} failed: {e}", cause=e) from e

        latency_ms = (time.time() - start_time) * 1000
        record_provider_request(endpoint, response.status_code, latency_ms)

        if response.status_code == 429:
            record_provider_error("rate_limit")
            logger.warning(f"Rate limited by API on {path}")
            raise RateLimitExceeded("Rate limit exceeded")

        if response.status_code == 403:
            record_provider_error("auth")
            logger.error(f"API rejected credential on {path}")
            raise AuthenticationFailed("Invalid API key or access denied")

        if not response.is_success:
            record_provider_error(f"http_{response.status_code // 100}xx")
            logger.error(f"API error {response.status_code} on {path}")
            raise UpstreamError(response.status_code, response.text)

        return response.json()

    def _parse_matches(self, data: dict) -> list[MatchData]:
        matches = []
        for raw in data.get("matches") or []:
            try:
                matches.append(parse_match(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping match {raw.get('id')}: {e!r}")
        return matches

    async def test_connection(self) -> dict:
        """Check the key works; returns the competition count."""
        data = await self._request("/competitions", endpoint="competitions")
        return {"success": True, "count": data.get("count")}

    async def get_competitions(self) -> list[dict]:
        """Fetch all competitions the key can see, sorted by name."""
        data = await self._request("/competitions", endpoint="competitions")
        competitions = [
            {
                "id": comp.get("id"),
                "code": comp.get("code"),
                "name": comp.get("name") or "",
                "area": (comp.get("area") or {}).get("name") or "",
                "emblem": comp.get("emblem"),
            }
            for comp in data.get("competitions") or []
        ]
        competitions.sort(key=lambda c: c["name"])
        return competitions

    async def get_matches(
        self,
        date: Optional[date] = None,
        status: Optional[str] = None,
        competitions: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        high_priority: bool = False,
    ) -> list[MatchData]:
        """Fetch matches across all competitions with optional filters."""
        params = {
            "date": date.isoformat() if date else None,
            "status": status,
            "competitions": competitions,
            "dateFrom": date_from.isoformat() if date_from else None,
            "dateTo": date_to.isoformat() if date_to else None,
        }
        data = await self._request("/matches", params, high_priority=high_priority)
        return self._parse_matches(data)

    async def get_today_matches(self, high_priority: bool = False) -> list[MatchData]:
        """
        Fetch ALL matches for today (UTC).

        Uses: GET /matches?date=YYYY-MM-DD (1 single API call shared by every
        tracked team).
        """
        today = datetime.now(timezone.utc).date()
        return await self.get_matches(date=today, high_priority=high_priority)

    async def get_team_matches(
        self,
        team_id: int,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[MatchData]:
        params = {
            "status": status,
            "dateFrom": date_from.isoformat() if date_from else None,
            "dateTo": date_to.isoformat() if date_to else None,
            "limit": limit,
        }
        data = await self._request(f"/teams/{team_id}/matches", params, endpoint="teams/matches")
        return self._parse_matches(data)

    async def get_team(self, team_id: int) -> TeamData:
        data = await self._request(f"/teams/{team_id}", endpoint="teams")
        return _parse_team(data)

    async def get_competition_teams(self, competition_code: str) -> list[dict]:
        data = await self._request(
            f"/competitions/{competition_code}/teams", endpoint="competitions/teams"
        )
        return data.get("teams") or []

    # ── Team directory ───────────────────────────────────────────────────

    async def load_team_cache(self) -> dict[int, TeamData]:
        """
        Return the team directory, loading it at most once per TTL.

        Concurrent callers while a load is in progress await the same load
        instead of issuing their own requests.
        """
        if self._team_cache is not None and self._clock() < self._team_cache_expires_at:
            return self._team_cache

        task = self._team_cache_task
        if task is None:
            task = asyncio.create_task(self._do_load_team_cache())
            self._team_cache_task = task
            task.add_done_callback(self._clear_team_cache_task)
        return await asyncio.shield(task)

    def _clear_team_cache_task(self, task: asyncio.Task) -> None:
        if self._team_cache_task is task:
            self._team_cache_task = None

    async def _do_load_team_cache(self) -> dict[int, TeamData]:
        logger.info("[TEAM_CACHE] Loading team cache from all competitions...")
        cache: dict[int, TeamData] = {}

        for competition in FREE_TIER_COMPETITIONS:
            try:
                teams = await self.get_competition_teams(competition.code)
            except RateLimitExceeded:
                logger.warning("[TEAM_CACHE] Rate limited, using partial cache")
                break
            except (UpstreamError, TransportError) as e:
                logger.error(f"[TEAM_CACHE] Failed to load teams for {competition.code}: {e}")
                continue

            for team in teams:
                try:
                    parsed = _parse_team(team, competition.name, competition.code)
                except (KeyError, TypeError, ValueError):
                    continue
                cache[parsed.id] = parsed
            logger.info(f"[TEAM_CACHE] Loaded {len(teams)} teams from {competition.name}")

        self._team_cache = cache
        self._team_cache_expires_at = self._clock() + self.settings.TEAM_CACHE_TTL_HOURS * 3600
        logger.info(f"[TEAM_CACHE] Team cache loaded: {len(cache)} teams")
        return cache

    async def get_team_from_cache(self, team_id: int) -> Optional[TeamData]:
        cache = await self.load_team_cache()
        return cache.get(team_id)

    async def search_teams(self, query: str) -> list[TeamData]:
        """
        Search teams by name, short name or TLA.

        Tries a single /teams request first and falls back to the cached
        directory when it fails or matches nothing.
        """
        if not query or len(query) < SEARCH_MIN_QUERY_LENGTH:
            return []

        q = query.lower()

        try:
            data = await self._request("/teams", endpoint="teams")
            candidates = []
            for team in data.get("teams") or []:
                try:
                    candidates.append(_parse_team(team))
                except (KeyError, TypeError, ValueError):
                    continue
            direct = [
                t for t in candidates
                if q in t.name.lower()
                or (t.short_name and q in t.short_name.lower())
                or (t.tla and t.tla.lower() == q)
            ]
            if direct:
                direct.sort(key=lambda t: _relevance(t, q))
                return direct[:SEARCH_MAX_RESULTS]
        except (RateLimitExceeded, UpstreamError, TransportError) as e:
            logger.info(f"Direct team search failed: {e}, falling back to cache")

        cache = await self.load_team_cache()
        results = [
            t for t in cache.values()
            if q in t.name.lower()
            or (t.short_name and q in t.short_name.lower())
            or (t.tla and q in t.tla.lower())
        ]
        results.sort(key=lambda t: _relevance(t, q))
        return results[:SEARCH_MAX_RESULTS]

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._team_cache_task is not None:
            self._team_cache_task.cancel()
        await self.client.aclose()


def team_to_dict(team: TeamData) -> dict[str, Any]:
    """Serialize a directory entry for the HTTP surface."""
    return {
        "id": team.id,
        "name": team.name,
        "shortName": team.short_name,
        "tla": team.tla,
        "crest": team.crest,
        "competition": team.competition,
        "competitionCode": team.competition_code,
    }
