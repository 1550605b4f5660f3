"""
TeamTracker: the reference observer for one team.

Registers with the MatchScheduler, listens on the EventBus for its team id,
keeps a small visible state (match_status / score / next_match) and turns
every event into a named trigger handed to an async notifier:

    await notifier(trigger, tokens, state)

`state` is only filled for match_starts_soon ({"minutes": "30"}) so that a
consumer can filter on the threshold.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from matchday.config import Settings, get_settings
from matchday.constants import (
    PROBABLY_LIVE_WINDOW_MINUTES,
    MatchStatus,
    ResultState,
    TeamMatchStatus,
)
from matchday.etl.base import DataProvider, MatchData
from matchday.events.bus import EventBus, Subscription
from matchday.events.types import (
    HalftimeStarted,
    MatchEvent,
    MatchFinished,
    MatchKickoff,
    MatchStartsSoon,
    SecondHalfStarted,
    TeamConceded,
    TeamScored,
)
from matchday.matches.detector import result_state
from matchday.scheduler import MatchScheduler

logger = logging.getLogger(__name__)

Notifier = Callable[[str, dict[str, Any], dict[str, str]], Awaitable[None]]

NEXT_MATCH_REFRESH_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_next_match(match: MatchData, team_id: int, tz: ZoneInfo) -> str:
    """'<opponent> (H|A) - Mon 21 Oct 20:00' in the display timezone."""
    local = match.kickoff.astimezone(tz)
    venue = "(H)" if match.is_home(team_id) else "(A)"
    opponent = match.opponent_of(team_id).display_name
    return f"{opponent} {venue} - {local:%a} {local.day} {local:%b %H:%M}"


class TeamTracker:
    """Visible state and triggers for a single team."""

    def __init__(
        self,
        team_id: int,
        scheduler: MatchScheduler,
        bus: EventBus,
        notifier: Notifier,
        provider: Optional[DataProvider] = None,
        team_name: Optional[str] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
        refresh_delay: float = NEXT_MATCH_REFRESH_SECONDS,
    ):
        self.team_id = int(team_id)
        self.team_name = team_name or str(team_id)
        self.scheduler = scheduler
        self.bus = bus
        self.notifier = notifier
        self.provider = provider or scheduler.provider
        self.settings = settings or get_settings()
        self.timezone = ZoneInfo(self.settings.DISPLAY_TIMEZONE)
        self._clock = clock
        self.refresh_delay = refresh_delay

        self.match_status = TeamMatchStatus.IDLE
        self.score = "-"
        self.next_match = "-"

        self._subscription: Optional[Subscription] = None
        self._refresh_handle: Optional[asyncio.TimerHandle] = None
        self._refresh_task: Optional[asyncio.Task] = None

        # Events that also move the visible state
        self._state_updates: dict[type[MatchEvent], Callable[[Any], None]] = {
            TeamScored: self._on_score,
            TeamConceded: self._on_score,
            MatchKickoff: self._on_kickoff,
            HalftimeStarted: self._on_halftime,
            SecondHalfStarted: self._on_second_half,
            MatchFinished: self._on_finished,
            MatchStartsSoon: self._on_starts_soon,
        }

    async def start(self) -> None:
        """Register, subscribe, restore live state and load the next match."""
        self.scheduler.register(self.team_id, self)
        self._subscription = self.bus.subscribe(self.team_id, self.handle_event)
        self.match_status = TeamMatchStatus.IDLE
        self.score = "-"

        await self.restore_live_state()
        await self.update_next_match()
        logger.info(f"[TRACKER] Initialized tracker for {self.team_name} ({self.team_id})")

    async def close(self) -> None:
        """Unregister from the scheduler and the bus."""
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
            self._refresh_handle = None
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        if self._subscription is not None:
            self.bus.unsubscribe(self._subscription)
            self._subscription = None
        self.scheduler.unregister(self.team_id, self)
        logger.info(f"[TRACKER] Closed tracker for {self.team_name} ({self.team_id})")

    # ── Startup ──────────────────────────────────────────────────────────

    async def restore_live_state(self) -> None:
        """Pick up a match already in progress. Errors are logged only."""
        try:
            live = await self.provider.get_team_live_matches(self.team_id)
        except Exception as e:
            logger.error(f"[TRACKER] Error checking live state for team {self.team_id}: {e}")
            return

        if not live:
            logger.info(f"[TRACKER] No live matches found for team {self.team_id}")
            return

        match = live[0]
        if match.status is MatchStatus.PAUSED:
            self.match_status = TeamMatchStatus.HALFTIME
        else:
            self.match_status = TeamMatchStatus.LIVE
        self.score = match.score_line
        logger.info(
            f"[TRACKER] Restored live state: {match.home_team.name} vs {match.away_team.name} "
            f"({match.status.value}), score: {self.score}"
        )

    async def update_next_match(self) -> None:
        try:
            match = await self.scheduler.get_team_next_match(self.team_id)
        except Exception as e:
            logger.error(f"[TRACKER] Error updating next match for team {self.team_id}: {e}")
            return

        if match is None:
            self.next_match = "-"
        else:
            self.next_match = format_next_match(match, self.team_id, self.timezone)
        logger.info(f"[TRACKER] Next match for team {self.team_id}: {self.next_match}")

    # ── Events ───────────────────────────────────────────────────────────

    async def handle_event(self, event: MatchEvent) -> None:
        """Bus handler: update visible state, then fire the trigger."""
        if event.team_id != self.team_id:
            return

        update = self._state_updates.get(type(event))
        if update is not None:
            update(event)

        tokens = event.tokens()
        state: dict[str, str] = {}
        if isinstance(event, MatchStartsSoon):
            state = {"minutes": str(tokens.pop("minutes"))}
            tokens["kickoff_time"] = f"{event.kickoff_time.astimezone(self.timezone):%H:%M}"

        await self._trigger(event.name, tokens, state)

    async def _trigger(self, trigger: str, tokens: dict[str, Any], state: dict[str, str]) -> None:
        logger.info(f"[TRACKER] Triggering {trigger} for team {self.team_id}: {tokens}")
        try:
            await self.notifier(trigger, tokens, state)
        except Exception as e:
            logger.error(f"[TRACKER] Error triggering {trigger} for team {self.team_id}: {e}")

    def _on_score(self, event) -> None:
        self.score = event.score

    def _on_kickoff(self, event: MatchKickoff) -> None:
        self.match_status = TeamMatchStatus.LIVE
        self.score = "0-0"

    def _on_halftime(self, event: HalftimeStarted) -> None:
        self.match_status = TeamMatchStatus.HALFTIME

    def _on_second_half(self, event: SecondHalfStarted) -> None:
        self.match_status = TeamMatchStatus.LIVE

    def _on_starts_soon(self, event: MatchStartsSoon) -> None:
        self.match_status = TeamMatchStatus.SCHEDULED

    def _on_finished(self, event: MatchFinished) -> None:
        self.match_status = TeamMatchStatus.FINISHED
        self.score = event.score
        self._schedule_next_match_refresh()

    def _schedule_next_match_refresh(self) -> None:
        if self._refresh_handle is not None:
            self._refresh_handle.cancel()
        loop = asyncio.get_running_loop()
        self._refresh_handle = loop.call_later(self.refresh_delay, self._refresh_next_match)

    def _refresh_next_match(self) -> None:
        self._refresh_handle = None
        self._refresh_task = asyncio.create_task(self.update_next_match())

    # ── Conditions ───────────────────────────────────────────────────────

    def current_result(self) -> Optional[ResultState]:
        """
        Standing in the team's live (or probably live) match, None otherwise.

        A match counts when it is cached as IN_PLAY/PAUSED, or when today's
        cached match kicked off 0-120 minutes ago whatever the API says.
        """
        live = self.scheduler.get_team_live_match(self.team_id)
        snapshot = live or self.scheduler.get_team_match_today(self.team_id)
        if snapshot is None:
            return None

        if live is None:
            minutes_since_kickoff = (self._clock() - snapshot.kickoff).total_seconds() / 60
            if not 0 < minutes_since_kickoff < PROBABLY_LIVE_WINDOW_MINUTES:
                return None

        if snapshot.home_team_id == self.team_id:
            return result_state(snapshot.home_score, snapshot.away_score)
        return result_state(snapshot.away_score, snapshot.home_score)

    def is_winning(self) -> bool:
        return self.current_result() is ResultState.WINNING

    def is_losing(self) -> bool:
        return self.current_result() is ResultState.LOSING

    def is_drawing(self) -> bool:
        return self.current_result() is ResultState.DRAWING

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "match_status": self.match_status.value,
            "score": self.score,
            "next_match": self.next_match,
            "is_winning": self.is_winning(),
            "is_losing": self.is_losing(),
            "is_drawing": self.is_drawing(),
        }
