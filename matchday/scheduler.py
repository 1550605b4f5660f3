"""
Adaptive match polling.

One MatchScheduler polls football-data.org for every tracked team at once
and re-arms itself with a delay chosen from what it is watching:

    LIVE        30s   a match is IN_PLAY, or should be (kickoff 0-120 min ago
                      but the API still says SCHEDULED/TIMED)
    PAUSED      2min  a match is at halftime
    POST_MATCH  5min  a match finished and its estimated end is < 15 min ago
    PRE_MATCH   5min  a match kicks off within 2 hours
    IDLE        15min nothing of the above

Cycle: fetch today's matches (one request, high priority while LIVE) ->
keep matches of tracked teams -> diff against the cache and publish ->
starts-soon thresholds -> evict stale entries -> reclassify -> re-arm.

Scheduling is a single APScheduler date job re-armed at the end of each
cycle, so cycles never overlap. A failed cycle is logged and retried after
60s with the polling state left as it was.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Hashable, Iterable, Optional

from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from matchday.config import Settings, get_settings
from matchday.constants import (
    COMPLETED_STATUSES,
    ESTIMATED_MATCH_DURATION_MINUTES,
    POLL_RETRY_SECONDS,
    POLLING_INTERVALS,
    POST_MATCH_WINDOW_MINUTES,
    PRE_MATCH_WINDOW_MINUTES,
    PROBABLY_LIVE_WINDOW_MINUTES,
    UPCOMING_STATUSES,
    MatchStatus,
    PollingState,
)
from matchday.etl.base import DataProvider, MatchData
from matchday.events.bus import EventBus
from matchday.events.types import MatchEvent
from matchday.matches.cache import MatchSnapshot, SnapshotCache, StartsSoonTracker
from matchday.matches.detector import detect_match_events, detect_starts_soon
from matchday.telemetry.metrics import record_poll_cycle, set_polling_state

logger = logging.getLogger(__name__)

POLL_JOB_ID = "match_poll"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_polling_state(matches: Iterable[MatchData], now: datetime) -> PollingState:
    """Pick the highest-priority state any of the given matches calls for."""
    matches = list(matches)

    def minutes_since_kickoff(m: MatchData) -> float:
        return (now - m.kickoff).total_seconds() / 60

    if any(m.status is MatchStatus.IN_PLAY for m in matches):
        return PollingState.LIVE

    # Kickoff passed but the API has not flipped the status yet
    probably_live = [
        m for m in matches
        if m.status in UPCOMING_STATUSES
        and 0 < minutes_since_kickoff(m) < PROBABLY_LIVE_WINDOW_MINUTES
    ]
    if probably_live:
        logger.info(
            f"[POLL] Match probably live (API delayed), using LIVE polling: "
            f"{[m.id for m in probably_live]}"
        )
        return PollingState.LIVE

    if any(m.status is MatchStatus.PAUSED for m in matches):
        return PollingState.PAUSED

    def recently_finished(m: MatchData) -> bool:
        if m.status not in COMPLETED_STATUSES:
            return False
        minutes_since_end = minutes_since_kickoff(m) - ESTIMATED_MATCH_DURATION_MINUTES
        return 0 <= minutes_since_end < POST_MATCH_WINDOW_MINUTES

    if any(recently_finished(m) for m in matches):
        return PollingState.POST_MATCH

    if any(
        m.status in UPCOMING_STATUSES
        and 0 < -minutes_since_kickoff(m) <= PRE_MATCH_WINDOW_MINUTES
        for m in matches
    ):
        return PollingState.PRE_MATCH

    return PollingState.IDLE


class MatchScheduler:
    """
    Owns the tracked-team registry, the match cache and the polling loop.

    Teams are ref-counted by observer: a team is tracked while at least one
    observer is registered for it. Polling runs while the scheduler is
    started and at least one team is tracked.
    """

    def __init__(
        self,
        provider: DataProvider,
        bus: EventBus,
        scheduler: Optional[AsyncIOScheduler] = None,
        clock: Callable[[], datetime] = _utcnow,
        settings: Optional[Settings] = None,
    ):
        self.provider = provider
        self.bus = bus
        self.settings = settings or get_settings()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._owns_scheduler = scheduler is None
        self._clock = clock

        self._teams: dict[int, set[Hashable]] = {}
        self.cache = SnapshotCache()
        self.starts_soon = StartsSoonTracker()
        self.state = PollingState.IDLE

        self._running = False
        self._job: Optional[Job] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self.next_poll_delay: Optional[float] = None
        self.last_poll_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    # ── Registry ─────────────────────────────────────────────────────────

    @property
    def tracked_team_ids(self) -> list[int]:
        return list(self._teams)

    def is_tracked(self, team_id: int) -> bool:
        return team_id in self._teams

    def observer_count(self, team_id: int) -> int:
        return len(self._teams.get(team_id, ()))

    def register(self, team_id: int, observer: Hashable) -> None:
        """Track `team_id` on behalf of `observer`; starts polling for the first team."""
        first_team = not self._teams
        self._teams.setdefault(team_id, set()).add(observer)
        logger.info(f"Registered observer for team {team_id}, now tracking {len(self._teams)} teams")

        if first_team and self._running:
            self._start_polling()

    def unregister(self, team_id: int, observer: Hashable) -> None:
        """Drop one observer; the team is untracked when its last observer leaves."""
        observers = self._teams.get(team_id)
        if observers is not None:
            observers.discard(observer)
            if not observers:
                del self._teams[team_id]
        logger.info(f"Unregistered observer for team {team_id}, now tracking {len(self._teams)} teams")

        if not self._teams:
            self._stop_polling()

    # ── Lifecycle ────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_polling(self) -> bool:
        return self._job is not None or self._cycle_task is not None

    def start(self) -> None:
        """Enable polling; the first cycle runs immediately if teams are tracked."""
        if self._running:
            return
        self._running = True
        if self._owns_scheduler and not self._scheduler.running:
            self._scheduler.start()
        if self._teams:
            self._start_polling()

    async def stop(self) -> None:
        """Disable polling, cancel the pending timer and any in-flight fetch."""
        self._running = False
        self._stop_polling()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def _start_polling(self) -> None:
        if self.is_polling:
            return
        logger.info("Starting match polling")
        self._arm(0)

    def _stop_polling(self) -> None:
        self._disarm()
        task = self._cycle_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            # Only the fetch awaits, so this lands before any event is published.
            task.cancel()
            self._cycle_task = None
        logger.info("Stopped match polling")

    def _arm(self, delay: float) -> None:
        """Schedule the next cycle, replacing any pending one."""
        self._disarm()
        self.next_poll_delay = delay
        run_date = self._clock() + timedelta(seconds=delay)
        self._job = self._scheduler.add_job(
            self._run_scheduled_poll,
            trigger=DateTrigger(run_date=run_date),
            id=POLL_JOB_ID,
            replace_existing=True,
            misfire_grace_time=None,
            max_instances=1,
        )
        logger.info(f"Next poll in {delay}s (state: {self.state.value})")

    def _disarm(self) -> None:
        job, self._job = self._job, None
        if job is None:
            return
        try:
            job.remove()
        except JobLookupError:
            pass  # Already fired

    async def _run_scheduled_poll(self) -> None:
        self._job = None
        self._cycle_task = asyncio.current_task()
        try:
            await self.poll()
        except asyncio.CancelledError:
            logger.info("[POLL] In-flight poll cancelled")
        finally:
            if self._cycle_task is asyncio.current_task():
                self._cycle_task = None

    # ── Cycle ────────────────────────────────────────────────────────────

    async def poll(self) -> None:
        """Run one cycle and re-arm exactly once, whatever the outcome."""
        team_ids = set(self._teams)
        logger.info(f"[POLL] Starting poll for {len(team_ids)} tracked teams: {sorted(team_ids)}")

        if not team_ids:
            logger.info("[POLL] No teams to track, skipping poll")
            record_poll_cycle("skipped")
            self._arm(POLLING_INTERVALS[PollingState.IDLE])
            return

        try:
            await self._cycle(team_ids)
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"[POLL] Polling error: {e}")
            record_poll_cycle("error")
            if self._teams:
                self._arm(POLL_RETRY_SECONDS)
            return

        self.last_error = None
        record_poll_cycle("ok")
        if not self._teams:
            logger.info("[POLL] All teams unregistered during poll, not re-arming")
            return
        self._arm(POLLING_INTERVALS[self.state])

    async def _cycle(self, team_ids: set[int]) -> None:
        high_priority = self.state is PollingState.LIVE
        matches = await self.provider.get_today_matches(high_priority=high_priority)
        now = self._clock()
        self.last_poll_at = now
        logger.info(f"[POLL] Fetched {len(matches)} matches for today")

        relevant = [
            m for m in matches
            if m.home_team.id in team_ids or m.away_team.id in team_ids
        ]
        logger.info(f"[POLL] Found {len(relevant)} relevant matches for tracked teams")
        for m in relevant:
            logger.debug(
                f"[POLL]   - {m.home_team.name} vs {m.away_team.name} "
                f"({m.status.value}) {m.home_score}-{m.away_score}"
            )

        self._process_match_updates(relevant)
        self._check_starts_soon(relevant, now)
        self._cleanup(relevant, now)
        self._set_state(classify_polling_state(relevant, now))

    def _process_match_updates(self, matches: list[MatchData]) -> None:
        for match in matches:
            detection = detect_match_events(match, self.cache.get(match.id))
            self._publish(detection.events)
            self.cache.commit(detection.snapshot)

    def _check_starts_soon(self, matches: list[MatchData], now: datetime) -> None:
        for trigger in detect_starts_soon(matches, self.starts_soon.has_fired, now):
            logger.info(f"[POLL] Triggering match_starts_soon ({trigger.threshold} min) for match {trigger.match_id}")
            self._publish(trigger.events)
            self.starts_soon.mark(trigger.match_id, trigger.threshold)

    def _cleanup(self, matches: list[MatchData], now: datetime) -> None:
        listed = [m.id for m in matches]
        self.starts_soon.retain(listed)
        self.cache.evict_finished(now, still_listed=listed)

    def _set_state(self, new_state: PollingState) -> None:
        if new_state is self.state:
            return
        logger.info(f"Polling state changed: {self.state.value} -> {new_state.value}")
        self.state = new_state
        set_polling_state(new_state.value, [s.value for s in PollingState])

    def _publish(self, events: list[MatchEvent]) -> None:
        """Deliver only to teams that are tracked right now."""
        for event in events:
            if event.team_id in self._teams:
                self.bus.publish(event)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_team_live_match(self, team_id: int) -> Optional[MatchSnapshot]:
        """Cached IN_PLAY/PAUSED match for the team. No network call."""
        return self.cache.live_for_team(team_id)

    def get_team_match_today(self, team_id: int) -> Optional[MatchSnapshot]:
        """Any cached match for the team. No network call."""
        return self.cache.today_for_team(team_id)

    async def get_team_next_match(self, team_id: int) -> Optional[MatchData]:
        """
        Fetch the team's next SCHEDULED/TIMED match.

        Errors propagate to the caller only; the polling loop is unaffected.
        """
        today = self._clock().date()
        date_to = today + timedelta(days=self.settings.NEXT_MATCH_LOOKAHEAD_DAYS)
        logger.info(f"get_team_next_match: team_id={team_id}, date_from={today}, date_to={date_to}")

        matches = await self.provider.get_team_matches(
            team_id,
            status="SCHEDULED,TIMED",
            date_from=today,
            date_to=date_to,
        )
        if not matches:
            return None
        return min(matches, key=lambda m: m.kickoff)

    def status(self) -> dict:
        """Snapshot of the loop for health endpoints."""
        return {
            "running": self._running,
            "polling": self.is_polling,
            "polling_state": self.state.value,
            "tracked_teams": sorted(self._teams),
            "cached_matches": len(self.cache),
            "next_poll_delay": self.next_poll_delay,
            "last_poll_at": self.last_poll_at.isoformat() if self.last_poll_at else None,
            "last_error": self.last_error,
        }
