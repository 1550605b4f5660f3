"""matchday service: live match notifications over football-data.org."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from matchday import __version__
from matchday.config import get_settings
from matchday.etl.football_data import FootballDataProvider
from matchday.events.bus import EventBus
from matchday.routes.api import router as api_router
from matchday.scheduler import MatchScheduler
from matchday.teams.tracker import TeamTracker

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def log_notifier(trigger: str, tokens: dict[str, Any], state: dict[str, str]) -> None:
    """Default trigger sink: write the trigger to the log."""
    suffix = f" state={state}" if state else ""
    logger.info(f"[TRIGGER] {trigger} {tokens}{suffix}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting matchday...")

    provider = FootballDataProvider(settings=settings)
    bus = EventBus()
    scheduler = MatchScheduler(provider, bus, settings=settings)

    if not provider.has_api_key:
        logger.warning("FOOTBALL_DATA_API_KEY not set, polling will fail until a key is configured")

    await bus.start()
    scheduler.start()

    trackers: dict[int, TeamTracker] = {}
    for team_id in settings.tracked_team_ids():
        tracker = TeamTracker(team_id, scheduler, bus, notifier=log_notifier, settings=settings)
        await tracker.start()
        trackers[team_id] = tracker

    app.state.provider = provider
    app.state.bus = bus
    app.state.scheduler = scheduler
    app.state.trackers = trackers
    logger.info(f"Startup complete, tracking {len(trackers)} teams")

    yield

    # Shutdown
    logger.info("Shutting down...")
    for tracker in trackers.values():
        await tracker.close()
    await scheduler.stop()
    await bus.stop()
    await provider.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="matchday",
    description="Live match events for followed football teams",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(api_router)
