"""
Typed event catalogue and the team-addressed event bus.

Usage:
    from matchday.events import EventBus, TeamScored

    bus = EventBus()
    bus.subscribe(65, on_event)                      # every event for team 65
    bus.subscribe(65, on_goal, event_types=[TeamScored])
    await bus.start()                                # consumer for async handlers
"""

from matchday.events.bus import EventBus, Subscription
from matchday.events.types import (
    EVENT_TYPES,
    EVENTS_BY_NAME,
    ExtraTimeStarted,
    HalftimeStarted,
    MatchEvent,
    MatchFinished,
    MatchKickoff,
    MatchOutcome,
    MatchResultChanged,
    MatchStartsSoon,
    SecondHalfStarted,
    TeamConceded,
    TeamDrew,
    TeamLost,
    TeamScored,
    TeamWon,
)

__all__ = [
    "EVENT_TYPES",
    "EVENTS_BY_NAME",
    "EventBus",
    "ExtraTimeStarted",
    "HalftimeStarted",
    "MatchEvent",
    "MatchFinished",
    "MatchKickoff",
    "MatchOutcome",
    "MatchResultChanged",
    "MatchStartsSoon",
    "SecondHalfStarted",
    "Subscription",
    "TeamConceded",
    "TeamDrew",
    "TeamLost",
    "TeamScored",
    "TeamWon",
]
