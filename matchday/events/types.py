"""
Typed match events.

Every event is addressed to exactly one team (`team_id`): when a match
produces the same happening for both sides, each side gets its own instance
with side-specific fields (opponent, team_goals, ...). `name` is the stable
wire/trigger name; `tokens()` is the payload without the addressing fields.
"""

from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, ClassVar


@dataclass(frozen=True)
class MatchEvent:
    """Base class: the addressee and the match it concerns."""

    name: ClassVar[str] = "match_event"

    team_id: int
    match_id: int

    def tokens(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("team_id")
        payload.pop("match_id")
        return payload


@dataclass(frozen=True)
class TeamScored(MatchEvent):
    name: ClassVar[str] = "team_scored"

    score: str
    minute: int
    opponent: str
    home_score: int
    away_score: int


@dataclass(frozen=True)
class TeamConceded(MatchEvent):
    name: ClassVar[str] = "team_conceded"

    score: str
    minute: int
    scoring_team: str
    home_score: int
    away_score: int


@dataclass(frozen=True)
class MatchKickoff(MatchEvent):
    name: ClassVar[str] = "match_kickoff"

    opponent: str
    competition: str
    is_home: bool


@dataclass(frozen=True)
class HalftimeStarted(MatchEvent):
    name: ClassVar[str] = "halftime_started"

    halftime_score: str
    opponent: str
    home_score: int
    away_score: int


@dataclass(frozen=True)
class SecondHalfStarted(MatchEvent):
    name: ClassVar[str] = "second_half_started"

    score: str
    opponent: str


@dataclass(frozen=True)
class ExtraTimeStarted(MatchEvent):
    """Part of the catalogue for consumers; the detector never produces it."""

    name: ClassVar[str] = "extra_time_started"

    score: str
    opponent: str
    competition: str


@dataclass(frozen=True)
class MatchFinished(MatchEvent):
    name: ClassVar[str] = "match_finished"

    status: str
    score: str
    home_score: int
    away_score: int


@dataclass(frozen=True)
class MatchOutcome(MatchEvent):
    """Shared shape of team_won / team_lost."""

    final_score: str
    opponent: str
    competition: str
    team_goals: int
    opponent_goals: int


@dataclass(frozen=True)
class TeamWon(MatchOutcome):
    name: ClassVar[str] = "team_won"


@dataclass(frozen=True)
class TeamLost(MatchOutcome):
    name: ClassVar[str] = "team_lost"


@dataclass(frozen=True)
class TeamDrew(MatchEvent):
    name: ClassVar[str] = "team_drew"

    final_score: str
    opponent: str
    competition: str
    goals: int


@dataclass(frozen=True)
class MatchStartsSoon(MatchEvent):
    name: ClassVar[str] = "match_starts_soon"

    opponent: str
    kickoff_time: datetime
    competition: str
    is_home: bool
    minutes: int


@dataclass(frozen=True)
class MatchResultChanged(MatchEvent):
    name: ClassVar[str] = "match_result_changed"

    state: str  # winning / losing / drawing
    score: str
    opponent: str
    minute: int
    team_goals: int
    opponent_goals: int


EVENT_TYPES: tuple[type[MatchEvent], ...] = (
    TeamScored,
    TeamConceded,
    MatchKickoff,
    HalftimeStarted,
    SecondHalfStarted,
    ExtraTimeStarted,
    MatchFinished,
    TeamWon,
    TeamLost,
    TeamDrew,
    MatchStartsSoon,
    MatchResultChanged,
)

EVENTS_BY_NAME: dict[str, type[MatchEvent]] = {cls.name: cls for cls in EVENT_TYPES}


def payload_fields(event_type: type[MatchEvent]) -> list[str]:
    """Payload field names for an event class (addressing fields excluded)."""
    return [f.name for f in fields(event_type) if f.name not in ("team_id", "match_id")]
