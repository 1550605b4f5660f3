"""
Match diffing: derive discrete events from two successive observations.

Everything here is pure. The scheduler owns the cache; these functions take
the cached snapshot (or None) plus the fresh MatchData and return the events
to publish together with the snapshot to commit afterwards. Publishing and
committing per match happen back to back, so a failure before publishing
leaves the cache untouched for that match.

Rules:
1. First sighting: cache it. If it is already IN_PLAY / PAUSED / FINISHED /
   AWARDED, emit kickoff / halftime / finished+result right away (catch-up
   for matches first seen mid-way, e.g. after a restart).
2. Status change, on the new status:
   - IN_PLAY from SCHEDULED/TIMED -> kickoff; from PAUSED -> second half
   - PAUSED -> halftime
   - FINISHED/AWARDED -> match finished + won/lost/drew
   each guarded by its one-shot marker.
3. Score change while IN_PLAY or PAUSED: scored/conceded per side whose score
   went up, and result-changed per side whose winning/losing/drawing state
   differs from before.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from matchday.constants import (
    COMPLETED_STATUSES,
    LIVE_STATUSES,
    MATCH_SOON_THRESHOLDS,
    UPCOMING_STATUSES,
    MatchStatus,
    ResultState,
)
from matchday.etl.base import MatchData, TeamRef
from matchday.events.types import (
    HalftimeStarted,
    MatchEvent,
    MatchFinished,
    MatchKickoff,
    MatchResultChanged,
    MatchStartsSoon,
    SecondHalfStarted,
    TeamConceded,
    TeamDrew,
    TeamLost,
    TeamScored,
    TeamWon,
)
from matchday.matches.cache import EmissionMarkers, MatchSnapshot


@dataclass(frozen=True)
class Detection:
    """Events to publish for one match, and the snapshot to commit after."""

    events: list[MatchEvent]
    snapshot: MatchSnapshot


@dataclass(frozen=True)
class StartsSoonTrigger:
    """A (match, threshold) pair that is due, with the events it produces."""

    match_id: int
    threshold: int
    events: list[MatchEvent] = field(default_factory=list)


def result_state(team_goals: int, opponent_goals: int) -> ResultState:
    if team_goals > opponent_goals:
        return ResultState.WINNING
    if team_goals < opponent_goals:
        return ResultState.LOSING
    return ResultState.DRAWING


def _sides(match: MatchData) -> list[tuple[TeamRef, TeamRef, bool]]:
    """(team, opponent, is_home) for home then away."""
    return [
        (match.home_team, match.away_team, True),
        (match.away_team, match.home_team, False),
    ]


# ── Event builders ───────────────────────────────────────────────────────────

def _kickoff_events(match: MatchData) -> list[MatchEvent]:
    return [
        MatchKickoff(
            team_id=team.id,
            match_id=match.id,
            opponent=opponent.display_name,
            competition=match.competition,
            is_home=is_home,
        )
        for team, opponent, is_home in _sides(match)
    ]


def _halftime_events(match: MatchData) -> list[MatchEvent]:
    home = match.half_time_home if match.half_time_home is not None else match.home_score
    away = match.half_time_away if match.half_time_away is not None else match.away_score
    return [
        HalftimeStarted(
            team_id=team.id,
            match_id=match.id,
            halftime_score=f"{home}-{away}",
            opponent=opponent.display_name,
            home_score=home,
            away_score=away,
        )
        for team, opponent, _ in _sides(match)
    ]


def _second_half_events(match: MatchData) -> list[MatchEvent]:
    return [
        SecondHalfStarted(
            team_id=team.id,
            match_id=match.id,
            score=match.score_line,
            opponent=opponent.display_name,
        )
        for team, opponent, _ in _sides(match)
    ]


def _outcome(
    outcome: type, match: MatchData, team: TeamRef, opponent: TeamRef, is_home: bool
) -> MatchEvent:
    team_goals = match.home_score if is_home else match.away_score
    opponent_goals = match.away_score if is_home else match.home_score
    return outcome(
        team_id=team.id,
        match_id=match.id,
        final_score=match.score_line,
        opponent=opponent.display_name,
        competition=match.competition,
        team_goals=team_goals,
        opponent_goals=opponent_goals,
    )


def _finished_events(match: MatchData) -> list[MatchEvent]:
    """match_finished to both sides, then won+lost or drew for both."""
    sides = _sides(match)
    events: list[MatchEvent] = [
        MatchFinished(
            team_id=team.id,
            match_id=match.id,
            status=match.status.value,
            score=match.score_line,
            home_score=match.home_score,
            away_score=match.away_score,
        )
        for team, _, _ in sides
    ]

    if match.home_score == match.away_score:
        events.extend(
            TeamDrew(
                team_id=team.id,
                match_id=match.id,
                final_score=match.score_line,
                opponent=opponent.display_name,
                competition=match.competition,
                goals=match.home_score,
            )
            for team, opponent, _ in sides
        )
        return events

    winner, loser = sides if match.home_score > match.away_score else reversed(sides)
    events.append(_outcome(TeamWon, match, *winner))
    events.append(_outcome(TeamLost, match, *loser))
    return events


def _score_change_events(match: MatchData, cached: MatchSnapshot) -> list[MatchEvent]:
    events: list[MatchEvent] = []
    score = match.score_line
    previous = {match.home_team.id: cached.home_score, match.away_team.id: cached.away_score}
    current = {match.home_team.id: match.home_score, match.away_team.id: match.away_score}

    for team, opponent, _ in _sides(match):
        if current[team.id] > previous[team.id]:
            events.append(TeamScored(
                team_id=team.id,
                match_id=match.id,
                score=score,
                minute=match.minute,
                opponent=opponent.display_name,
                home_score=match.home_score,
                away_score=match.away_score,
            ))
            events.append(TeamConceded(
                team_id=opponent.id,
                match_id=match.id,
                score=score,
                minute=match.minute,
                scoring_team=team.display_name,
                home_score=match.home_score,
                away_score=match.away_score,
            ))

    for team, opponent, _ in _sides(match):
        old_state = result_state(previous[team.id], previous[opponent.id])
        new_state = result_state(current[team.id], current[opponent.id])
        if old_state is new_state:
            continue
        events.append(MatchResultChanged(
            team_id=team.id,
            match_id=match.id,
            state=new_state.value,
            score=score,
            opponent=opponent.display_name,
            minute=match.minute,
            team_goals=current[team.id],
            opponent_goals=current[opponent.id],
        ))

    return events


# ── Detection ────────────────────────────────────────────────────────────────

def _first_sighting(match: MatchData) -> Detection:
    markers = EmissionMarkers()
    events: list[MatchEvent] = []

    if match.status is MatchStatus.IN_PLAY:
        events = _kickoff_events(match)
        markers = markers.latch("kickoff")
    elif match.status is MatchStatus.PAUSED:
        events = _halftime_events(match)
        markers = markers.latch("halftime")
    elif match.status in COMPLETED_STATUSES:
        events = _finished_events(match)
        markers = markers.latch("finished")

    return Detection(events=events, snapshot=MatchSnapshot.from_match(match, markers))


def _status_change(
    match: MatchData, previous: MatchStatus, markers: EmissionMarkers
) -> tuple[list[MatchEvent], EmissionMarkers]:
    status = match.status

    if status is MatchStatus.IN_PLAY:
        if previous in UPCOMING_STATUSES and not markers.kickoff:
            return _kickoff_events(match), markers.latch("kickoff")
        if previous is MatchStatus.PAUSED and not markers.second_half:
            return _second_half_events(match), markers.latch("second_half")

    elif status is MatchStatus.PAUSED:
        if not markers.halftime:
            return _halftime_events(match), markers.latch("halftime")

    elif status in COMPLETED_STATUSES:
        if not markers.finished:
            return _finished_events(match), markers.latch("finished")

    return [], markers


def detect_match_events(match: MatchData, cached: Optional[MatchSnapshot]) -> Detection:
    """
    Compare a freshly fetched match with its cached snapshot.

    Args:
        match: Match as just returned by the provider.
        cached: Snapshot committed by the previous cycle, or None.

    Returns:
        Detection with the ordered events and the replacement snapshot
        (fresh data, markers carried forward and possibly latched).
    """
    if cached is None:
        return _first_sighting(match)

    events: list[MatchEvent] = []
    markers = cached.markers

    if cached.status != match.status:
        status_events, markers = _status_change(match, cached.status, markers)
        events.extend(status_events)

    if match.status in LIVE_STATUSES and (
        match.home_score != cached.home_score or match.away_score != cached.away_score
    ):
        events.extend(_score_change_events(match, cached))

    return Detection(events=events, snapshot=MatchSnapshot.from_match(match, markers))


def minutes_until_kickoff(match: MatchData, now: datetime) -> float:
    return (match.kickoff - now).total_seconds() / 60


def detect_starts_soon(
    matches: Iterable[MatchData],
    has_fired: Callable[[int, int], bool],
    now: datetime,
    thresholds: Iterable[int] = MATCH_SOON_THRESHOLDS,
) -> list[StartsSoonTrigger]:
    """
    Find starts-soon thresholds that are due and have not fired yet.

    For each upcoming match and each threshold (largest first), a threshold
    is due when 0 < minutes until kickoff <= threshold.

    Args:
        matches: Today's relevant matches.
        has_fired: Lookup into the scheduler's fired-threshold records.
        now: Current UTC time.
        thresholds: Minutes before kickoff.
    """
    ordered = sorted(thresholds, reverse=True)
    triggers: list[StartsSoonTrigger] = []

    for match in matches:
        if match.status not in UPCOMING_STATUSES:
            continue

        minutes_until = minutes_until_kickoff(match, now)
        if minutes_until <= 0:
            continue

        for threshold in ordered:
            if minutes_until > threshold or has_fired(match.id, threshold):
                continue
            events: list[MatchEvent] = [
                MatchStartsSoon(
                    team_id=team.id,
                    match_id=match.id,
                    opponent=opponent.display_name,
                    kickoff_time=match.kickoff,
                    competition=match.competition,
                    is_home=is_home,
                    minutes=threshold,
                )
                for team, opponent, is_home in _sides(match)
            ]
            triggers.append(StartsSoonTrigger(match_id=match.id, threshold=threshold, events=events))

    return triggers
