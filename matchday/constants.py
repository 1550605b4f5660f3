"""Match statuses, polling cadence and event names shared across matchday."""

from enum import Enum


class MatchStatus(str, Enum):
    """Match status values as reported by football-data.org."""

    SCHEDULED = "SCHEDULED"
    TIMED = "TIMED"
    IN_PLAY = "IN_PLAY"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    SUSPENDED = "SUSPENDED"
    POSTPONED = "POSTPONED"
    CANCELLED = "CANCELLED"
    AWARDED = "AWARDED"


# Status groupings
LIVE_STATUSES = frozenset({MatchStatus.IN_PLAY, MatchStatus.PAUSED})
UPCOMING_STATUSES = frozenset({MatchStatus.SCHEDULED, MatchStatus.TIMED})
COMPLETED_STATUSES = frozenset({MatchStatus.FINISHED, MatchStatus.AWARDED})


class PollingState(str, Enum):
    """Scheduler states, in priority order (highest first) for classification."""

    LIVE = "LIVE"
    PAUSED = "PAUSED"
    POST_MATCH = "POST_MATCH"
    PRE_MATCH = "PRE_MATCH"
    IDLE = "IDLE"


# Re-poll delay per state, in seconds
POLLING_INTERVALS = {
    PollingState.IDLE: 15 * 60,       # no matches soon
    PollingState.PRE_MATCH: 5 * 60,   # kickoff within 2 hours
    PollingState.LIVE: 30,            # match in play (or probably in play)
    PollingState.PAUSED: 2 * 60,      # halftime
    PollingState.POST_MATCH: 5 * 60,  # estimated end within the last 15 min
}

# Fixed retry after a failed cycle, bypasses the state-based delay
POLL_RETRY_SECONDS = 60

# Classification windows
PROBABLY_LIVE_WINDOW_MINUTES = 120   # upcoming status but kickoff 0-120 min ago
ESTIMATED_MATCH_DURATION_MINUTES = 120
POST_MATCH_WINDOW_MINUTES = 15
PRE_MATCH_WINDOW_MINUTES = 120

# Finished matches are evicted once estimated end + grace has elapsed
CACHE_EVICTION_GRACE_MINUTES = 120

# "Match starts soon" thresholds, minutes before kickoff (descending)
MATCH_SOON_THRESHOLDS = (120, 60, 30, 15)


class ResultState(str, Enum):
    """A side's standing derived from the current score differential."""

    WINNING = "winning"
    LOSING = "losing"
    DRAWING = "drawing"


class TeamMatchStatus(str, Enum):
    """Visible match status kept by a team tracker."""

    IDLE = "idle"
    SCHEDULED = "scheduled"
    LIVE = "live"
    HALFTIME = "halftime"
    FINISHED = "finished"
