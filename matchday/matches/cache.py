"""
In-memory match state owned by the scheduler.

- SnapshotCache: match id -> last observed MatchSnapshot (with its one-shot
  emission markers). The diff detector compares fresh API data against it.
- StartsSoonTracker: match id -> "starts soon" thresholds already fired.

Nothing here survives a restart; a restart mid-match is handled by the
detector's catch-up emission for unseen matches.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional

from matchday.constants import (
    CACHE_EVICTION_GRACE_MINUTES,
    COMPLETED_STATUSES,
    ESTIMATED_MATCH_DURATION_MINUTES,
    LIVE_STATUSES,
    MatchStatus,
)
from matchday.etl.base import MatchData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmissionMarkers:
    """One-shot latches per match. Set with `latch()`, never cleared."""

    kickoff: bool = False
    halftime: bool = False
    second_half: bool = False
    extra_time: bool = False
    finished: bool = False

    def latch(self, marker: str) -> "EmissionMarkers":
        if not hasattr(self, marker):
            raise ValueError(f"Unknown emission marker: {marker}")
        return replace(self, **{marker: True})


@dataclass(frozen=True)
class MatchSnapshot:
    """Cached state of one match as of the last committed cycle."""

    id: int
    status: MatchStatus
    kickoff: datetime
    home_team_id: int
    away_team_id: int
    home_team_name: str
    away_team_name: str
    home_short_name: str
    away_short_name: str
    competition: str
    home_score: int = 0
    away_score: int = 0
    minute: int = 0
    markers: EmissionMarkers = field(default_factory=EmissionMarkers)

    @classmethod
    def from_match(cls, match: MatchData, markers: Optional[EmissionMarkers] = None) -> "MatchSnapshot":
        return cls(
            id=match.id,
            status=match.status,
            kickoff=match.kickoff,
            home_team_id=match.home_team.id,
            away_team_id=match.away_team.id,
            home_team_name=match.home_team.name,
            away_team_name=match.away_team.name,
            home_short_name=match.home_team.display_name,
            away_short_name=match.away_team.display_name,
            competition=match.competition,
            home_score=match.home_score,
            away_score=match.away_score,
            minute=match.minute,
            markers=markers or EmissionMarkers(),
        )

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES

    @property
    def estimated_end(self) -> datetime:
        return self.kickoff + timedelta(minutes=ESTIMATED_MATCH_DURATION_MINUTES)

    def involves(self, team_id: int) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)


class SnapshotCache:
    """match id -> MatchSnapshot. Replaced wholesale per match on commit."""

    def __init__(self):
        self._snapshots: dict[int, MatchSnapshot] = {}

    def get(self, match_id: int) -> Optional[MatchSnapshot]:
        return self._snapshots.get(match_id)

    def commit(self, snapshot: MatchSnapshot) -> None:
        self._snapshots[snapshot.id] = snapshot

    def __contains__(self, match_id: int) -> bool:
        return match_id in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[MatchSnapshot]:
        return iter(list(self._snapshots.values()))

    def live_for_team(self, team_id: int) -> Optional[MatchSnapshot]:
        """The team's cached match in IN_PLAY/PAUSED, if any."""
        for snapshot in self._snapshots.values():
            if snapshot.is_live and snapshot.involves(team_id):
                return snapshot
        return None

    def today_for_team(self, team_id: int) -> Optional[MatchSnapshot]:
        """Any cached match for the team, whatever its status."""
        for snapshot in self._snapshots.values():
            if snapshot.involves(team_id):
                return snapshot
        return None

    def evict_finished(self, now: datetime, still_listed: Iterable[int] = ()) -> list[int]:
        """
        Drop completed matches whose estimated end + grace has passed.

        Matches in `still_listed` are kept whatever their age; re-sighting an
        evicted match would replay its catch-up events.

        Returns:
            Evicted match ids.
        """
        cutoff = now - timedelta(minutes=CACHE_EVICTION_GRACE_MINUTES)
        listed = set(still_listed)
        evicted = [
            match_id
            for match_id, snapshot in self._snapshots.items()
            if snapshot.is_completed and snapshot.estimated_end < cutoff and match_id not in listed
        ]
        for match_id in evicted:
            del self._snapshots[match_id]
        if evicted:
            logger.debug(f"Evicted {len(evicted)} finished matches from cache: {evicted}")
        return evicted


class StartsSoonTracker:
    """Records which starts-soon thresholds already fired for each match."""

    def __init__(self):
        self._fired: dict[int, set[int]] = {}

    def has_fired(self, match_id: int, threshold: int) -> bool:
        return threshold in self._fired.get(match_id, ())

    def mark(self, match_id: int, threshold: int) -> None:
        self._fired.setdefault(match_id, set()).add(threshold)

    def fired(self, match_id: int) -> frozenset[int]:
        return frozenset(self._fired.get(match_id, ()))

    def retain(self, match_ids: Iterable[int]) -> list[int]:
        """Forget matches no longer in today's relevant set. Returns evicted ids."""
        keep = set(match_ids)
        evicted = [match_id for match_id in self._fired if match_id not in keep]
        for match_id in evicted:
            del self._fired[match_id]
        return evicted

    def __len__(self) -> int:
        return len(self._fired)
