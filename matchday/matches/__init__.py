"""Match state cache and the pure diff/event detector."""

from matchday.matches.cache import (
    EmissionMarkers,
    MatchSnapshot,
    SnapshotCache,
    StartsSoonTracker,
)
from matchday.matches.detector import (
    Detection,
    StartsSoonTrigger,
    detect_match_events,
    detect_starts_soon,
    result_state,
)

__all__ = [
    "Detection",
    "EmissionMarkers",
    "MatchSnapshot",
    "SnapshotCache",
    "StartsSoonTracker",
    "StartsSoonTrigger",
    "detect_match_events",
    "detect_starts_soon",
    "result_state",
]
