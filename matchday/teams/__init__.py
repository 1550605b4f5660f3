"""Per-team observers built on the scheduler and event bus."""

from matchday.teams.tracker import TeamTracker, format_next_match

__all__ = ["TeamTracker", "format_next_match"]
