"""Tests for match diffing and starts-soon detection."""

from datetime import timedelta

import pytest

from matchday.constants import MatchStatus
from matchday.events.types import (
    HalftimeStarted,
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
from matchday.matches.detector import detect_match_events, detect_starts_soon

HOME_ID = 65
AWAY_ID = 66


def kinds(events):
    return [(type(e), e.team_id) for e in events]


def cached(match, **markers):
    return MatchSnapshot.from_match(match, EmissionMarkers(**markers))


def run(matches):
    """Feed successive observations through the detector, committing each snapshot."""
    snapshot = None
    emitted = []
    for match in matches:
        detection = detect_match_events(match, snapshot)
        emitted.extend(detection.events)
        snapshot = detection.snapshot
    return emitted, snapshot


# =============================================================================
# FIRST SIGHTING
# =============================================================================


class TestFirstSighting:
    """Catch-up emission for matches first seen mid-way."""

    def test_upcoming_match_only_cached(self, make_match):
        detection = detect_match_events(make_match(status=MatchStatus.TIMED), None)

        assert detection.events == []
        assert detection.snapshot.markers == EmissionMarkers()

    def test_in_play_emits_kickoff_once(self, make_match):
        match = make_match(status=MatchStatus.IN_PLAY)

        detection = detect_match_events(match, None)

        assert kinds(detection.events) == [(MatchKickoff, HOME_ID), (MatchKickoff, AWAY_ID)]
        assert detection.snapshot.markers.kickoff is True

        again = detect_match_events(match, detection.snapshot)
        assert again.events == []

    def test_kickoff_tokens_are_side_specific(self, make_match):
        detection = detect_match_events(make_match(status=MatchStatus.IN_PLAY), None)
        home, away = detection.events

        assert home.tokens() == {"opponent": "Man United", "competition": "Premier League", "is_home": True}
        assert away.tokens() == {"opponent": "Man City", "competition": "Premier League", "is_home": False}

    def test_paused_emits_halftime(self, make_match):
        detection = detect_match_events(
            make_match(status=MatchStatus.PAUSED, home_score=1, half_time=(1, 0)), None
        )

        assert kinds(detection.events) == [(HalftimeStarted, HOME_ID), (HalftimeStarted, AWAY_ID)]
        assert detection.snapshot.markers.halftime is True
        assert detection.snapshot.markers.kickoff is False

    def test_finished_emits_finished_and_result(self, make_match):
        detection = detect_match_events(
            make_match(status=MatchStatus.FINISHED, home_score=2, away_score=1), None
        )

        assert kinds(detection.events) == [
            (MatchFinished, HOME_ID),
            (MatchFinished, AWAY_ID),
            (TeamWon, HOME_ID),
            (TeamLost, AWAY_ID),
        ]
        assert detection.snapshot.markers.finished is True

    def test_awarded_counts_as_finished(self, make_match):
        detection = detect_match_events(
            make_match(status=MatchStatus.AWARDED, home_score=3, away_score=0), None
        )

        assert detection.events[0].status == "AWARDED"
        assert detection.snapshot.markers.finished is True


# =============================================================================
# STATUS CHANGES
# =============================================================================


class TestStatusChange:
    """Transitions dispatch on the new status and latch their marker."""

    def test_kickoff_from_upcoming(self, make_match):
        previous = cached(make_match(status=MatchStatus.SCHEDULED))

        detection = detect_match_events(make_match(status=MatchStatus.IN_PLAY), previous)

        assert kinds(detection.events) == [(MatchKickoff, HOME_ID), (MatchKickoff, AWAY_ID)]
        assert detection.snapshot.markers.kickoff is True

    def test_halftime_uses_half_time_score(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.PAUSED, home_score=1, half_time=(1, 0)), previous
        )

        event = detection.events[0]
        assert isinstance(event, HalftimeStarted)
        assert event.halftime_score == "1-0"
        assert event.opponent == "Man United"

    def test_halftime_falls_back_to_full_time_score(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, away_score=2), kickoff=True)

        detection = detect_match_events(make_match(status=MatchStatus.PAUSED, away_score=2), previous)

        assert detection.events[0].halftime_score == "0-2"

    def test_second_half_from_paused(self, make_match):
        previous = cached(make_match(status=MatchStatus.PAUSED, home_score=1), kickoff=True, halftime=True)

        detection = detect_match_events(make_match(status=MatchStatus.IN_PLAY, home_score=1), previous)

        assert kinds(detection.events) == [(SecondHalfStarted, HOME_ID), (SecondHalfStarted, AWAY_ID)]
        assert detection.events[0].score == "1-0"
        assert detection.snapshot.markers.second_half is True

    def test_missed_pause_never_emits_second_half(self, make_match):
        """A PAUSED state that falls between two polls is not reconstructed."""
        emitted, snapshot = run([
            make_match(status=MatchStatus.TIMED),
            make_match(status=MatchStatus.IN_PLAY, minute=40),
            make_match(status=MatchStatus.IN_PLAY, minute=50),
        ])

        assert not any(isinstance(e, (HalftimeStarted, SecondHalfStarted)) for e in emitted)
        assert snapshot.markers.second_half is False

    def test_finished_home_win(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=2, away_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.FINISHED, home_score=2, away_score=1), previous
        )

        assert kinds(detection.events) == [
            (MatchFinished, HOME_ID),
            (MatchFinished, AWAY_ID),
            (TeamWon, HOME_ID),
            (TeamLost, AWAY_ID),
        ]
        won = detection.events[2]
        assert won.final_score == "2-1"
        assert (won.team_goals, won.opponent_goals) == (2, 1)
        lost = detection.events[3]
        assert (lost.team_goals, lost.opponent_goals) == (1, 2)
        assert lost.opponent == "Man City"

    def test_finished_away_win(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, away_score=2), kickoff=True)

        detection = detect_match_events(make_match(status=MatchStatus.FINISHED, away_score=2), previous)

        assert kinds(detection.events)[2:] == [(TeamWon, AWAY_ID), (TeamLost, HOME_ID)]

    def test_finished_draw(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.FINISHED, home_score=1, away_score=1), previous
        )

        assert kinds(detection.events)[2:] == [(TeamDrew, HOME_ID), (TeamDrew, AWAY_ID)]
        assert detection.events[2].goals == 1

    def test_finished_marker_blocks_repeat(self, make_match):
        previous = cached(make_match(status=MatchStatus.FINISHED, home_score=1), finished=True)

        detection = detect_match_events(make_match(status=MatchStatus.AWARDED, home_score=1), previous)

        assert detection.events == []
        assert detection.snapshot.status is MatchStatus.AWARDED

    def test_markers_carry_forward(self, make_match):
        emitted, snapshot = run([
            make_match(status=MatchStatus.TIMED),
            make_match(status=MatchStatus.IN_PLAY),
            make_match(status=MatchStatus.PAUSED),
            make_match(status=MatchStatus.IN_PLAY),
            make_match(status=MatchStatus.FINISHED),
        ])

        assert snapshot.markers == EmissionMarkers(
            kickoff=True, halftime=True, second_half=True, finished=True
        )
        assert [type(e) for e in emitted].count(MatchKickoff) == 2

    @pytest.mark.parametrize(
        "sequence",
        [
            [MatchStatus.IN_PLAY, MatchStatus.PAUSED, MatchStatus.IN_PLAY, MatchStatus.PAUSED, MatchStatus.IN_PLAY],
            [MatchStatus.IN_PLAY, MatchStatus.SCHEDULED, MatchStatus.IN_PLAY],
        ],
    )
    def test_one_shot_events_never_repeat(self, make_match, sequence):
        emitted, _ = run([make_match(status=status) for status in sequence])

        for event_type in (MatchKickoff, HalftimeStarted, SecondHalfStarted):
            for team_id in (HOME_ID, AWAY_ID):
                assert kinds(emitted).count((event_type, team_id)) <= 1


# =============================================================================
# SCORE CHANGES
# =============================================================================


class TestScoreChange:
    """Scored/conceded per increase, result-changed only on a real change."""

    def test_home_goal_when_already_winning(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.IN_PLAY, home_score=2, minute=63), previous
        )

        assert kinds(detection.events) == [(TeamScored, HOME_ID), (TeamConceded, AWAY_ID)]
        scored, conceded = detection.events
        assert scored.score == "2-0"
        assert (scored.home_score, scored.away_score) == (2, 0)
        assert scored.minute == 63
        assert scored.opponent == "Man United"
        assert conceded.scoring_team == "Man City"

    def test_equaliser_flips_both_sides_to_drawing(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, away_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=1), previous
        )

        assert kinds(detection.events) == [
            (TeamScored, HOME_ID),
            (TeamConceded, AWAY_ID),
            (MatchResultChanged, HOME_ID),
            (MatchResultChanged, AWAY_ID),
        ]
        assert {e.state for e in detection.events[2:]} == {"drawing"}

    def test_go_ahead_goal(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=2, minute=88), previous
        )

        changes = [e for e in detection.events if isinstance(e, MatchResultChanged)]
        assert [(e.team_id, e.state) for e in changes] == [(HOME_ID, "losing"), (AWAY_ID, "winning")]
        away = changes[1]
        assert (away.team_goals, away.opponent_goals) == (2, 1)
        assert away.opponent == "Man City"
        assert away.minute == 88

    def test_scored_while_paused(self, make_match):
        previous = cached(make_match(status=MatchStatus.PAUSED), kickoff=True, halftime=True)

        detection = detect_match_events(make_match(status=MatchStatus.PAUSED, away_score=1), previous)

        assert kinds(detection.events)[:2] == [(TeamScored, AWAY_ID), (TeamConceded, HOME_ID)]

    def test_status_events_come_before_score_events(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.PAUSED, home_score=1, half_time=(1, 0)), previous
        )

        assert [type(e) for e in detection.events][:4] == [
            HalftimeStarted, HalftimeStarted, TeamScored, TeamConceded,
        ]

    def test_score_change_on_finished_not_reported_as_goal(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.FINISHED, home_score=2), previous
        )

        assert not any(isinstance(e, (TeamScored, TeamConceded, MatchResultChanged)) for e in detection.events)

    def test_score_correction_downwards_emits_no_goal(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1), kickoff=True)

        detection = detect_match_events(make_match(status=MatchStatus.IN_PLAY), previous)

        assert kinds(detection.events) == [(MatchResultChanged, HOME_ID), (MatchResultChanged, AWAY_ID)]

    def test_scored_count_matches_increases(self, make_match):
        scores = [(0, 0), (1, 0), (1, 0), (2, 0), (2, 1), (2, 1), (3, 1)]
        emitted, _ = run([
            make_match(status=MatchStatus.IN_PLAY, home_score=h, away_score=a) for h, a in scores
        ])

        assert kinds(emitted).count((TeamScored, HOME_ID)) == 3
        assert kinds(emitted).count((TeamScored, AWAY_ID)) == 1
        assert kinds(emitted).count((TeamConceded, AWAY_ID)) == 3
        assert kinds(emitted).count((TeamConceded, HOME_ID)) == 1

    def test_unchanged_score_is_silent(self, make_match):
        previous = cached(make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=1), kickoff=True)

        detection = detect_match_events(
            make_match(status=MatchStatus.IN_PLAY, home_score=1, away_score=1, minute=70), previous
        )

        assert detection.events == []
        assert detection.snapshot.minute == 70


# =============================================================================
# STARTS SOON
# =============================================================================


class TestStartsSoon:
    """Threshold triggers before kickoff."""

    def _now(self, match, minutes_before):
        return match.kickoff - timedelta(minutes=minutes_before)

    def test_single_threshold_due(self, make_match):
        match = make_match(status=MatchStatus.TIMED)

        triggers = detect_starts_soon([match], lambda m, t: False, self._now(match, 100))

        assert [t.threshold for t in triggers] == [120]
        assert kinds(triggers[0].events) == [(MatchStartsSoon, HOME_ID), (MatchStartsSoon, AWAY_ID)]
        home, away = triggers[0].events
        assert home.minutes == 120
        assert home.is_home is True
        assert away.is_home is False
        assert away.opponent == "Man City"
        assert home.kickoff_time == match.kickoff

    def test_all_due_thresholds_fire_largest_first(self, make_match):
        match = make_match(status=MatchStatus.SCHEDULED)

        triggers = detect_starts_soon([match], lambda m, t: False, self._now(match, 50))

        assert [t.threshold for t in triggers] == [120, 60]

    def test_already_fired_threshold_skipped(self, make_match):
        match = make_match(status=MatchStatus.TIMED)
        fired = {(match.id, 120)}

        triggers = detect_starts_soon(
            [match], lambda m, t: (m, t) in fired, self._now(match, 50)
        )

        assert [t.threshold for t in triggers] == [60]

    def test_boundary_is_inclusive(self, make_match):
        match = make_match(status=MatchStatus.TIMED)

        triggers = detect_starts_soon([match], lambda m, t: False, self._now(match, 15))

        assert [t.threshold for t in triggers] == [120, 60, 30, 15]

    def test_not_due_outside_largest_threshold(self, make_match):
        match = make_match(status=MatchStatus.TIMED)

        assert detect_starts_soon([match], lambda m, t: False, self._now(match, 121)) == []

    def test_kickoff_passed_never_fires(self, make_match):
        match = make_match(status=MatchStatus.TIMED)

        assert detect_starts_soon([match], lambda m, t: False, self._now(match, 0)) == []
        assert detect_starts_soon([match], lambda m, t: False, self._now(match, -5)) == []

    def test_live_match_ignored(self, make_match):
        match = make_match(status=MatchStatus.IN_PLAY)

        assert detect_starts_soon([match], lambda m, t: False, self._now(match, 10)) == []

    def test_each_threshold_fires_once_as_time_advances(self, make_match):
        match = make_match(status=MatchStatus.TIMED)
        fired = set()
        order = []

        for minutes_before in (130, 110, 90, 59, 45, 29, 20, 14, 5, 1):
            triggers = detect_starts_soon(
                [match], lambda m, t: (m, t) in fired, self._now(match, minutes_before)
            )
            for trigger in triggers:
                fired.add((trigger.match_id, trigger.threshold))
                order.append(trigger.threshold)

        assert order == [120, 60, 30, 15]
