"""Tests for bracketbot.progression - stage tracking, completion, display."""

import random
from datetime import datetime, timezone

from bracketbot.bracket import generate_bracket
from bracketbot.lifecycle import report
from bracketbot.models import Team, Tournament, TournamentStatus
from bracketbot.progression import (
    assess_progress,
    current_stage_matches,
    describe_match,
    describe_tournament,
    stage_name,
)


def _tournament(n: int = 4) -> Tournament:
    t = Tournament(id="t_prog", name="Cup", team_count=n, group_id="g1",
                   status=TournamentStatus.ACTIVE, total_stages=n.bit_length() - 1)
    t.teams = [
        Team(id=f"team_{i}", name=f"Team {i}", tournament_id=t.id,
             captain_id=f"user_{i}", captain_name=f"Captain {i}")
        for i in range(n)
    ]
    t.matches = generate_bracket(t.teams, t.id, rng=random.Random(7))
    return t


def _play_stage(t: Tournament, stage: int) -> None:
    for m in t.stage_matches(stage):
        report(t, m, 13, 4)


# ============================================================================
# assess_progress
# ============================================================================

class TestAssessProgress:
    def test_fresh_bracket(self):
        t = _tournament(8)
        progress = assess_progress(t)
        assert not progress.is_completed
        assert progress.current_stage == 1
        assert progress.total_stages == 3
        assert progress.champion is None

    def test_partial_stage_stays_current(self):
        t = _tournament(8)
        report(t, t.stage_matches(1)[0], 13, 4)
        assert assess_progress(t).current_stage == 1

    def test_finished_stage_advances(self):
        t = _tournament(8)
        _play_stage(t, 1)
        assert assess_progress(t).current_stage == 2
        assert t.current_stage == 2

    def test_completion_detected(self):
        t = _tournament(4)
        _play_stage(t, 1)
        final = t.stage_matches(2)[0]
        report(t, final, 13, 9)

        progress = assess_progress(t)

        assert progress.is_completed
        assert progress.current_stage == 2  # Never exceeds total_stages
        assert progress.champion.id == final.winner_id
        assert progress.runner_up.id == final.away_team_id
        assert t.status is TournamentStatus.COMPLETED
        assert t.completed_at is not None

    def test_repeated_calls_are_stable(self):
        t = _tournament(4)
        _play_stage(t, 1)
        _play_stage(t, 2)

        first = assess_progress(t)
        stamped = t.completed_at
        later = datetime(2030, 1, 1, tzinfo=timezone.utc)
        second = assess_progress(t, now=later)

        assert first == second
        assert t.completed_at == stamped

    def test_match_order_does_not_matter(self):
        t = _tournament(8)
        _play_stage(t, 1)
        t.matches.reverse()
        assert assess_progress(t).current_stage == 2

    def test_no_matches_yet(self):
        t = _tournament(4)
        t.matches = []
        t.status = TournamentStatus.REGISTRATION
        progress = assess_progress(t)
        assert progress.current_stage == 1
        assert not progress.is_completed


class TestCurrentStageMatches:
    def test_first_incomplete_stage(self):
        t = _tournament(8)
        assert [m.stage for m in current_stage_matches(t)] == [1, 1, 1, 1]
        _play_stage(t, 1)
        assert [m.position for m in current_stage_matches(t)] == [1, 2]

    def test_empty_when_finished(self):
        t = _tournament(4)
        _play_stage(t, 1)
        _play_stage(t, 2)
        assert current_stage_matches(t) == []


# ============================================================================
# Display
# ============================================================================

class TestStageName:
    def test_names_count_back_from_final(self):
        assert stage_name(4, 4) == "Final"
        assert stage_name(3, 4) == "Semifinal"
        assert stage_name(2, 4) == "Quarterfinal"
        assert stage_name(1, 4) == "Stage 1"

    def test_small_bracket(self):
        assert stage_name(1, 2) == "Semifinal"
        assert stage_name(2, 2) == "Final"


class TestDescribe:
    def test_registration_shows_fill(self):
        t = Tournament(id="t1", name="Cup", team_count=4, group_id="g1",
                       status=TournamentStatus.REGISTRATION, total_stages=2)
        t.teams = _tournament(4).teams[:3]
        assert describe_tournament(t) == "Cup (3/4 teams, registration open)"

    def test_active_shows_stage(self):
        t = _tournament(4)
        assert describe_tournament(t) == "Cup (4 teams, in progress - Semifinal)"

    def test_match_waiting(self):
        t = _tournament(4)
        assert describe_match(t, t.stage_matches(2)[0]) == "Final - waiting for opponents"

    def test_match_completed(self):
        t = _tournament(4)
        m = t.stage_matches(1)[0]
        report(t, m, 13, 4)
        home = t.team_name(m.home_team_id)
        away = t.team_name(m.away_team_id)
        assert describe_match(t, m) == f"Semifinal - {home} 13-4 {away}"
