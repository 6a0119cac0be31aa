"""
bracketbot/progression.py - Stage tracking and completion detection

assess_progress() re-derives the current stage and completion from match
states on every call rather than tracking them incrementally. Calling it
twice in a row gives the same answer and leaves the tournament unchanged.
"""

from dataclasses import dataclass
from datetime import datetime

from .models import Match, MatchStatus, Team, Tournament, TournamentStatus, utcnow


@dataclass
class TournamentProgress:
    """Snapshot returned by assess_progress()."""

    is_completed: bool
    current_stage: int
    total_stages: int
    champion: Team | None = None
    runner_up: Team | None = None


def assess_progress(tournament: Tournament, now: datetime | None = None) -> TournamentProgress:
    """Walk stages in order and find the first one with unfinished matches.

    Updates ``tournament.current_stage``; when the final is complete, also
    moves the tournament to COMPLETED and stamps ``completed_at`` (once).
    """
    total = tournament.total_stages
    stages = sorted({m.stage for m in tournament.matches})

    current = 1
    champion = None
    runner_up = None
    completed = False

    for stage in stages:
        stage_matches = [m for m in tournament.matches if m.stage == stage]
        if any(m.status is not MatchStatus.COMPLETED for m in stage_matches):
            break

        current = stage + 1

        if stage == total:
            completed = True
            final = stage_matches[0]
            champion = tournament.team(final.winner_id)
            runner_up = tournament.team(final.loser_id)

            if tournament.status is not TournamentStatus.COMPLETED:
                now = now or utcnow()
                tournament.status = TournamentStatus.COMPLETED
                tournament.completed_at = now
                tournament.updated_at = now
            break

    tournament.current_stage = min(current, total) if total else 1

    return TournamentProgress(
        is_completed=completed,
        current_stage=tournament.current_stage,
        total_stages=total,
        champion=champion,
        runner_up=runner_up,
    )


def current_stage_matches(tournament: Tournament) -> list[Match]:
    """Matches of the earliest stage that still has unfinished matches."""
    for stage in sorted({m.stage for m in tournament.matches}):
        stage_matches = tournament.stage_matches(stage)
        if any(not m.is_completed for m in stage_matches):
            return stage_matches
    return []


# ============================================================================
# Display
# ============================================================================

_STATUS_LABELS = {
    TournamentStatus.DRAFT: "draft",
    TournamentStatus.REGISTRATION: "registration open",
    TournamentStatus.ACTIVE: "in progress",
    TournamentStatus.COMPLETED: "completed",
}


def stage_name(stage: int, total_stages: int) -> str:
    """Human name for a stage, counted back from the final."""
    remaining = total_stages - stage + 1
    if remaining == 1:
        return "Final"
    if remaining == 2:
        return "Semifinal"
    if remaining == 3:
        return "Quarterfinal"
    return f"Stage {stage}"


def describe_tournament(tournament: Tournament) -> str:
    """One-line summary, e.g. 'Cup (3/4 teams, registration open)'."""
    if tournament.status is TournamentStatus.REGISTRATION:
        team_info = f"{len(tournament.teams)}/{tournament.team_count} teams"
    else:
        team_info = f"{tournament.team_count} teams"

    label = _STATUS_LABELS[tournament.status]
    if tournament.status is TournamentStatus.ACTIVE:
        label += f" - {stage_name(tournament.current_stage, tournament.total_stages)}"

    return f"{tournament.name} ({team_info}, {label})"


def describe_match(tournament: Tournament, match: Match) -> str:
    stage = stage_name(match.stage, tournament.total_stages)
    if not match.has_both_teams:
        return f"{stage} - waiting for opponents"

    home = tournament.team_name(match.home_team_id)
    away = tournament.team_name(match.away_team_id)
    if match.is_completed:
        return f"{stage} - {home} {match.home_score}-{match.away_score} {away}"
    return f"{stage} - {home} vs {away}"
