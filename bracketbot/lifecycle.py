"""
bracketbot/lifecycle.py - Match state transitions

    pending ──(both sides known)──> ready ──(result)──> completed
                                      └──> in_progress ──┘

Reporting a result completes the match and pushes the winner forward into
the linked next match. Propagation is local: nothing else in the bracket
is recomputed.
"""

import logging
from datetime import datetime

from .errors import AlreadyCompletedError, InvalidScoreError, UnassignedMatchError
from .models import Match, MatchStatus, Tournament, utcnow
from .scoring import Side, diagnose, winner_side

logger = logging.getLogger(__name__)


def check_reportable(match: Match, home_score: int, away_score: int) -> None:
    """Raise if a result cannot be recorded for ``match``.

    Raises:
        AlreadyCompletedError: match already has a result
        UnassignedMatchError: a team slot is still empty
        InvalidScoreError: score pair fails the scoring rule
    """
    if match.is_completed:
        raise AlreadyCompletedError(match.id)

    if not match.has_both_teams:
        raise UnassignedMatchError(match.id)

    problem = diagnose(home_score, away_score)
    if problem is not None:
        raise InvalidScoreError(home_score, away_score, problem)


def start_match(match: Match, now: datetime | None = None) -> None:
    """Mark a READY match as IN_PROGRESS. Other states are left alone."""
    if match.status is MatchStatus.READY:
        match.status = MatchStatus.IN_PROGRESS
        match.updated_at = now or utcnow()


def complete_match(
    match: Match,
    home_score: int,
    away_score: int,
    now: datetime | None = None,
) -> str:
    """Record the final score and winner. Returns the winner's team id.

    The match is left untouched if any precondition fails.
    """
    check_reportable(match, home_score, away_score)

    now = now or utcnow()
    side = winner_side(home_score, away_score)
    winner_id = match.home_team_id if side is Side.HOME else match.away_team_id

    match.home_score = home_score
    match.away_score = away_score
    match.winner_id = winner_id
    match.status = MatchStatus.COMPLETED
    match.completed_at = now
    match.updated_at = now
    return winner_id


def advance_winner(
    tournament: Tournament,
    match: Match,
    now: datetime | None = None,
) -> list[Match]:
    """Place ``match``'s winner into its next match.

    The home slot fills first, then away. A PENDING target with both slots
    filled becomes READY. Returns the matches that changed (empty for the
    final).
    """
    if match.winner_id is None or match.next_match_id is None:
        return []

    target = tournament.match(match.next_match_id)
    if target is None:
        logger.warning(
            f"Match {match.id} links to missing match {match.next_match_id} "
            f"in tournament {tournament.id}"
        )
        return []

    if target.home_team_id is None:
        target.home_team_id = match.winner_id
    elif target.away_team_id is None:
        target.away_team_id = match.winner_id

    if target.has_both_teams and target.status is MatchStatus.PENDING:
        target.status = MatchStatus.READY

    target.updated_at = now or utcnow()
    return [target]


def report(
    tournament: Tournament,
    match: Match,
    home_score: int,
    away_score: int,
    now: datetime | None = None,
) -> list[Match]:
    """Complete ``match`` and propagate its winner. Returns the advanced matches."""
    now = now or utcnow()
    winner_id = complete_match(match, home_score, away_score, now)
    advanced = advance_winner(tournament, match, now)
    logger.debug(
        f"Match {match.id} (stage {match.stage}) won by {winner_id} "
        f"{home_score}-{away_score}; advanced into {[m.id for m in advanced]}"
    )
    return advanced
