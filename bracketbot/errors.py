"""
bracketbot/errors.py - Exception hierarchy

Every error here is user-facing and recoverable. Command layers catch
BracketError and show the message; nothing in this module is fatal.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .identity import IdentityErrorKind
    from .scoring import ScoreProblem


class BracketError(Exception):
    """Base class for all bracketbot errors."""


# ============================================================================
# Lookup
# ============================================================================

class NotFoundError(BracketError, LookupError):
    """A referenced tournament, match, team or player does not exist."""


class TournamentNotFoundError(NotFoundError):
    def __init__(self, tournament_id: str):
        super().__init__(f"Tournament not found: {tournament_id!r}")
        self.tournament_id = tournament_id


class MatchNotFoundError(NotFoundError):
    def __init__(self, match_id: str):
        super().__init__(f"Match not found: {match_id!r}")
        self.match_id = match_id


class PlayerNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__(f"No linked Riot ID for user {user_id!r}")
        self.user_id = user_id


# ============================================================================
# Lifecycle
# ============================================================================

class InvalidStateError(BracketError):
    """Operation attempted while the entity is in the wrong status."""


class AlreadyCompletedError(InvalidStateError):
    """Result reported for a match that is already completed."""

    def __init__(self, match_id: str):
        super().__init__(f"Match {match_id!r} is already completed")
        self.match_id = match_id


class UnassignedMatchError(BracketError):
    """Result reported before both sides of the match are known."""

    def __init__(self, match_id: str):
        super().__init__(f"Match {match_id!r} does not have both teams assigned yet")
        self.match_id = match_id


# ============================================================================
# Registration
# ============================================================================

class ValidationError(BracketError, ValueError):
    """Malformed input (bad capacity, empty or oversized names)."""


class CapacityExceededError(BracketError):
    def __init__(self, capacity: int):
        super().__init__(f"Tournament is full ({capacity} teams)")
        self.capacity = capacity


class DuplicateNameError(BracketError):
    """Name already used within its scope (group for tournaments, tournament for teams)."""


class IncompleteRosterError(BracketError):
    def __init__(self, missing: int):
        noun = "team" if missing == 1 else "teams"
        super().__init__(f"Not enough teams registered: {missing} more {noun} needed")
        self.missing = missing


class AlreadyLinkedError(BracketError):
    """User already has a linked Riot ID, or the Riot ID belongs to someone else."""


# ============================================================================
# Scoring
# ============================================================================

class InvalidScoreError(BracketError, ValueError):
    """Score pair rejected by the scoring rule.

    ``problem`` says which rule failed so callers can pick a message.
    """

    def __init__(self, home: object, away: object, problem: ScoreProblem):
        from .scoring import describe_problem

        super().__init__(describe_problem(problem, home, away))
        self.home = home
        self.away = away
        self.problem = problem


# ============================================================================
# Identity service
# ============================================================================

class IdentityError(BracketError):
    """Identity verification failed. ``kind`` classifies the cause."""

    def __init__(self, kind: IdentityErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
