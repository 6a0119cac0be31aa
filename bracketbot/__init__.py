"""
bracketbot - Single-elimination tournament brackets for Valorant communities

Teams register, the bracket builds itself, captains report final scores and
winners move up until a champion is crowned.
"""

__version__ = "0.1.0"

from .bracket import generate_bracket, stage_count

from .errors import (
    BracketError,
    NotFoundError,
    TournamentNotFoundError,
    MatchNotFoundError,
    PlayerNotFoundError,
    InvalidStateError,
    AlreadyCompletedError,
    UnassignedMatchError,
    ValidationError,
    CapacityExceededError,
    DuplicateNameError,
    IncompleteRosterError,
    AlreadyLinkedError,
    InvalidScoreError,
    IdentityError,
)

from .models import (
    Match,
    MatchStatus,
    Team,
    Tournament,
    TournamentStatus,
)

from .progression import TournamentProgress, assess_progress

from .registry import MatchReport, TournamentRegistry

from .scoring import ScoreProblem, Side, is_valid_score, winner_side

from .storage import JsonFileStore, SaveOutcome, SnapshotStore, open_store

__all__ = [
    # Version
    "__version__",
    # Core
    "generate_bracket",
    "stage_count",
    "assess_progress",
    "TournamentProgress",
    "is_valid_score",
    "winner_side",
    "ScoreProblem",
    "Side",
    # Records
    "Match",
    "MatchStatus",
    "Team",
    "Tournament",
    "TournamentStatus",
    # Orchestration
    "TournamentRegistry",
    "MatchReport",
    # Storage
    "SnapshotStore",
    "JsonFileStore",
    "SaveOutcome",
    "open_store",
    # Errors
    "BracketError",
    "NotFoundError",
    "TournamentNotFoundError",
    "MatchNotFoundError",
    "PlayerNotFoundError",
    "InvalidStateError",
    "AlreadyCompletedError",
    "UnassignedMatchError",
    "ValidationError",
    "CapacityExceededError",
    "DuplicateNameError",
    "IncompleteRosterError",
    "AlreadyLinkedError",
    "InvalidScoreError",
    "IdentityError",
]
