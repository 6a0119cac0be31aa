"""
bracketbot/registry.py - Tournament registry (orchestrator)

Owns every tournament in memory, enforces the registration and status
rules, and sequences calls into bracket generation, the match lifecycle
and progression. Each mutation is written through to the store for the
tournament's group.

One registry per process. Construct it with a store, call initialize()
to load saved state, and shutdown() before exit.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from . import lifecycle
from .bracket import generate_bracket, stage_count
from .errors import (
    CapacityExceededError,
    DuplicateNameError,
    IncompleteRosterError,
    InvalidStateError,
    MatchNotFoundError,
    TournamentNotFoundError,
    ValidationError,
)
from .models import (
    ALLOWED_TEAM_COUNTS,
    Match,
    MatchStatus,
    Team,
    Tournament,
    TournamentStatus,
    new_id,
    utcnow,
)
from .progression import TournamentProgress, assess_progress
from .progression import current_stage_matches as _current_stage_matches
from .storage import SaveOutcome, SnapshotStore

logger = logging.getLogger(__name__)

# ============================================================================
# Limits
# ============================================================================

TOURNAMENT_NAME_MAX = 100
TEAM_NAME_MIN = 2
TEAM_NAME_MAX = 30

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


# ============================================================================
# Data Types
# ============================================================================

@dataclass
class MatchReport:
    """Everything a command layer needs to announce a reported result."""

    match: Match
    winner: Team | None
    advanced: list[Match]  # Matches that received the winner
    progress: TournamentProgress
    saved: SaveOutcome


# ============================================================================
# Registry
# ============================================================================

class TournamentRegistry:
    """In-memory tournament collection with write-through persistence.

    Args:
        store: Snapshot backend, one snapshot per group.
        rng: Seeding shuffle source for new brackets (tests pass a seeded
            random.Random).
    """

    def __init__(self, store: SnapshotStore, rng: random.Random | None = None):
        self._store = store
        self._rng = rng or random.Random()
        self._tournaments: dict[str, Tournament] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()  # Guards _tournaments, _locks and _group_locks
        # Held while a group snapshot is built and written
        self._group_locks: dict[str, threading.Lock] = {}
        self.last_persist: SaveOutcome | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> int:
        """Load every group's tournaments from the store. Returns the count."""
        loaded = self._store.load_all()
        with self._lock:
            for tournaments in loaded.values():
                for tournament in tournaments:
                    self._tournaments[tournament.id] = tournament
            count = len(self._tournaments)
        logger.info(f"Loaded {count} tournaments from {len(loaded)} groups")
        return count

    def shutdown(self) -> list[SaveOutcome]:
        """Flush every group once more and drop in-memory state."""
        with self._lock:
            groups = sorted({t.group_id for t in self._tournaments.values()})
        outcomes = [self._persist(group_id) for group_id in groups]
        failed = [o.group_id for o in outcomes if not o.ok]
        if failed:
            logger.warning(f"Shutdown flush failed for groups: {', '.join(failed)}")

        with self._lock:
            self._tournaments.clear()
            self._locks.clear()
            self._group_locks.clear()
        logger.info(f"Registry shut down ({len(outcomes)} groups flushed)")
        return outcomes

    # ------------------------------------------------------------------
    # Tournament mutations
    # ------------------------------------------------------------------

    def create_tournament(self, name: str, capacity: int, group_id: str) -> Tournament:
        """Create a DRAFT tournament.

        Raises:
            ValidationError: empty/oversized name or capacity not 4, 8 or 16
            DuplicateNameError: name already used in the group
        """
        name = _clean_name(name, 1, TOURNAMENT_NAME_MAX, "Tournament name")
        if isinstance(capacity, bool) or capacity not in ALLOWED_TEAM_COUNTS:
            allowed = ", ".join(str(n) for n in ALLOWED_TEAM_COUNTS)
            raise ValidationError(f"Team count must be one of {allowed}, got {capacity!r}")

        with self._lock:
            if any(t.group_id == group_id and t.name == name for t in self._tournaments.values()):
                raise DuplicateNameError(f"A tournament named {name!r} already exists")

            now = utcnow()
            tournament = Tournament(
                id=new_id("t"),
                name=name,
                team_count=capacity,
                group_id=group_id,
                total_stages=stage_count(capacity),
                created_at=now,
                updated_at=now,
            )
            self._tournaments[tournament.id] = tournament

        self._persist(group_id)
        logger.info(f"Created tournament {tournament.id} ({name!r}, {capacity} teams) in group {group_id}")
        return tournament

    def start_registration(self, tournament_id: str) -> Tournament:
        """DRAFT -> REGISTRATION.

        Raises:
            TournamentNotFoundError, InvalidStateError
        """
        with self._locked(tournament_id) as tournament:
            if tournament.status is not TournamentStatus.DRAFT:
                raise InvalidStateError(
                    f"Registration can only be opened for a draft tournament "
                    f"(status: {tournament.status.value})"
                )
            tournament.status = TournamentStatus.REGISTRATION
            tournament.touch()
            self._persist(tournament.group_id)

        logger.info(f"Registration opened for tournament {tournament_id}")
        return tournament

    def register_team(
        self,
        tournament_id: str,
        name: str,
        captain_id: str,
        captain_name: str,
    ) -> Team:
        """Add a team while registration is open.

        Captain identity verification is the caller's job.

        Raises:
            TournamentNotFoundError, ValidationError, InvalidStateError,
            CapacityExceededError, DuplicateNameError
        """
        name = _clean_name(name, TEAM_NAME_MIN, TEAM_NAME_MAX, "Team name")

        with self._locked(tournament_id) as tournament:
            if tournament.status is not TournamentStatus.REGISTRATION:
                raise InvalidStateError("Registration is not open for this tournament")

            if tournament.open_slots == 0:
                raise CapacityExceededError(tournament.team_count)

            if any(t.name == name for t in tournament.teams):
                raise DuplicateNameError(f"Team name {name!r} is already taken")

            team = Team(
                id=new_id("team"),
                name=name,
                tournament_id=tournament.id,
                captain_id=captain_id,
                captain_name=captain_name,
            )
            tournament.teams.append(team)
            tournament.touch()
            self._persist(tournament.group_id)

        logger.info(
            f"Registered team {name!r} in tournament {tournament_id} "
            f"({len(tournament.teams)}/{tournament.team_count})"
        )
        return team

    def start_tournament(self, tournament_id: str) -> Tournament:
        """REGISTRATION -> ACTIVE. Generates the whole bracket.

        Raises:
            TournamentNotFoundError, InvalidStateError, IncompleteRosterError
        """
        with self._locked(tournament_id) as tournament:
            if tournament.status is not TournamentStatus.REGISTRATION:
                raise InvalidStateError(
                    "A tournament can only be started while registration is open"
                )

            if tournament.open_slots:
                raise IncompleteRosterError(tournament.open_slots)

            now = utcnow()
            tournament.matches = generate_bracket(
                tournament.teams, tournament.id, rng=self._rng, now=now
            )
            tournament.status = TournamentStatus.ACTIVE
            tournament.current_stage = 1
            tournament.touch(now)
            self._persist(tournament.group_id)

        logger.info(
            f"Started tournament {tournament_id}: {len(tournament.matches)} matches "
            f"over {tournament.total_stages} stages"
        )
        return tournament

    def report_match_result(
        self,
        tournament_id: str,
        match_id: str,
        home_score: int,
        away_score: int,
    ) -> MatchReport:
        """Record a final score, advance the winner and re-assess progress.

        Raises:
            TournamentNotFoundError, MatchNotFoundError
            InvalidStateError: tournament not active
            AlreadyCompletedError, UnassignedMatchError, InvalidScoreError
        """
        with self._locked(tournament_id) as tournament:
            if tournament.status is not TournamentStatus.ACTIVE:
                raise InvalidStateError(
                    f"Results can only be reported for an active tournament "
                    f"(status: {tournament.status.value})"
                )

            match = tournament.match(match_id)
            if match is None:
                raise MatchNotFoundError(match_id)

            now = utcnow()
            advanced = lifecycle.report(tournament, match, home_score, away_score, now)
            progress = assess_progress(tournament, now)
            tournament.touch(now)
            saved = self._persist(tournament.group_id)

        winner = tournament.team(match.winner_id)
        logger.info(
            f"Match {match_id} in {tournament_id}: {tournament.team_name(match.winner_id)} "
            f"won {home_score}-{away_score}"
        )
        if progress.is_completed:
            logger.info(
                f"Tournament {tournament_id} completed, champion: "
                f"{progress.champion.name if progress.champion else 'Unknown'}"
            )

        return MatchReport(
            match=match,
            winner=winner,
            advanced=advanced,
            progress=progress,
            saved=saved,
        )

    def start_match(self, tournament_id: str, match_id: str) -> Match:
        """Mark a READY match as IN_PROGRESS (no-op for other states)."""
        with self._locked(tournament_id) as tournament:
            match = tournament.match(match_id)
            if match is None:
                raise MatchNotFoundError(match_id)
            if match.status is MatchStatus.READY:
                lifecycle.start_match(match)
                tournament.touch()
                self._persist(tournament.group_id)
        return match

    def delete(self, tournament_id: str) -> bool:
        """Hard-delete a tournament at any status. False if it did not exist."""
        with self._lock:
            tournament = self._tournaments.pop(tournament_id, None)
            self._locks.pop(tournament_id, None)
        if tournament is None:
            return False

        self._persist(tournament.group_id)
        logger.info(f"Deleted tournament {tournament_id} ({tournament.name!r})")
        return True

    # ------------------------------------------------------------------
    # Queries (read-only)
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._tournaments)

    def get(self, tournament_id: str) -> Tournament | None:
        return self._tournaments.get(tournament_id)

    def require(self, tournament_id: str) -> Tournament:
        tournament = self.get(tournament_id)
        if tournament is None:
            raise TournamentNotFoundError(tournament_id)
        return tournament

    def list(self, group_id: str, status: TournamentStatus | None = None) -> list[Tournament]:
        """Tournaments of a group in creation order, optionally one status only."""
        with self._lock:
            tournaments = list(self._tournaments.values())
        return [
            t
            for t in tournaments
            if t.group_id == group_id and (status is None or t.status is status)
        ]

    def active(self, group_id: str) -> list[Tournament]:
        """Tournaments open for registration or in play, most recently updated first."""
        open_statuses = (TournamentStatus.REGISTRATION, TournamentStatus.ACTIVE)
        return sorted(
            (t for t in self.list(group_id) if t.status in open_statuses),
            key=lambda t: t.updated_at,
            reverse=True,
        )

    def completed(self, group_id: str) -> list[Tournament]:
        """Finished tournaments, most recently completed first."""
        return sorted(
            self.list(group_id, TournamentStatus.COMPLETED),
            key=lambda t: t.completed_at or _EPOCH,
            reverse=True,
        )

    def teams(self, tournament_id: str) -> list[Team]:
        return list(self.require(tournament_id).teams)

    def matches(self, tournament_id: str) -> list[Match]:
        return list(self.require(tournament_id).matches)

    def get_match(self, match_id: str) -> Match | None:
        """Find a match by id across every tournament."""
        with self._lock:
            tournaments = list(self._tournaments.values())
        for tournament in tournaments:
            match = tournament.match(match_id)
            if match is not None:
                return match
        return None

    def ready_matches(self, tournament_id: str) -> list[Match]:
        return [m for m in self.matches(tournament_id) if m.status is MatchStatus.READY]

    def in_progress_matches(self, tournament_id: str) -> list[Match]:
        return [m for m in self.matches(tournament_id) if m.status is MatchStatus.IN_PROGRESS]

    def current_stage_matches(self, tournament_id: str) -> list[Match]:
        return _current_stage_matches(self.require(tournament_id))

    def progress(self, tournament_id: str) -> TournamentProgress:
        """Re-derive stage and completion. Safe to call any number of times."""
        with self._locked(tournament_id) as tournament:
            before = (tournament.status, tournament.current_stage)
            progress = assess_progress(tournament)
            if (tournament.status, tournament.current_stage) != before:
                tournament.touch()
                self._persist(tournament.group_id)
            return progress

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _locked(self, tournament_id: str) -> "_TournamentLock":
        with self._lock:
            tournament = self._tournaments.get(tournament_id)
            if tournament is None:
                raise TournamentNotFoundError(tournament_id)
            lock = self._locks.setdefault(tournament_id, threading.Lock())
        return _TournamentLock(lock, tournament)

    def _persist(self, group_id: str) -> SaveOutcome:
        """Rewrite the group's snapshot. Never raises."""
        with self._lock:
            group_lock = self._group_locks.setdefault(group_id, threading.Lock())
        with group_lock:
            outcome = self._store.save(group_id, self.list(group_id))
            self.last_persist = outcome
        return outcome


class _TournamentLock:
    """Context manager holding a tournament's lock, yielding the tournament."""

    def __init__(self, lock: threading.Lock, tournament: Tournament):
        self._lock = lock
        self._tournament = tournament

    def __enter__(self) -> Tournament:
        self._lock.acquire()
        return self._tournament

    def __exit__(self, *exc) -> None:
        self._lock.release()


def _clean_name(value: str, min_len: int, max_len: int, label: str) -> str:
    name = (value or "").strip()
    if not min_len <= len(name) <= max_len:
        raise ValidationError(f"{label} must be {min_len}-{max_len} characters")
    return name
