"""
bracketbot/models.py - Tournament, team and match records

Plain dataclasses. A Tournament owns its teams and matches; matches point
at teams and at each other by id only. Serialisation to and from JSON-ready
dicts lives here so every store writes the same snapshot shape.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# ============================================================================
# Constants
# ============================================================================

ALLOWED_TEAM_COUNTS = (4, 8, 16)
FORMAT_SINGLE_ELIMINATION = "single-elimination"


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Short random id, e.g. 'match_3f9a1c2b7d4e'."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_iso(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ============================================================================
# Status enums
# ============================================================================

class TournamentStatus(str, Enum):
    DRAFT = "draft"
    REGISTRATION = "registration"
    ACTIVE = "active"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    PENDING = "pending"  # At least one side still unknown
    READY = "ready"  # Both sides known, no result yet
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ============================================================================
# Records
# ============================================================================

@dataclass
class Team:
    """A registered team. Never mutated after registration."""

    id: str
    name: str
    tournament_id: str
    captain_id: str  # Chat-platform user id
    captain_name: str
    registered_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tournament_id": self.tournament_id,
            "captain_id": self.captain_id,
            "captain_name": self.captain_name,
            "registered_at": to_iso(self.registered_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Team":
        return cls(
            id=data["id"],
            name=data["name"],
            tournament_id=data["tournament_id"],
            captain_id=data["captain_id"],
            captain_name=data.get("captain_name", ""),
            registered_at=parse_iso(data.get("registered_at")) or utcnow(),
        )


@dataclass
class Match:
    """One game in the bracket, identified by (stage, position)."""

    id: str
    tournament_id: str
    stage: int  # 1 = first round
    position: int  # 1-based within the stage
    home_team_id: str | None = None
    away_team_id: str | None = None
    winner_id: str | None = None
    home_score: int | None = None
    away_score: int | None = None
    status: MatchStatus = MatchStatus.PENDING
    next_match_id: str | None = None  # None for the final
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is MatchStatus.COMPLETED

    @property
    def has_both_teams(self) -> bool:
        return self.home_team_id is not None and self.away_team_id is not None

    @property
    def loser_id(self) -> str | None:
        if self.winner_id is None:
            return None
        return self.away_team_id if self.winner_id == self.home_team_id else self.home_team_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "stage": self.stage,
            "position": self.position,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "winner_id": self.winner_id,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status.value,
            "next_match_id": self.next_match_id,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "completed_at": to_iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Match":
        return cls(
            id=data["id"],
            tournament_id=data["tournament_id"],
            stage=data["stage"],
            position=data["position"],
            home_team_id=data.get("home_team_id"),
            away_team_id=data.get("away_team_id"),
            winner_id=data.get("winner_id"),
            home_score=data.get("home_score"),
            away_score=data.get("away_score"),
            status=MatchStatus(data.get("status", MatchStatus.PENDING.value)),
            next_match_id=data.get("next_match_id"),
            created_at=parse_iso(data.get("created_at")) or utcnow(),
            updated_at=parse_iso(data.get("updated_at")) or utcnow(),
            completed_at=parse_iso(data.get("completed_at")),
        )


@dataclass
class Tournament:
    """A single-elimination tournament scoped to one group (chat server)."""

    id: str
    name: str
    team_count: int  # Capacity, fixed at creation
    group_id: str
    status: TournamentStatus = TournamentStatus.DRAFT
    current_stage: int = 1
    total_stages: int = 0  # log2(team_count), fixed at creation
    format: str = FORMAT_SINGLE_ELIMINATION
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None
    teams: list[Team] = field(default_factory=list)
    matches: list[Match] = field(default_factory=list)

    def team(self, team_id: str | None) -> Team | None:
        if team_id is None:
            return None
        return next((t for t in self.teams if t.id == team_id), None)

    def team_name(self, team_id: str | None) -> str:
        team = self.team(team_id)
        return team.name if team else "Unknown"

    def match(self, match_id: str | None) -> Match | None:
        if match_id is None:
            return None
        return next((m for m in self.matches if m.id == match_id), None)

    def stage_matches(self, stage: int) -> list[Match]:
        return sorted(
            (m for m in self.matches if m.stage == stage),
            key=lambda m: m.position,
        )

    @property
    def open_slots(self) -> int:
        return max(0, self.team_count - len(self.teams))

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now or utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "team_count": self.team_count,
            "format": self.format,
            "status": self.status.value,
            "group_id": self.group_id,
            "current_stage": self.current_stage,
            "total_stages": self.total_stages,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "completed_at": to_iso(self.completed_at),
            "teams": [t.to_dict() for t in self.teams],
            "matches": [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Tournament":
        return cls(
            id=data["id"],
            name=data["name"],
            team_count=data["team_count"],
            group_id=data["group_id"],
            status=TournamentStatus(data.get("status", TournamentStatus.DRAFT.value)),
            current_stage=data.get("current_stage", 1),
            total_stages=data["total_stages"],
            format=data.get("format", FORMAT_SINGLE_ELIMINATION),
            created_at=parse_iso(data.get("created_at")) or utcnow(),
            updated_at=parse_iso(data.get("updated_at")) or utcnow(),
            completed_at=parse_iso(data.get("completed_at")),
            teams=[Team.from_dict(t) for t in data.get("teams", [])],
            matches=[Match.from_dict(m) for m in data.get("matches", [])],
        )
