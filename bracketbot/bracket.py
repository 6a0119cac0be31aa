"""
bracketbot/bracket.py - Single-elimination bracket generation

Builds every match of the tournament in one call:

  1. Shuffle the teams (uniform, no strength seeding).
  2. Lay out the tree by logical (stage, position) slots.
  3. Allocate a real id per slot.
  4. Resolve forward links from slot keys to ids.

Stage 1 gets the shuffled teams in pairs and starts READY. Later stages
start PENDING with empty slots and fill in as winners propagate.
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .models import Match, MatchStatus, Team, new_id, utcnow

logger = logging.getLogger(__name__)

SlotKey = tuple[int, int]  # (stage, position)


@dataclass(frozen=True)
class Slot:
    """A match position in the tree before it has an id."""

    stage: int
    position: int
    next_slot: SlotKey | None


def stage_count(team_count: int) -> int:
    """Number of stages for a power-of-two field. Raises ValueError otherwise."""
    if team_count < 2 or team_count & (team_count - 1):
        raise ValueError(f"Team count must be a power of two >= 2, got {team_count}")
    return int(math.log2(team_count))


def layout(team_count: int) -> list[Slot]:
    """All slots of the tree, stage by stage, positions ascending."""
    total = stage_count(team_count)
    slots = []
    for stage in range(1, total + 1):
        for position in range(1, 2 ** (total - stage) + 1):
            if stage < total:
                next_slot = (stage + 1, math.ceil(position / 2))
            else:
                next_slot = None
            slots.append(Slot(stage, position, next_slot))
    return slots


def generate_bracket(
    teams: Sequence[Team],
    tournament_id: str,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[Match]:
    """Create the full match tree for ``teams``.

    Args:
        teams: Registered teams; length must be a power of two.
        tournament_id: Owner of the new matches.
        rng: Source of the seeding shuffle (default: module-level random).
        now: Creation timestamp for every match.

    Returns:
        Matches ordered by stage, then position.
    """
    slots = layout(len(teams))
    now = now or utcnow()

    seeded = list(teams)
    (rng or random).shuffle(seeded)

    ids: dict[SlotKey, str] = {(s.stage, s.position): new_id("match") for s in slots}

    matches = []
    for slot in slots:
        match = Match(
            id=ids[(slot.stage, slot.position)],
            tournament_id=tournament_id,
            stage=slot.stage,
            position=slot.position,
            next_match_id=ids[slot.next_slot] if slot.next_slot else None,
            created_at=now,
            updated_at=now,
        )

        if slot.stage == 1:
            home = seeded[2 * (slot.position - 1)]
            away = seeded[2 * (slot.position - 1) + 1]
            match.home_team_id = home.id
            match.away_team_id = away.id
            match.status = MatchStatus.READY

        matches.append(match)

    logger.debug(
        f"Generated {len(matches)} matches over {slots[-1].stage} stages "
        f"for tournament {tournament_id}"
    )
    return matches
