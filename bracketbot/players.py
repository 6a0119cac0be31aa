"""
bracketbot/players.py - Links between chat users and verified Riot accounts

A user links a Riot ID once per group. Team captains must be linked before
they can register a team; the command layers enforce that by calling
PlayerDirectory.require().
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .errors import AlreadyLinkedError, PlayerNotFoundError
from .identity import Account, IdentityClient
from .models import parse_iso, to_iso, utcnow

if TYPE_CHECKING:
    from .storage import SaveOutcome, SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class PlayerProfile:
    """A chat user's verified Riot account."""

    user_id: str
    riot_id: str  # "PlayerName#1234"
    puuid: str
    region: str
    game_name: str
    tag_line: str
    verified_at: datetime = field(default_factory=utcnow)
    last_verified: datetime = field(default_factory=utcnow)

    @classmethod
    def from_account(cls, user_id: str, account: Account, now: datetime | None = None) -> "PlayerProfile":
        now = now or utcnow()
        return cls(
            user_id=user_id,
            riot_id=account.riot_id,
            puuid=account.puuid,
            region=account.region,
            game_name=account.game_name,
            tag_line=account.tag_line,
            verified_at=now,
            last_verified=now,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "riot_id": self.riot_id,
            "puuid": self.puuid,
            "region": self.region,
            "game_name": self.game_name,
            "tag_line": self.tag_line,
            "verified_at": to_iso(self.verified_at),
            "last_verified": to_iso(self.last_verified),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerProfile":
        return cls(
            user_id=data["user_id"],
            riot_id=data["riot_id"],
            puuid=data["puuid"],
            region=data.get("region", "americas"),
            game_name=data["game_name"],
            tag_line=data["tag_line"],
            verified_at=parse_iso(data.get("verified_at")) or utcnow(),
            last_verified=parse_iso(data.get("last_verified")) or utcnow(),
        )


class PlayerDirectory:
    """Group-scoped player links, persisted write-through to ``store``."""

    def __init__(self, store: "SnapshotStore", identity: IdentityClient):
        self._store = store
        self._identity = identity
        self._groups: dict[str, dict[str, PlayerProfile]] = {}
        self._lock = threading.Lock()
        self.last_persist: SaveOutcome | None = None

    @property
    def identity_configured(self) -> bool:
        return self._identity.configured

    def initialize(self) -> int:
        """Load every group's players from the store. Returns the count."""
        total = 0
        for group_id in self._store.player_groups():
            players = self._store.load_players(group_id)
            if players:
                self._groups[group_id] = {p.user_id: p for p in players}
                total += len(players)
        logger.info(f"Loaded {total} linked players")
        return total

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, group_id: str, user_id: str) -> PlayerProfile | None:
        return self._groups.get(group_id, {}).get(user_id)

    def require(self, group_id: str, user_id: str) -> PlayerProfile:
        profile = self.get(group_id, user_id)
        if profile is None:
            raise PlayerNotFoundError(user_id)
        return profile

    def list(self, group_id: str) -> list[PlayerProfile]:
        return list(self._groups.get(group_id, {}).values())

    def find_by_riot_id(self, group_id: str, riot_id: str) -> PlayerProfile | None:
        wanted = riot_id.strip().lower()
        return next(
            (p for p in self.list(group_id) if p.riot_id.lower() == wanted),
            None,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def link(self, group_id: str, user_id: str, riot_id: str) -> PlayerProfile:
        """Verify ``riot_id`` and link it to ``user_id``.

        Raises:
            AlreadyLinkedError: user already linked, or riot id taken
            IdentityError: verification failed
        """
        self._check_unclaimed(group_id, user_id, riot_id)
        account = self._identity.verify(riot_id)

        with self._lock:
            # Re-checked: another link may have landed during the lookup
            self._check_unclaimed(group_id, user_id, riot_id)
            profile = PlayerProfile.from_account(user_id, account)
            self._groups.setdefault(group_id, {})[user_id] = profile
            self._persist(group_id)

        logger.info(f"Linked {profile.riot_id} to user {user_id} in group {group_id}")
        return profile

    def reverify(self, group_id: str, user_id: str) -> PlayerProfile:
        """Look the linked account up again and refresh it."""
        profile = self.require(group_id, user_id)
        account = self._identity.verify(profile.riot_id)

        with self._lock:
            profile.puuid = account.puuid
            profile.region = account.region
            profile.last_verified = utcnow()
            self._persist(group_id)
        return profile

    def unlink(self, group_id: str, user_id: str) -> bool:
        with self._lock:
            removed = self._groups.get(group_id, {}).pop(user_id, None)
            if removed is None:
                return False
            self._persist(group_id)

        logger.info(f"Unlinked {removed.riot_id} from user {user_id}")
        return True

    def _check_unclaimed(self, group_id: str, user_id: str, riot_id: str) -> None:
        existing = self.get(group_id, user_id)
        if existing is not None:
            raise AlreadyLinkedError(
                f"You are already registered as {existing.riot_id}. "
                "Unlink first to change it, or re-verify instead."
            )
        if self.find_by_riot_id(group_id, riot_id) is not None:
            raise AlreadyLinkedError("This Riot ID is already registered by another user.")

    def _persist(self, group_id: str) -> None:
        self.last_persist = self._store.save_players(group_id, self.list(group_id))
