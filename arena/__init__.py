"""
arena - HTTP command layer and SQLite store for bracketbot

The arena holds no tournament rules of its own; it maps requests onto the
registry and player directory and stores snapshots. The FastAPI app lives
in arena.server (needs the [arena] extra); ArenaDB needs only the stdlib.
"""

from .db import ArenaDB

__all__ = ["ArenaDB"]
