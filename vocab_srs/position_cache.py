"""Client-side mirror of the last known session position.

The server session is the source of truth. This file-backed mirror is
only read when the server call fails outright, and is rewritten from the
server's answer after every successful call. Answers given while the
server is unreachable wait in ``pending`` with their request ids until
they can be sent. When both sides know a position in the same set, the
more advanced index wins, which is only safe once nothing is pending.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from backend.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CachedPosition:
    exam: str
    level: str
    session_id: str | None
    current_set: int
    current_index: int
    words: list[dict] = field(default_factory=list)  # id, word, definition of the current set
    ratings: dict[str, int] = field(default_factory=dict)  # word id -> last rating
    pending: list[dict] = field(default_factory=list)  # word_id, rating, request_id not yet sent
    timestamp: float = field(default_factory=time.time)

    def ratings_for_set(self) -> dict[str, int]:
        """Drop ratings left over from words outside the current set."""
        current_ids = {str(word["id"]) for word in self.words}
        return {
            word_id: rating for word_id, rating in self.ratings.items() if word_id in current_ids
        }


class ClientSessionCache:
    """Stores one ``CachedPosition`` as JSON on disk."""

    def __init__(self, path: str | Path | None = None, ttl_seconds: int | None = None) -> None:
        self.path = Path(path or settings.client_cache_path)
        if ttl_seconds is None:
            ttl_seconds = settings.client_cache_ttl_seconds
        self.ttl_seconds = ttl_seconds

    def save(self, position: CachedPosition) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(position)), encoding="utf-8")

    def load(self, exam: str, level: str, now: float | None = None) -> CachedPosition | None:
        """Return the cached position for exam/level if it is fresh or holds unsent answers."""
        if not self.path.exists():
            return None
        try:
            position = CachedPosition(**json.loads(self.path.read_text(encoding="utf-8")))
        except (ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable session cache %s: %s", self.path, exc)
            return None

        now = now if now is not None else time.time()
        if position.exam.upper() != exam.upper() or position.level != level:
            return None
        # Unsent answers outlive the TTL so they still reach the server.
        if now - position.timestamp >= self.ttl_seconds and not position.pending:
            return None
        if not position.words:
            return None
        return position

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def reconcile(
    server_set: int,
    server_index: int,
    cached: CachedPosition | None,
    session_id: str | None = None,
) -> int:
    """Return the index to resume at within the server's current set.

    The cache only counts when it describes the same session and set and
    every answer it holds has reached the server.
    """
    if cached is None or cached.pending or cached.current_set != server_set:
        return server_index
    if session_id is not None and cached.session_id != session_id:
        return server_index
    return max(server_index, cached.current_index)
