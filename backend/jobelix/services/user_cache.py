import asyncio
import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedUser:
    id: int
    email: str
    role: str


class UserCache:
    """Short-lived map of session token -> authenticated user.

    Saves a token decode and a user lookup on bursts of requests from the
    same browser session. Entries older than ``ttl_seconds`` are never
    returned; ``sweep`` drops them from memory.
    """

    def __init__(
        self,
        ttl_seconds: float = 3.0,
        sweep_interval_seconds: float = 10.0,
        clock=time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: dict[str, tuple[CachedUser, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> CachedUser | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        user, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return user

    def set(self, key: str, user: CachedUser) -> None:
        self._entries[key] = (user, self._clock())

    def evict(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [
            key
            for key, (_, stored_at) in self._entries.items()
            if now - stored_at >= self.ttl_seconds
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def run_sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug(f"User cache sweep removed {removed} entries")
