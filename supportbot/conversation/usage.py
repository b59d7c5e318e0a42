"""
Usage cap tracking.

Rolling count of completed bot replies per user, used to gate intake
for users who lean on the bot too heavily.
"""

import time
from typing import Any, Callable
from collections import defaultdict

from loguru import logger


class UsageTracker:
    """
    Per-user completion timestamps within a trailing window.

    Entries older than the window are pruned lazily on read.
    """

    def __init__(
        self,
        cap: int = 10,
        window_seconds: float = 86400.0,
        clock: Callable[[], float] = time.time,
    ):
        self.cap = cap
        self.window_seconds = window_seconds
        self.clock = clock

        self._records: dict[str, list[float]] = defaultdict(list)
        self._informed: set[str] = set()

    def record_completion(self, user_id: str) -> None:
        """Record a completed bot reply for a user."""
        self._records[user_id].append(self.clock())

    def count(self, user_id: str) -> int:
        """Completions within the trailing window."""
        if user_id not in self._records:
            return 0

        cutoff = self.clock() - self.window_seconds
        self._records[user_id] = [ts for ts in self._records[user_id] if ts > cutoff]
        return len(self._records[user_id])

    def is_cap_met(self, user_id: str) -> bool:
        """Check whether the user has used up their replies for the window."""
        met = self.cap > 0 and self.count(user_id) >= self.cap
        if not met:
            # A fresh capped window warns again
            self._informed.discard(user_id)
        return met

    def is_cap_informed(self, user_id: str) -> bool:
        return user_id in self._informed

    def mark_cap_informed(self, user_id: str) -> None:
        self._informed.add(user_id)
        logger.info(f"{user_id} has hit their usage cap")

    def prune(self) -> int:
        """
        Drop users with no completions left in the window.

        Returns:
            Number of users dropped.
        """
        stale = [user_id for user_id in list(self._records) if self.count(user_id) == 0]
        for user_id in stale:
            del self._records[user_id]
            self._informed.discard(user_id)
        return len(stale)

    def get_stats(self) -> dict[str, Any]:
        """Get tracker statistics."""
        return {
            "tracked_users": len(self._records),
            "informed_users": len(self._informed),
            "cap": self.cap,
            "window_seconds": self.window_seconds,
        }
