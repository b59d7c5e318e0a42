"""Periodic removal of idle conversations."""

import asyncio

from loguru import logger

from supportbot.conversation.store import ConversationStore
from supportbot.conversation.usage import UsageTracker


class StaleConversationReaper:
    """
    Sweeps the store on a fixed interval, removing conversations whose
    last activity is older than the retention window.
    """

    def __init__(
        self,
        store: ConversationStore,
        usage: UsageTracker | None = None,
        retention_seconds: float = 86400.0,
        interval_seconds: float = 300.0,
    ):
        self.store = store
        self.usage = usage
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds

        self._task: asyncio.Task | None = None
        self._running = False
        self._total_reaped = 0

    def sweep(self) -> int:
        """
        Run one pass.

        Returns:
            Number of conversations removed.
        """
        cutoff = self.store.clock() - self.retention_seconds
        removed = 0

        for user_id in self.store.stale(cutoff):
            if self.store.remove(user_id):
                removed += 1

        if self.usage is not None:
            self.usage.prune()

        if removed:
            self._total_reaped += removed
            logger.debug(f"Reaped {removed} stale conversation(s)")
        return removed

    async def start(self) -> None:
        """Start the sweep loop in the background."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="conversation-reaper")
        logger.info(f"Conversation reaper started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the sweep loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Conversation reaper stopped")

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Reaper error: {e}")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def total_reaped(self) -> int:
        return self._total_reaped
