"""
Per-conversation debounce timer.

A rearmable one-shot delay built on asyncio tasks:
- rearm() cancels a sleeping fire and schedules a new one
- once the delay elapses the fire is committed and a rearm cannot cancel it
- fires of the same timer run one at a time
- dispose() is idempotent
"""

import asyncio
from typing import Callable, Awaitable

from loguru import logger


FireCallback = Callable[[], Awaitable[None]]


class DebounceTimer:
    """
    Cancellable delayed task owned by a single conversation.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._callback: FireCallback | None = None

        # The sleeping task, if a fire is scheduled but not yet committed
        self._pending: asyncio.Task | None = None

        # Strong references to every task this timer spawned
        self._tasks: set[asyncio.Task] = set()

        self._fire_lock = asyncio.Lock()
        self._disposed = False
        self._fire_count = 0

    def wire(self, callback: FireCallback) -> None:
        """Attach the fire callback. A timer can only be wired once."""
        if self._callback is not None:
            raise RuntimeError(f"Timer {self.name!r} is already wired")
        self._callback = callback

    @property
    def is_wired(self) -> bool:
        return self._callback is not None

    @property
    def is_pending(self) -> bool:
        """True while a fire is scheduled and still cancellable."""
        return self._pending is not None and not self._pending.done()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def fire_count(self) -> int:
        return self._fire_count

    def rearm(self, delay: float) -> None:
        """
        Schedule a fire after `delay` seconds, replacing any pending one.

        Must be called from inside the running event loop.
        """
        if self._disposed:
            logger.debug(f"Ignoring rearm of disposed timer {self.name}")
            return
        if self._callback is None:
            raise RuntimeError(f"Timer {self.name!r} has no callback")

        self._cancel_pending()

        task = asyncio.create_task(self._run(delay), name=f"debounce:{self.name}")
        self._pending = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def dispose(self) -> None:
        """Cancel any scheduled fire and refuse further rearms."""
        if self._disposed:
            return
        self._disposed = True
        self._cancel_pending()

    async def join(self) -> None:
        """Wait until no fire is scheduled or running."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _run(self, delay: float) -> None:
        await asyncio.sleep(max(delay, 0))

        # Committed: from here on a rearm schedules a separate fire
        if self._pending is asyncio.current_task():
            self._pending = None

        async with self._fire_lock:
            if self._disposed:
                return
            self._fire_count += 1
            try:
                await self._callback()
            except Exception as e:
                logger.error(f"Timer {self.name} callback failed: {e}")
