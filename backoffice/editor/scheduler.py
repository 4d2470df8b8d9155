"""Per-key debounce timers on the running asyncio loop.

Each key (one per save channel) has at most one pending timer; scheduling
again cancels it and starts a fresh quiet window. When a timer fires, its
callback runs as a task of its own, so cancelling timers later (on close or
navigation) never interrupts a write that has already started.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class DebounceScheduler:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._tasks: Set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: str, delay: float, callback: Callback) -> None:
        """(Re)start the quiet window for ``key``."""
        self.cancel(key)
        self._handles[key] = self.loop.call_later(delay, self._fire, key, callback)
        logger.debug("Scheduled %s in %.3fs", key, delay)

    def cancel(self, key: str) -> bool:
        """Drop the pending timer for ``key``; returns whether one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def _fire(self, key: str, callback: Callback) -> None:
        self._handles.pop(key, None)
        task = self.loop.create_task(callback(), name=f"debounce:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced callback %s failed", task.get_name(), exc_info=exc)

    async def drain(self) -> None:
        """Wait until no timer is pending and every fired callback has finished."""
        while self._handles or self._tasks:
            if self._tasks:
                await asyncio.wait(set(self._tasks))
                continue
            next_due = min(handle.when() for handle in self._handles.values())
            await asyncio.sleep(max(0.0, next_due - self.loop.time()))
