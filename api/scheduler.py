"""Cancellable phase timers keyed by (table id, phase)."""

import asyncio
import logging
from typing import Awaitable, Callable

from core.game.state import Phase

LOGGER = logging.getLogger("blackjack.scheduler")

TimerKey = tuple[str, Phase]
Sleep = Callable[[float], Awaitable[None]]


class PhaseScheduler:
    """
    Runs background timers for timed table phases.

    Each timer is an asyncio task registered under (table id, phase);
    scheduling under a key replaces the timer already there. Callbacks still
    have to check that their table and phase are current before acting.
    """

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._tasks: dict[TimerKey, asyncio.Task] = {}

    def every(
        self,
        key: TimerKey,
        interval: float,
        callback: Callable[[], Awaitable[bool]],
    ) -> asyncio.Task:
        """Call ``callback`` every ``interval`` seconds until it returns False."""
        return self._start(key, self._periodic(key, interval, callback))

    def once(
        self,
        key: TimerKey,
        delay: float,
        callback: Callable[[], Awaitable[None]],
    ) -> asyncio.Task:
        """Call ``callback`` once after ``delay`` seconds."""
        return self._start(key, self._delayed(key, delay, callback))

    def cancel(self, key: TimerKey) -> bool:
        """
        Cancel the timer under a key.

        A timer cancelling its own key only unregisters itself; it keeps
        running to the end of its callback.
        """
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is not asyncio.current_task() and not task.done():
            task.cancel()
        return True

    def cancel_table(self, table_id: str) -> int:
        """Cancel every timer bound to a table."""
        keys = [key for key in self._tasks if key[0] == table_id]
        for key in keys:
            self.cancel(key)
        return len(keys)

    async def cancel_all(self) -> None:
        """Cancel every timer and wait for the tasks to wind down."""
        tasks = [task for task in self._tasks.values() if task is not asyncio.current_task()]
        for key in list(self._tasks):
            self.cancel(key)
        await asyncio.gather(*tasks, return_exceptions=True)

    def is_scheduled(self, key: TimerKey) -> bool:
        """Check if a live timer is registered under a key."""
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def keys(self) -> list[TimerKey]:
        """Return the keys of live timers."""
        return [key for key, task in self._tasks.items() if not task.done()]

    def _start(self, key: TimerKey, coro: Awaitable[None]) -> asyncio.Task:
        self.cancel(key)
        task = asyncio.ensure_future(coro)
        self._tasks[key] = task
        task.add_done_callback(lambda done: self._forget(key, done))
        return task

    def _forget(self, key: TimerKey, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _periodic(
        self,
        key: TimerKey,
        interval: float,
        callback: Callable[[], Awaitable[bool]],
    ) -> None:
        try:
            while True:
                await self._sleep(interval)
                if not await callback():
                    return
        except asyncio.CancelledError:
            LOGGER.debug("Timer %s/%s cancelled", key[0], key[1].value)
            raise
        except Exception:
            LOGGER.exception("Timer %s/%s failed", key[0], key[1].value)

    async def _delayed(
        self,
        key: TimerKey,
        delay: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await self._sleep(delay)
            await callback()
        except asyncio.CancelledError:
            LOGGER.debug("Timer %s/%s cancelled", key[0], key[1].value)
            raise
        except Exception:
            LOGGER.exception("Timer %s/%s failed", key[0], key[1].value)
