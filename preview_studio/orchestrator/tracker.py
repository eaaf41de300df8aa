"""In-process event tracker.

Serializes units of work per pull request and tracks the tasks running
them, so shutdown can drain (or cancel) in-flight events.  Ephemeral --
empty on process restart.  Cross-process safety comes from the registry's
atomic create, not from here.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class ShuttingDownError(RuntimeError):
    """Raised when new work arrives after shutdown began."""


def pr_key(repo_full_name: str, pr_number: int) -> str:
    return f"{repo_full_name}#{pr_number}"


class EventTracker:
    """Per-PR locks plus the set of tasks currently handling events.

    Events for different PRs run concurrently; events for the same PR run
    one at a time in arrival order (``asyncio.Lock`` is FIFO).

    The tracker also provides a drain mechanism for graceful shutdown:
    ``wait_until_drained`` blocks until all tracked work has finished.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no work).
        self._shutting_down = False

    # -- Serialization ---------------------------------------------------------

    @asynccontextmanager
    async def lock(self, key: str) -> AsyncIterator[None]:
        """Run the body exclusively for *key*.  Raises ``ShuttingDownError``."""
        if self._shutting_down:
            raise ShuttingDownError

        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
            self._drain_event.clear()

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            if lock.locked():
                logger.debug("Tracker: {} busy, queueing", key)
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                # Nobody holds or waits on this key any more.
                del self._holders[key]
                del self._locks[key]
            if task is not None:
                self._tasks.discard(task)
            if not self._tasks:
                self._drain_event.set()

    # -- Query -----------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def is_busy(self, key: str) -> bool:
        return key in self._locks

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Refuse new work from now on."""
        self._shutting_down = True
        logger.info("Tracker: shutdown initiated, refusing new events")
        if not self._tasks:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    def cancel_all(self) -> int:
        """Cancel every tracked task (interrupts readiness polling).

        Last resort after ``wait_until_drained`` timed out.  Returns the
        number of tasks cancelled.
        """
        count = 0
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
                count += 1
        if count:
            logger.warning("Tracker: cancelled {} in-flight events", count)
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until no work is tracked.

        Returns ``True`` if drained, ``False`` if *timeout* expired first.
        """
        if not self._tasks:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Tracker: drain timed out after {}s with {} events still running",
                timeout,
                len(self._tasks),
            )
            return False
        else:
            return True
