"""
Cancellable scheduling primitives for the editor session.

Everything runs on a single asyncio event loop; nothing here is thread-safe.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class CancellationToken:
    """Marks one in-flight remote request as superseded."""

    def __init__(self):
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class Debouncer:
    """
    Runs only the most recent of a burst of scheduled calls.

    ``schedule`` cancels whatever was pending and arms a new timer.
    Coroutine functions are run as tasks on the loop when the timer fires.
    """

    def __init__(self, name: str = "debouncer"):
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._callback: Optional[Callable[[], Any]] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, fn: Callable[[], Any], delay: float) -> asyncio.TimerHandle:
        """Cancel the pending call (if any) and schedule ``fn`` after ``delay`` seconds."""
        self.cancel()
        loop = asyncio.get_running_loop()
        self._callback = fn
        self._handle = loop.call_later(delay, self._fire)
        return self._handle

    def cancel(self) -> bool:
        """Drop the pending call. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._callback = None
        logger.debug(f"{self.name}: pending call cancelled")
        return True

    def flush(self) -> Optional[asyncio.Task]:
        """
        Run the pending call immediately.

        Returns the task when the callback is a coroutine function, so the
        caller can await it.
        """
        if self._handle is None:
            return None
        self._handle.cancel()
        return self._fire()

    async def drain(self) -> None:
        """Wait for callbacks that were started as tasks."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> Optional[asyncio.Task]:
        fn = self._callback
        self._handle = None
        self._callback = None
        if fn is None:
            return None

        result = fn()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
            return task
        return None

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"{self.name}: scheduled call failed: {task.exception()}")
