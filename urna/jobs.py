"""Job registry for the session's in-flight asyncio tasks.

Collaborator calls (camera, recorder, inference, playback) and stream
subscriptions run as ``asyncio.Task`` objects registered here under a key,
so teardown can cancel every one of them synchronously and tests can wait
for the session to settle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class SessionJobs:
    """Tracks keyed background tasks; submitting under a live key replaces it."""

    def __init__(self, name: str = "session") -> None:
        self._name = name
        self._tasks: dict[str, asyncio.Task] = {}
        self._failure_count: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, key: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """Schedule *coro* as a background task registered under *key*."""
        self.cancel(key)
        task = asyncio.create_task(self._run(key, coro), name=f"{self._name}:{key}")
        self._tasks[key] = task
        task.add_done_callback(lambda t: self._forget(key, t))
        logger.debug("[Jobs] %s/%s submitted. Active jobs: %d", self._name, key, len(self._tasks))
        return task

    def cancel(self, key: str) -> bool:
        """Cancel the task under *key*. Returns True if one was running."""
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        if _loop_running() and task is asyncio.current_task():
            # A job may tear down its own slot; it finishes on its own.
            return False
        task.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel every pending task except the caller's own."""
        current = asyncio.current_task() if _loop_running() else None
        for key, task in list(self._tasks.items()):
            self._tasks.pop(key, None)
            if task is not current and not task.done():
                task.cancel()
        logger.debug("[Jobs] %s: all jobs cancelled.", self._name)

    def is_active(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def active_count(self) -> int:
        """Return the number of currently running tasks."""
        return sum(1 for t in self._tasks.values() if not t.done())

    @property
    def failure_count(self) -> int:
        """Total number of jobs that ended with an unexpected exception."""
        return self._failure_count

    async def drain(self) -> None:
        """Wait until no task is running, including tasks spawned meanwhile."""
        current = asyncio.current_task()
        while True:
            pending = [t for t in self._tasks.values() if not t.done() and t is not current]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]

    async def _run(self, key: str, coro: Coroutine[Any, Any, Any]) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.debug("[Jobs] %s/%s was cancelled.", self._name, key)
            raise
        except Exception as exc:
            self._failure_count += 1
            logger.error("[Jobs] %s/%s failed: %s", self._name, key, exc, exc_info=True)
            return None


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True
