"""Named, cancellable timers on top of the event loop's ``call_later``.

Every timer in the session (hold progress, tap window, playback auto-stop)
is registered under a name so the owner can ask which timers are alive and
cancel all of them in one synchronous call on teardown.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay (``asyncio`` loop compatible)."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def time(self) -> float: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return self.loop.call_later(delay, callback, *args)

    def time(self) -> float:
        return self.loop.time()


class TimerRegistry:
    """Owns a set of named one-shot and periodic timers.

    Starting a timer under a name that is already alive replaces it.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._handles: dict[str, TimerHandle] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def start_once(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        """Run *callback* once after *delay* seconds."""
        self.cancel(name)
        self._handles[name] = self._scheduler.call_later(delay, self._fire_once, name, callback)
        logger.debug("[Timers] One-shot %s armed (%.2fs)", name, delay)

    def start_periodic(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Run *callback* every *interval* seconds until cancelled."""
        self.cancel(name)
        self._handles[name] = self._scheduler.call_later(
            interval, self._fire_periodic, name, interval, callback
        )
        logger.debug("[Timers] Periodic %s armed (%.2fs)", name, interval)

    def cancel(self, name: str) -> bool:
        """Cancel the timer registered under *name*. Returns True if one was alive."""
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug("[Timers] %s cancelled", name)
        return True

    def cancel_all(self) -> None:
        """Cancel every alive timer (e.g. on session teardown)."""
        for name in list(self._handles):
            self.cancel(name)

    def is_alive(self, name: str) -> bool:
        return name in self._handles

    def alive(self) -> set[str]:
        """Return the names of every timer that has not fired or been cancelled."""
        return set(self._handles)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire_once(self, name: str, callback: Callable[[], None]) -> None:
        self._handles.pop(name, None)
        callback()

    def _fire_periodic(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        # Re-arm first so the callback may cancel its own timer.
        self._handles[name] = self._scheduler.call_later(
            interval, self._fire_periodic, name, interval, callback
        )
        callback()
