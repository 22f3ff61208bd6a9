"""Playback phase — play the spoken answer with a completion listener and auto-stop."""

from __future__ import annotations

import logging
from typing import Callable

from urna.collaborators import Player
from urna.constants import PLAYBACK_AUTO_STOP
from urna.errors import PlaybackError
from urna.gestures.timers import TimerRegistry
from urna.jobs import SessionJobs
from urna.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()


class PlaybackController:
    """Starts response playback and reports when it is over.

    Playback is over when the player signals completion or when the
    auto-stop timer fires first; either way ``on_finished`` is called once
    with ``"completed"`` or ``"timeout"``.
    """

    AUTO_STOP_TIMER = "playback.auto_stop"
    LISTENER_JOB = "playback.listener"
    STOP_JOB = "playback.stop"

    def __init__(
        self,
        player: Player,
        timers: TimerRegistry,
        jobs: SessionJobs,
        *,
        auto_stop: float = PLAYBACK_AUTO_STOP,
    ) -> None:
        self._player = player
        self._timers = timers
        self._jobs = jobs
        self._auto_stop = auto_stop

        self.on_finished: Callable[[str], None] | None = None

    @property
    def is_tracking(self) -> bool:
        """True while the auto-stop timer or completion listener is alive."""
        return self._timers.is_alive(self.AUTO_STOP_TIMER) or self._jobs.is_active(self.LISTENER_JOB)

    async def start(self, audio: bytes) -> None:
        """Start playing *audio*. Raises ``PlaybackError`` if the player refuses."""
        with tracer.start_as_current_span("urna.playback", attributes={"audio.bytes": len(audio)}):
            try:
                await self._player.play(audio)
            except PlaybackError:
                raise
            except Exception as exc:
                raise PlaybackError(f"Could not play response audio: {exc}") from exc

        self._timers.start_once(self.AUTO_STOP_TIMER, self._auto_stop, self._on_timeout)
        self._jobs.submit(self.LISTENER_JOB, self._wait_finished())
        logger.info("[Playback] Playing response (%d bytes)", len(audio))

    async def pause(self) -> None:
        try:
            await self._player.pause()
            logger.info("[Playback] Paused")
        except Exception as exc:
            logger.warning("[Playback] Pause failed: %s", exc)

    async def resume(self) -> None:
        try:
            await self._player.resume()
            logger.info("[Playback] Resumed")
        except Exception as exc:
            logger.warning("[Playback] Resume failed: %s", exc)

    def release(self) -> None:
        """Cancel the auto-stop timer and the completion listener."""
        self._timers.cancel(self.AUTO_STOP_TIMER)
        self._jobs.cancel(self.LISTENER_JOB)

    async def stop(self) -> None:
        """Release tracking and stop the player."""
        self.release()
        try:
            await self._player.stop()
            logger.info("[Playback] Stopped")
        except Exception as exc:
            logger.warning("[Playback] Stop failed: %s", exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(self, reason: str) -> None:
        if self.on_finished is not None:
            self.on_finished(reason)

    async def _wait_finished(self) -> None:
        try:
            await self._player.wait_finished()
        except Exception as exc:
            # Leave it to the auto-stop timer.
            logger.warning("[Playback] Completion listener failed: %s", exc)
            return
        self._timers.cancel(self.AUTO_STOP_TIMER)
        logger.info("[Playback] Completed")
        self._finish("completed")

    def _on_timeout(self) -> None:
        logger.warning("[Playback] No completion after %.0fs — forcing stop", self._auto_stop)
        self._jobs.cancel(self.LISTENER_JOB)
        self._finish("timeout")
        self._jobs.submit(self.STOP_JOB, self.stop())
