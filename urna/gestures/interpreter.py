"""GestureInterpreter — turns raw pointer events into logical session commands.

Two independent state machines live here:

* a **tap counter** with an expiring window (triple tap → toggle recording),
* a **hold tracker** driven by a periodic progress timer (3s hold → capture).

A single tap is overloaded: while a response is playing it always toggles
playback and never touches the tap counter.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from urna.constants import HOLD_DURATION, HOLD_TICK, TAP_TRIGGER_COUNT, TAP_WINDOW
from urna.gestures.timers import TimerRegistry

logger = logging.getLogger(__name__)


class CommandKind(str, enum.Enum):
    BEGIN_CAPTURE = "begin_capture"
    CAPTURE_PROGRESS = "capture_progress"
    CAPTURE_IMAGE = "capture_image"
    CAPTURE_CANCELLED = "capture_cancelled"
    TOGGLE_RECORDING = "toggle_recording"
    TOGGLE_PLAYBACK = "toggle_playback"


@dataclass(frozen=True)
class GestureCommand:
    kind: CommandKind
    progress: float = 0.0


@dataclass(frozen=True)
class GestureConfig:
    """Timing thresholds for gesture recognition (seconds)."""

    hold_duration: float = HOLD_DURATION
    hold_tick: float = HOLD_TICK
    tap_window: float = TAP_WINDOW
    tap_trigger_count: int = TAP_TRIGGER_COUNT

    @property
    def hold_ticks(self) -> int:
        """Number of progress ticks that make up a complete hold."""
        return max(1, round(self.hold_duration / self.hold_tick))


class GestureInterpreter:
    """Consumes ``tap`` / ``hold_start`` / ``hold_end`` and emits commands.

    Parameters
    ----------
    timers : TimerRegistry
        Registry that owns the tap-window and hold-progress timers.
    config : GestureConfig
        Thresholds; defaults to 3s hold, 100ms ticks, 800ms tap window, 3 taps.
    playback_active : Callable[[], bool]
        Predicate telling whether a response is currently playing.
    """

    HOLD_TIMER = "gesture.hold"
    TAP_TIMER = "gesture.tap_window"

    def __init__(
        self,
        timers: TimerRegistry,
        *,
        config: GestureConfig | None = None,
        playback_active: Callable[[], bool] | None = None,
    ) -> None:
        self._timers = timers
        self._config = config or GestureConfig()
        self._playback_active = playback_active or (lambda: False)

        # Tap state
        self._tap_count: int = 0

        # Hold state
        self._pressed: bool = False
        self._hold_ticks: int = 0

        # Wired by the orchestrator
        self.on_command: Callable[[GestureCommand], None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def config(self) -> GestureConfig:
        return self._config

    @property
    def tap_count(self) -> int:
        return self._tap_count

    @property
    def hold_progress(self) -> float:
        return min(1.0, self._hold_ticks / self._config.hold_ticks)

    @property
    def is_holding(self) -> bool:
        """True while the hold-progress timer is running."""
        return self._timers.is_alive(self.HOLD_TIMER)

    def tap(self) -> None:
        if self._playback_active():
            logger.debug("[Gesture] Tap during playback → toggle playback")
            self._emit(GestureCommand(CommandKind.TOGGLE_PLAYBACK))
            return

        self._tap_count += 1
        logger.debug("[Gesture] Tap count: %d", self._tap_count)

        if self._tap_count == 1:
            self._timers.start_once(self.TAP_TIMER, self._config.tap_window, self._on_tap_window_expired)

        if self._tap_count >= self._config.tap_trigger_count:
            self._timers.cancel(self.TAP_TIMER)
            self._tap_count = 0
            logger.info("[Gesture] Triple tap → toggle recording")
            self._emit(GestureCommand(CommandKind.TOGGLE_RECORDING))

    def hold_start(self) -> None:
        if self._pressed:
            return
        self._pressed = True
        self._hold_ticks = 0
        logger.info("[Gesture] Hold started")
        self._emit(GestureCommand(CommandKind.BEGIN_CAPTURE))
        self._timers.start_periodic(self.HOLD_TIMER, self._config.hold_tick, self._on_hold_tick)

    def hold_end(self) -> None:
        if not self._pressed:
            return
        self._pressed = False
        if self._timers.cancel(self.HOLD_TIMER):
            self._hold_ticks = 0
            logger.info("[Gesture] Hold released early → capture cancelled")
            self._emit(GestureCommand(CommandKind.CAPTURE_CANCELLED))

    def reset_hold(self) -> None:
        """Stop a running hold without emitting anything.

        The press stays consumed: capture is not re-armed until release and re-press.
        """
        self._timers.cancel(self.HOLD_TIMER)
        self._hold_ticks = 0

    def close(self) -> None:
        """Cancel every gesture timer and forget partial gestures."""
        self._timers.cancel(self.TAP_TIMER)
        self._timers.cancel(self.HOLD_TIMER)
        self._tap_count = 0
        self._hold_ticks = 0
        self._pressed = False

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _emit(self, command: GestureCommand) -> None:
        if self.on_command is not None:
            self.on_command(command)

    def _on_tap_window_expired(self) -> None:
        logger.debug("[Gesture] Tap window expired after %d tap(s)", self._tap_count)
        self._tap_count = 0

    def _on_hold_tick(self) -> None:
        self._hold_ticks += 1
        progress = self.hold_progress
        self._emit(GestureCommand(CommandKind.CAPTURE_PROGRESS, progress=progress))

        if self._hold_ticks >= self._config.hold_ticks:
            self._timers.cancel(self.HOLD_TIMER)
            self._hold_ticks = 0
            logger.info("[Gesture] Hold complete → capture image")
            self._emit(GestureCommand(CommandKind.CAPTURE_IMAGE, progress=1.0))
