"""Semantic user feedback: spoken cues plus vibration patterns.

Every cue is fire-and-forget. Speech and vibration run as background tasks;
a new spoken cue interrupts the previous one, so the user always hears the
most recent state of the session.
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass

from urna.collaborators import Speaker, Vibrator
from urna.jobs import SessionJobs

logger = logging.getLogger(__name__)


class FeedbackKind(str, enum.Enum):
    READY = "ready"
    CAPTURE_START = "capture_start"
    CAPTURE_COMPLETE = "capture_complete"
    CAPTURE_DEGRADED = "capture_degraded"
    MICROPHONE_START = "microphone_start"
    MICROPHONE_STOP = "microphone_stop"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    NEED_IMAGE = "need_image"
    NEED_AUDIO = "need_audio"
    BUSY = "busy"
    PERMISSION_DENIED = "permission_denied"
    RECORD_FAILED = "record_failed"
    INVALID_IMAGE = "invalid_image"
    INVALID_AUDIO = "invalid_audio"
    PLAYBACK_FAILED = "playback_failed"
    PLAYBACK_TOGGLED = "playback_toggled"
    SPEAK = "speak"
    GOODBYE = "goodbye"


@dataclass(frozen=True)
class Cue:
    phrase: str | None = None
    vibration: tuple[int, ...] | None = None


_ERROR_PATTERN = (0, 300, 100, 300)

CUES: dict[FeedbackKind, Cue] = {
    FeedbackKind.READY: Cue(
        "URNA is ready. Hold the screen for 3 seconds to take a picture, "
        "then tap 3 times to record your question."
    ),
    FeedbackKind.CAPTURE_START: Cue("Starting capture", (0, 100, 100, 100)),
    FeedbackKind.CAPTURE_COMPLETE: Cue("Capture complete", (0, 200, 100, 200)),
    FeedbackKind.CAPTURE_DEGRADED: Cue("Camera unavailable, using a placeholder picture", _ERROR_PATTERN),
    FeedbackKind.MICROPHONE_START: Cue(
        "Microphone on. Start speaking now. Tap 3 times again to stop recording.",
        (0, 50, 50, 50, 50, 50),
    ),
    FeedbackKind.MICROPHONE_STOP: Cue("Microphone off", (0, 100, 200, 100)),
    FeedbackKind.PROCESSING: Cue("Processing", (0, 50)),
    FeedbackKind.SUCCESS: Cue("Done", (0, 100, 100, 100, 100, 100)),
    FeedbackKind.ERROR: Cue("Something went wrong", _ERROR_PATTERN),
    FeedbackKind.NEED_IMAGE: Cue("No picture yet. Hold the screen for 3 seconds to take a picture."),
    FeedbackKind.NEED_AUDIO: Cue("Picture taken. Now tap 3 times to record your question."),
    FeedbackKind.BUSY: Cue("Still processing, please wait"),
    FeedbackKind.PERMISSION_DENIED: Cue("Microphone permission denied", _ERROR_PATTERN),
    FeedbackKind.RECORD_FAILED: Cue("Recording failed, please try again", _ERROR_PATTERN),
    FeedbackKind.INVALID_IMAGE: Cue("The picture is not valid, please take it again", _ERROR_PATTERN),
    FeedbackKind.INVALID_AUDIO: Cue("The recording is not valid, please record again", _ERROR_PATTERN),
    FeedbackKind.PLAYBACK_FAILED: Cue("Could not play the answer", _ERROR_PATTERN),
    FeedbackKind.PLAYBACK_TOGGLED: Cue(None, (0, 30)),
    FeedbackKind.SPEAK: Cue(),
    FeedbackKind.GOODBYE: Cue("Leaving URNA. Goodbye!"),
}


class FeedbackNotifier:
    """Concrete ``Notifier`` that drives a speaker and a vibrator.

    Parameters
    ----------
    speaker : Speaker
        Text-to-speech collaborator.
    vibrator : Vibrator | None
        Haptic collaborator; haptics are skipped when absent.
    enable_audio : bool
        Speak cues (``URNA_ENABLE_AUDIO_FEEDBACK``).
    enable_haptics : bool
        Vibrate cues (``URNA_ENABLE_HAPTIC_FEEDBACK``).
    max_history : int
        Number of recent cues kept in ``history``.
    """

    def __init__(
        self,
        speaker: Speaker,
        vibrator: Vibrator | None = None,
        *,
        enable_audio: bool = True,
        enable_haptics: bool = True,
        max_history: int = 100,
    ) -> None:
        self._speaker = speaker
        self._vibrator = vibrator
        self._enable_audio = enable_audio
        self._enable_haptics = enable_haptics
        self._jobs = SessionJobs("feedback")
        self._haptic_ids = itertools.count(1)
        self._max_history = max_history
        self.history: list[tuple[FeedbackKind, str | None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def notify(self, kind: FeedbackKind, text: str | None = None) -> None:
        cue = CUES.get(kind, Cue())
        phrase = text or cue.phrase
        self.history.append((kind, phrase))
        if len(self.history) > self._max_history:
            del self.history[: len(self.history) - self._max_history]
        logger.debug("[Feedback] %s: %s", kind.value, phrase)

        try:
            if self._enable_haptics and self._vibrator is not None and cue.vibration:
                self._jobs.submit(f"haptic-{next(self._haptic_ids)}", self._vibrate(list(cue.vibration)))
            if self._enable_audio and phrase:
                # Latest phrase replaces whatever is still being spoken
                self._jobs.submit("speech", self._speak(phrase))
        except RuntimeError as exc:
            logger.debug("[Feedback] No running loop for %s: %s", kind.value, exc)

    async def drain(self) -> None:
        await self._jobs.drain()

    def close(self) -> None:
        """Cancel any cue still being spoken or vibrated."""
        self._jobs.cancel_all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _speak(self, phrase: str) -> None:
        try:
            await self._speaker.speak(phrase)
        except Exception as exc:
            logger.warning("[Feedback] Speech failed: %s", exc)

    async def _vibrate(self, pattern: list[int]) -> None:
        try:
            await self._vibrator.vibrate(pattern)
        except Exception as exc:
            logger.warning("[Feedback] Vibration failed: %s", exc)
