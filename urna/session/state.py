"""SessionState — the single mutable aggregate for one capture/answer cycle.

The top-level phase is a tagged value (one frozen dataclass per variant), and
readiness is derived from the artifact handles the session holds, so a
"has image" flag without an image cannot be represented.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from urna.session.artifacts import AudioArtifact, ImageArtifact


@dataclass(frozen=True)
class Idle:
    name: ClassVar[str] = "idle"


@dataclass(frozen=True)
class HoldingForCapture:
    progress: float = 0.0
    name: ClassVar[str] = "holding_for_capture"


@dataclass(frozen=True)
class AudioRecording:
    elapsed: float = 0.0
    name: ClassVar[str] = "audio_recording"


@dataclass(frozen=True)
class Submitting:
    name: ClassVar[str] = "submitting"


@dataclass(frozen=True)
class PlayingResponse:
    paused: bool = False
    name: ClassVar[str] = "playing_response"


Phase = Idle | HoldingForCapture | AudioRecording | Submitting | PlayingResponse


@dataclass
class SessionState:
    """All per-session mutable state for the active capture screen.

    Fields
    ------
    session_id : identifier used in logs and error envelopes.
    phase : exactly one of the five phase variants.
    captured_image : image handle owned by the session until submitted or reset.
    captured_audio : audio handle owned by the session until submitted or reset.
    """

    session_id: str
    phase: Phase = field(default_factory=Idle)
    captured_image: ImageArtifact | None = None
    captured_audio: AudioArtifact | None = None

    @property
    def has_image(self) -> bool:
        return self.captured_image is not None

    @property
    def has_audio(self) -> bool:
        return self.captured_audio is not None

    @property
    def can_submit(self) -> bool:
        return self.has_image and self.has_audio

    @property
    def is_recording(self) -> bool:
        return isinstance(self.phase, AudioRecording)

    @property
    def is_submitting(self) -> bool:
        return isinstance(self.phase, Submitting)

    @property
    def is_playing(self) -> bool:
        return isinstance(self.phase, PlayingResponse)

    def release_artifacts(self) -> None:
        """Drop both artifact handles, clearing readiness."""
        self.captured_image = None
        self.captured_audio = None

    def snapshot(self) -> dict[str, Any]:
        """Plain-data view of the session for a rendering layer."""
        phase = self.phase
        return {
            "session_id": self.session_id,
            "phase": phase.name,
            "progress": phase.progress if isinstance(phase, HoldingForCapture) else 0.0,
            "elapsed": phase.elapsed if isinstance(phase, AudioRecording) else 0.0,
            "paused": phase.paused if isinstance(phase, PlayingResponse) else False,
            "has_image": self.has_image,
            "has_audio": self.has_audio,
            "image_is_placeholder": bool(self.captured_image and self.captured_image.placeholder),
            "status": "READY" if self.can_submit else "WAIT",
        }
