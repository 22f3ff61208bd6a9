"""Contracts for the platform collaborators injected into the orchestrator.

The orchestrator never reaches for hardware, network or speech directly; it
talks to these protocols, so tests substitute fakes and the lifecycle of
every service is owned explicitly by whoever builds the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Protocol

from urna.session.artifacts import AudioArtifact, ImageArtifact

if TYPE_CHECKING:
    from urna.feedback import FeedbackKind


@dataclass(frozen=True)
class Credentials:
    """Credentials forwarded untouched to the inference backend."""

    passphrase: str
    session_token: str | None = None


@dataclass
class InferenceResponse:
    success: bool
    audio: bytes = b""
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Text form of the answer when the backend supplied one."""
        return str(self.metadata.get("response_text", ""))


class Camera(Protocol):
    async def capture(self) -> ImageArtifact:
        """Capture and encode a still image. Raises ``CaptureError``."""
        ...

    def placeholder(self) -> ImageArtifact:
        """Deterministic stand-in image for degraded environments."""
        ...


class Recorder(Protocol):
    async def request_permission(self) -> bool: ...

    async def start(self) -> None:
        """Begin recording. Raises ``RecordError``."""
        ...

    async def stop(self) -> AudioArtifact:
        """Stop recording and return the clip. Raises ``RecordError``."""
        ...

    def durations(self) -> AsyncIterator[float]:
        """Elapsed recording time in seconds, emitted while recording."""
        ...


class InferenceClient(Protocol):
    async def submit(
        self,
        image: ImageArtifact,
        audio: AudioArtifact,
        credentials: Credentials,
    ) -> InferenceResponse:
        """Send the image/question pair. Raises ``SubmitError`` on transport failure."""
        ...


class Player(Protocol):
    async def play(self, audio: bytes) -> None:
        """Start playing *audio*. Raises ``PlaybackError``."""
        ...

    async def wait_finished(self) -> None:
        """Resolve when the current playback completes."""
        ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def stop(self) -> None: ...


class Notifier(Protocol):
    def notify(self, kind: FeedbackKind, text: str | None = None) -> None:
        """Fire-and-forget user feedback; must never block the caller."""
        ...

    def close(self) -> None:
        """Cancel any cue still being delivered."""
        ...


class Speaker(Protocol):
    async def speak(self, text: str) -> None: ...


class Vibrator(Protocol):
    async def vibrate(self, pattern: list[int]) -> None: ...
