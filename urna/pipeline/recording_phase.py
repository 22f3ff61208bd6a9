"""Recording phase — microphone permission, start/stop and the duration stream."""

from __future__ import annotations

import enum
import logging
from typing import Callable

from urna.collaborators import Recorder
from urna.constants import AUDIO_MIN_BYTES
from urna.errors import ErrorCode, RecordError
from urna.jobs import SessionJobs
from urna.session.artifacts import AudioArtifact
from urna.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()


class RecordingState(str, enum.Enum):
    INACTIVE = "inactive"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"


class RecordingCoordinator:
    """Drives the recorder collaborator through ``INACTIVE → RECORDING → INACTIVE``.

    While recording, the recorder's duration stream is consumed by a job and
    each elapsed value is forwarded to ``on_elapsed``.
    """

    SUBSCRIPTION_JOB = "recording.durations"

    def __init__(self, recorder: Recorder, jobs: SessionJobs, *, min_bytes: int = AUDIO_MIN_BYTES) -> None:
        self._recorder = recorder
        self._jobs = jobs
        self._min_bytes = min_bytes
        self._state = RecordingState.INACTIVE

        self.on_elapsed: Callable[[float], None] | None = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return self._state is RecordingState.INACTIVE

    async def start(self) -> None:
        """Request permission, start the recorder and subscribe to durations.

        Raises ``RecordError`` (state back to ``INACTIVE``) when permission is
        refused or the recorder cannot start.
        """
        self._state = RecordingState.STARTING
        try:
            try:
                granted = await self._recorder.request_permission()
            except Exception as exc:
                raise RecordError(
                    f"Microphone permission check failed: {exc}",
                    code=ErrorCode.E_PERMISSION_DENIED,
                ) from exc
            if not granted:
                raise RecordError("Microphone permission denied", code=ErrorCode.E_PERMISSION_DENIED)

            try:
                await self._recorder.start()
            except RecordError:
                raise
            except Exception as exc:
                raise RecordError(f"Could not start recording: {exc}") from exc
        except RecordError as exc:
            logger.warning("[Recording] Start failed: %s", exc.message)
            self._state = RecordingState.INACTIVE
            raise

        self._state = RecordingState.RECORDING
        self._jobs.submit(self.SUBSCRIPTION_JOB, self._forward_durations())
        logger.info("[Recording] Recording started")

    async def stop(self) -> AudioArtifact:
        """Unsubscribe, stop the recorder and return a plausibly sized clip.

        Raises ``RecordError`` if the recorder fails or the clip is too small;
        the clip is discarded in that case.
        """
        self._state = RecordingState.STOPPING
        self.unsubscribe()
        with tracer.start_as_current_span("urna.recording.stop") as span:
            try:
                artifact = await self._recorder.stop()
            except RecordError:
                raise
            except Exception as exc:
                raise RecordError(f"Could not stop recording: {exc}") from exc
            finally:
                self._state = RecordingState.INACTIVE

            span.set_attribute("audio.bytes", artifact.size)
            if artifact.size <= self._min_bytes:
                logger.warning("[Recording] Recorded clip too small: %d bytes", artifact.size)
                raise RecordError(
                    f"Recorded clip too small: {artifact.size} bytes",
                    code=ErrorCode.E_AUDIO_TOO_SMALL,
                    details={"size": artifact.size, "minimum": self._min_bytes},
                )

        logger.info("[Recording] Clip ready: %d bytes, %.1fs", artifact.size, artifact.duration)
        return artifact

    def unsubscribe(self) -> None:
        """Stop forwarding duration events."""
        self._jobs.cancel(self.SUBSCRIPTION_JOB)

    def close(self) -> None:
        """Drop the subscription and forget any in-progress recording."""
        self.unsubscribe()
        self._state = RecordingState.INACTIVE

    async def abort(self) -> None:
        """Stop the recorder during teardown, discarding whatever it returns."""
        try:
            await self._recorder.stop()
        except Exception as exc:
            logger.debug("[Recording] Stop during teardown failed: %s", exc)

    async def _forward_durations(self) -> None:
        async for elapsed in self._recorder.durations():
            if self.on_elapsed is not None:
                self.on_elapsed(elapsed)
