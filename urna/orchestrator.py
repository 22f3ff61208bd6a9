"""CaptureSessionOrchestrator — the capture screen's session state machine.

Pointer events go in (``tap``, ``hold_start``, ``hold_end``); the gesture
interpreter turns them into commands; the orchestrator reacts by moving the
session phase and running the pipeline phases as tracked background jobs:

    hold 3s      → capture image (placeholder on camera failure)
    triple tap   → start / stop recording
    image+audio  → automatic submission, exactly once
    answer       → playback with a 15s auto-stop

Every phase transition goes through ``_set_phase`` so the timers owned by
the phase being left are always revoked.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Coroutine

from urna.collaborators import Camera, Credentials, InferenceClient, Notifier, Player, Recorder
from urna.constants import PLAYBACK_AUTO_STOP
from urna.debug import SessionDebugLogger
from urna.errors import CaptureError, ErrorCode, PlaybackError, RecordError, SubmitError, report_error
from urna.feedback import FeedbackKind
from urna.gestures.interpreter import CommandKind, GestureCommand, GestureConfig, GestureInterpreter
from urna.gestures.timers import AsyncioScheduler, Scheduler, TimerRegistry
from urna.jobs import SessionJobs
from urna.pipeline.capture_phase import run_capture
from urna.pipeline.playback_phase import PlaybackController
from urna.pipeline.recording_phase import RecordingCoordinator, RecordingState
from urna.pipeline.submit_phase import find_invalid_artifact, run_submission
from urna.session.artifacts import AudioArtifact, ImageArtifact
from urna.session.state import (
    AudioRecording,
    HoldingForCapture,
    Idle,
    Phase,
    PlayingResponse,
    SessionState,
    Submitting,
)
from urna.telemetry import session_span
from urna.utils import generate_session_id

logger = logging.getLogger(__name__)


class CaptureSessionOrchestrator:
    """Owns one capture session: gestures, phase, artifacts, timers and jobs.

    Parameters
    ----------
    camera, recorder, player, inference, notifier :
        Injected collaborators (see ``urna.collaborators``).
    credentials : Credentials
        Forwarded untouched to the inference backend.
    scheduler : Scheduler
        Timer source; defaults to the running asyncio loop.
    gesture_config : GestureConfig
        Gesture thresholds.
    simulated : bool
        When True an answer carrying text is spoken instead of played.
    playback_timeout : float
        Seconds before playback is force-stopped without a completion event.
    """

    def __init__(
        self,
        *,
        camera: Camera,
        recorder: Recorder,
        player: Player,
        inference: InferenceClient,
        notifier: Notifier,
        credentials: Credentials,
        scheduler: Scheduler | None = None,
        gesture_config: GestureConfig | None = None,
        simulated: bool = False,
        playback_timeout: float = PLAYBACK_AUTO_STOP,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or generate_session_id()
        self._camera = camera
        self._player = player
        self._inference = inference
        self._notifier = notifier
        self._credentials = credentials
        self._simulated = simulated

        self._state = SessionState(self.session_id)
        self._debug = SessionDebugLogger(self.session_id)
        self._timers = TimerRegistry(scheduler or AsyncioScheduler())
        self._jobs = SessionJobs(self.session_id)
        self._job_ids = itertools.count(1)
        self._closed = False

        # Successful transitions into Submitting
        self.submission_count: int = 0

        self._gestures = GestureInterpreter(
            self._timers,
            config=gesture_config,
            playback_active=lambda: self._state.is_playing,
        )
        self._gestures.on_command = self._on_command

        self._recording = RecordingCoordinator(recorder, self._jobs)
        self._recording.on_elapsed = self._on_recording_elapsed

        self._playback = PlaybackController(player, self._timers, self._jobs, auto_stop=playback_timeout)
        self._playback.on_finished = self._on_playback_finished

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def debug(self) -> SessionDebugLogger:
        return self._debug

    @property
    def gestures(self) -> GestureInterpreter:
        return self._gestures

    @property
    def timers(self) -> TimerRegistry:
        return self._timers

    @property
    def jobs(self) -> SessionJobs:
        return self._jobs

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Announce the capture screen to the user."""
        logger.info("[Session] %s started", self.session_id)
        self._notify(FeedbackKind.READY)

    def tap(self) -> None:
        if self._closed:
            return
        self._gestures.tap()

    def hold_start(self) -> None:
        if self._closed:
            return
        if self._state.is_submitting:
            logger.debug("[Session] Hold ignored while submitting")
            return
        if self._state.is_recording or not self._recording.is_idle:
            logger.debug("[Session] Hold ignored while recording")
            return
        self._gestures.hold_start()

    def hold_end(self) -> None:
        if self._closed:
            return
        self._gestures.hold_end()

    def snapshot(self) -> dict[str, Any]:
        return self._state.snapshot()

    def alive_timers(self) -> set[str]:
        return self._timers.alive()

    async def drain(self) -> None:
        """Wait for every in-flight job, including ones they spawn."""
        await self._jobs.drain()

    def close(self) -> None:
        """Tear the session down synchronously.

        Timers, subscriptions and in-flight jobs are cancelled before the
        artifacts are released. Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self._gestures.close()
        self._timers.cancel_all()
        self._recording.close()
        self._jobs.cancel_all()
        try:
            self._notifier.close()
        except Exception as exc:
            logger.debug("[Session] Notifier close failed: %s", exc)

        self._state.release_artifacts()
        old = self._state.phase
        self._state.phase = Idle()
        if old.name != Idle.name:
            self._debug.log_transition(old.name, Idle.name)
        logger.info("[Session] %s closed", self.session_id)

    async def logout(self) -> None:
        """Close the session, release the recorder and player, and say goodbye.

        The goodbye cue is queued after ``close()`` so it is not cancelled
        with the session's other cues.
        """
        was_recording = self._state.is_recording or not self._recording.is_idle
        was_playing = self._state.is_playing
        self.close()
        if was_recording:
            await self._recording.abort()
        if was_playing:
            try:
                await self._player.stop()
            except Exception as exc:
                logger.debug("[Session] Player stop on logout failed: %s", exc)
        self._notify(FeedbackKind.GOODBYE)

    # ------------------------------------------------------------------
    # Gesture commands
    # ------------------------------------------------------------------

    def _on_command(self, command: GestureCommand) -> None:
        if command.kind is not CommandKind.CAPTURE_PROGRESS:
            self._debug.log_command(command.kind.value, {"phase": self._state.phase.name})

        if command.kind is CommandKind.BEGIN_CAPTURE:
            self._begin_capture()
        elif command.kind is CommandKind.CAPTURE_PROGRESS:
            if isinstance(self._state.phase, HoldingForCapture):
                self._set_phase(HoldingForCapture(command.progress))
        elif command.kind is CommandKind.CAPTURE_IMAGE:
            if isinstance(self._state.phase, HoldingForCapture):
                self._set_phase(Idle())
                self._notify(FeedbackKind.CAPTURE_COMPLETE)
                self._spawn("capture", self._capture())
        elif command.kind is CommandKind.CAPTURE_CANCELLED:
            if isinstance(self._state.phase, HoldingForCapture):
                self._set_phase(Idle())
        elif command.kind is CommandKind.TOGGLE_RECORDING:
            self._toggle_recording()
        elif command.kind is CommandKind.TOGGLE_PLAYBACK:
            self._toggle_playback()

    def _begin_capture(self) -> None:
        if self._state.is_playing:
            logger.info("[Session] Hold during playback → stopping playback")
            self._set_phase(Idle())
            self._spawn("playback-stop", self._playback.stop())
        self._set_phase(HoldingForCapture(0.0))
        self._notify(FeedbackKind.CAPTURE_START)

    def _toggle_recording(self) -> None:
        if self._state.is_submitting:
            self._notify(FeedbackKind.BUSY)
            return
        state = self._recording.state
        if state is RecordingState.INACTIVE:
            self._spawn("record-start", self._start_recording())
        elif state is RecordingState.RECORDING:
            self._spawn("record-stop", self._stop_recording())
        else:
            logger.debug("[Session] Recording toggle ignored in state %s", state.value)

    def _toggle_playback(self) -> None:
        phase = self._state.phase
        if not isinstance(phase, PlayingResponse):
            return
        paused = not phase.paused
        self._set_phase(PlayingResponse(paused=paused))
        self._notify(FeedbackKind.PLAYBACK_TOGGLED)
        if paused:
            self._spawn("playback-pause", self._playback.pause())
        else:
            self._spawn("playback-resume", self._playback.resume())

    # ------------------------------------------------------------------
    # Phase jobs
    # ------------------------------------------------------------------

    async def _capture(self) -> None:
        outcome = await run_capture(self._camera)
        if outcome.artifact is None:
            error = outcome.error or CaptureError("Camera unavailable")
            error.session_id = self.session_id
            self._debug.log_error(error.code.value, error.message)
            report_error(self._notifier, error)
            return

        self._state.captured_image = outcome.artifact
        if outcome.degraded:
            self._notify(FeedbackKind.CAPTURE_DEGRADED)
        self._evaluate_readiness()

    async def _start_recording(self) -> None:
        if self._state.is_playing:
            logger.info("[Session] Recording requested during playback → stopping playback")
            self._set_phase(Idle())
            await self._playback.stop()

        try:
            await self._recording.start()
        except RecordError as exc:
            # The held take, if any, stays usable
            self._debug.log_error(exc.code.value, exc.message)
            if exc.code is ErrorCode.E_PERMISSION_DENIED:
                self._notify(FeedbackKind.PERMISSION_DENIED)
            else:
                self._notify(FeedbackKind.RECORD_FAILED)
            return

        # A new take replaces the previous one
        self._state.captured_audio = None
        self._set_phase(AudioRecording(0.0))
        self._notify(FeedbackKind.MICROPHONE_START)

    async def _stop_recording(self) -> None:
        if self._state.is_recording:
            self._set_phase(Idle())
        try:
            audio = await self._recording.stop()
        except RecordError as exc:
            self._debug.log_error(exc.code.value, exc.message)
            self._notify(FeedbackKind.RECORD_FAILED)
            return

        self._notify(FeedbackKind.MICROPHONE_STOP)
        self._state.captured_audio = audio
        self._evaluate_readiness()

    async def _submit(self, image: ImageArtifact, audio: AudioArtifact) -> None:
        invalid = find_invalid_artifact(image, audio)
        if invalid is not None:
            self._debug.log_error(ErrorCode.E_INVALID_ARTIFACT.value, invalid.value)
            self._set_phase(Idle())
            self._notify(invalid)
            return

        self._notify(FeedbackKind.PROCESSING)
        try:
            response = await run_submission(self._inference, image, audio, self._credentials)
        except SubmitError as exc:
            exc.session_id = self.session_id
            self._debug.log_error(exc.code.value, exc.message)
            self._set_phase(Idle())
            report_error(self._notifier, exc)
            return

        self._notify(FeedbackKind.SUCCESS)
        # Only the submitted pair is consumed; a newer capture stays.
        if self._state.captured_image is image:
            self._state.captured_image = None
        if self._state.captured_audio is audio:
            self._state.captured_audio = None

        if self._simulated and response.text:
            # Simulated answers are text; speak them instead of playing bytes
            self._set_phase(Idle())
            self._notify(FeedbackKind.SPEAK, response.text)
            return

        self._set_phase(PlayingResponse(paused=False))
        try:
            await self._playback.start(response.audio)
        except PlaybackError as exc:
            self._debug.log_error(exc.code.value, exc.message)
            if self._state.is_playing:
                self._set_phase(Idle())
            self._notify(FeedbackKind.PLAYBACK_FAILED)
            return

        if not self._state.is_playing:
            # Interrupted by another gesture while the player was starting
            await self._playback.stop()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_phase(self, new: Phase) -> None:
        old = self._state.phase
        if type(old) is not type(new):
            if isinstance(old, HoldingForCapture):
                self._gestures.reset_hold()
            elif isinstance(old, AudioRecording):
                self._recording.unsubscribe()
            elif isinstance(old, PlayingResponse):
                self._playback.release()
            self._debug.log_transition(old.name, new.name)
        self._state.phase = new

    def _evaluate_readiness(self) -> None:
        if self._closed:
            return
        state = self._state
        if state.can_submit:
            if state.is_submitting:
                return
            was_playing = state.is_playing
            self._set_phase(Submitting())
            if was_playing:
                self._spawn("playback-stop", self._playback.stop())
            self.submission_count += 1
            logger.info("[Session] Image and question ready → submitting (#%d)", self.submission_count)
            self._spawn("submit", self._submit(state.captured_image, state.captured_audio))
        elif state.is_recording or state.is_submitting:
            return
        elif state.has_image:
            self._notify(FeedbackKind.NEED_AUDIO)
        elif state.has_audio:
            self._notify(FeedbackKind.NEED_IMAGE)

    def _on_recording_elapsed(self, elapsed: float) -> None:
        if self._state.is_recording:
            self._set_phase(AudioRecording(elapsed))

    def _on_playback_finished(self, reason: str) -> None:
        logger.info("[Session] Playback finished (%s)", reason)
        if self._state.is_playing:
            self._set_phase(Idle())

    def _spawn(self, name: str, coro: Coroutine[Any, Any, Any]) -> None:
        self._jobs.submit(f"{name}-{next(self._job_ids)}", self._traced(name, coro))

    async def _traced(self, name: str, coro: Coroutine[Any, Any, Any]) -> Any:
        with session_span(self.session_id, f"urna.session.{name}"):
            return await coro

    def _notify(self, kind: FeedbackKind, text: str | None = None) -> None:
        try:
            self._notifier.notify(kind, text)
        except Exception as exc:
            logger.debug("[Session] Notifier failed for %s: %s", kind.value, exc)
