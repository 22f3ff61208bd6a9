"""End-to-end tests for the CaptureSessionOrchestrator with fake collaborators.

Time is driven by the manual scheduler; background jobs are let through
with ``settle()``.

Run:
    uv run pytest tests/test_orchestrator.py -v
"""

import asyncio
from unittest.mock import patch

import pytest
from conftest import ANSWER_BYTES, FakeCamera, FakePlayer, FakeRecorder, RecordingNotifier, settle
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from urna.collaborators import Credentials, InferenceResponse
from urna.feedback import FeedbackKind
from urna.gestures.interpreter import CommandKind, GestureCommand
from urna.orchestrator import CaptureSessionOrchestrator
from urna.session.artifacts import AudioArtifact, ImageArtifact
from urna.session.state import AudioRecording, HoldingForCapture, Idle, PlayingResponse, Submitting


async def capture_image(h):
    h.hold(3.2)
    await settle()


async def record_question(h):
    h.triple_tap()
    await settle()
    h.triple_tap()
    await settle()


async def reach_playback(h):
    await capture_image(h)
    await record_question(h)
    assert isinstance(h.orchestrator.state.phase, PlayingResponse)


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class TestCapture:
    @pytest.mark.asyncio
    async def test_start_announces_ready(self, harness):
        harness.orchestrator.start()
        assert harness.notifier.kinds == [FeedbackKind.READY]

    @pytest.mark.asyncio
    async def test_full_hold_captures_image(self, harness):
        await capture_image(harness)
        state = harness.orchestrator.state

        assert harness.camera.captures == 1
        assert state.has_image and not state.has_audio
        assert isinstance(state.phase, Idle)
        kinds = harness.notifier.kinds
        assert kinds.index(FeedbackKind.CAPTURE_START) < kinds.index(FeedbackKind.CAPTURE_COMPLETE)
        assert kinds[-1] is FeedbackKind.NEED_AUDIO

    @pytest.mark.asyncio
    async def test_hold_progress_is_reflected_in_phase(self, harness):
        harness.orchestrator.hold_start()
        harness.scheduler.advance(1.55)

        phase = harness.orchestrator.state.phase
        assert isinstance(phase, HoldingForCapture)
        assert phase.progress == pytest.approx(0.5)
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_early_release_cancels(self, harness):
        harness.hold(2.0)
        await settle()

        snap = harness.orchestrator.snapshot()
        assert snap["phase"] == "idle"
        assert snap["progress"] == 0.0
        assert harness.camera.captures == 0
        assert harness.orchestrator.alive_timers() == set()

    @pytest.mark.asyncio
    async def test_camera_failure_uses_placeholder(self, harness):
        harness.camera.fail = True
        await capture_image(harness)

        state = harness.orchestrator.state
        assert state.has_image
        assert state.captured_image.placeholder is True
        assert FeedbackKind.CAPTURE_DEGRADED in harness.notifier.kinds

    @pytest.mark.asyncio
    async def test_no_placeholder_leaves_readiness_unchanged(self, harness):
        harness.camera.fail = True
        harness.camera.placeholder_fails = True
        await capture_image(harness)

        assert not harness.orchestrator.state.has_image
        assert FeedbackKind.ERROR in harness.notifier.kinds


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


class TestRecording:
    @pytest.mark.asyncio
    async def test_triple_tap_starts_and_stops_recording(self, harness):
        harness.triple_tap()
        await settle()
        assert isinstance(harness.orchestrator.state.phase, AudioRecording)
        assert FeedbackKind.MICROPHONE_START in harness.notifier.kinds

        harness.recorder.emit(0.5)
        harness.recorder.emit(1.0)
        await settle()
        assert harness.orchestrator.state.phase == AudioRecording(1.0)

        harness.triple_tap()
        await settle()
        state = harness.orchestrator.state
        assert isinstance(state.phase, Idle)
        assert state.has_audio
        assert harness.notifier.kinds[-2:] == [FeedbackKind.MICROPHONE_STOP, FeedbackKind.NEED_IMAGE]
        assert harness.orchestrator.jobs.active_count() == 0

    @pytest.mark.asyncio
    async def test_permission_denied(self, harness):
        harness.recorder.permission = False
        harness.triple_tap()
        await settle()

        assert isinstance(harness.orchestrator.state.phase, Idle)
        assert FeedbackKind.PERMISSION_DENIED in harness.notifier.kinds
        assert "start" not in harness.recorder.calls

    @pytest.mark.asyncio
    async def test_permission_denied_keeps_held_audio(self, harness):
        """After a failed submission both artifacts stay; a refused re-record must not drop the audio."""
        harness.inference.submit.return_value = InferenceResponse(success=False, error_message="down")
        await capture_image(harness)
        await record_question(harness)
        held = harness.orchestrator.state.captured_audio
        assert held is not None

        before = len(harness.notifier.events)
        harness.recorder.permission = False
        harness.triple_tap()
        await settle()

        state = harness.orchestrator.state
        assert state.captured_audio is held
        assert state.can_submit
        assert isinstance(state.phase, Idle)
        assert FeedbackKind.PERMISSION_DENIED in harness.notifier.kinds[before:]

    @pytest.mark.asyncio
    async def test_start_error_keeps_held_audio(self, harness):
        harness.inference.submit.return_value = InferenceResponse(success=False, error_message="down")
        await capture_image(harness)
        await record_question(harness)
        held = harness.orchestrator.state.captured_audio

        before = len(harness.notifier.events)
        harness.recorder.start_error = RuntimeError("audio session busy")
        harness.triple_tap()
        await settle()

        state = harness.orchestrator.state
        assert state.captured_audio is held
        assert state.has_image and state.has_audio
        assert state.can_submit
        assert isinstance(state.phase, Idle)
        assert FeedbackKind.RECORD_FAILED in harness.notifier.kinds[before:]

    @pytest.mark.asyncio
    async def test_too_small_clip_is_discarded(self, harness):
        harness.recorder.clip = AudioArtifact(b"\x00" * 500)
        await record_question(harness)

        assert not harness.orchestrator.state.has_audio
        assert FeedbackKind.RECORD_FAILED in harness.notifier.kinds
        assert FeedbackKind.MICROPHONE_STOP not in harness.notifier.kinds

    @pytest.mark.asyncio
    async def test_hold_ignored_while_recording(self, harness):
        harness.triple_tap()
        await settle()
        harness.hold(3.2)
        await settle()

        assert harness.camera.captures == 0
        assert isinstance(harness.orchestrator.state.phase, AudioRecording)
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_rerecording_discards_previous_take(self, harness):
        await record_question(harness)
        assert harness.orchestrator.state.has_audio

        harness.triple_tap()
        await settle()
        assert not harness.orchestrator.state.has_audio
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_recording_stops_playback_first(self, harness):
        await reach_playback(harness)
        order = []
        original_stop = harness.player.stop
        original_start = harness.recorder.start

        async def stop():
            order.append("player.stop")
            await original_stop()

        async def start():
            order.append("recorder.start")
            await original_start()

        harness.player.stop = stop
        harness.recorder.start = start

        harness.orchestrator.gestures.on_command(GestureCommand(CommandKind.TOGGLE_RECORDING))
        await settle()

        assert order == ["player.stop", "recorder.start"]
        assert isinstance(harness.orchestrator.state.phase, AudioRecording)
        assert not harness.orchestrator.timers.is_alive("playback.auto_stop")
        harness.orchestrator.close()


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


class TestSubmission:
    @pytest.mark.asyncio
    async def test_image_then_audio_submits_exactly_once(self, harness):
        await capture_image(harness)
        await record_question(harness)

        assert harness.inference.submit.await_count == 1
        assert harness.orchestrator.submission_count == 1
        image, audio, credentials = harness.inference.submit.await_args.args
        assert image.data == harness.camera.image.data
        assert audio is harness.recorder.clip
        assert credentials.passphrase == "open-sesame"
        kinds = harness.notifier.kinds
        assert kinds.index(FeedbackKind.PROCESSING) < kinds.index(FeedbackKind.SUCCESS)
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_audio_then_image_submits(self, harness):
        await record_question(harness)
        await capture_image(harness)

        assert harness.inference.submit.await_count == 1
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_readiness_cleared_before_playback_starts(self, harness):
        observed = []
        original_play = harness.player.play

        async def play(audio):
            state = harness.orchestrator.state
            observed.append((state.has_image, state.has_audio, state.phase.name))
            await original_play(audio)

        harness.player.play = play
        await capture_image(harness)
        await record_question(harness)

        assert observed == [(False, False, "playing_response")]
        assert harness.player.played == [ANSWER_BYTES]
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_failed_submission_keeps_flags(self, harness):
        harness.inference.submit.return_value = InferenceResponse(success=False, error_message="Server overloaded")
        await capture_image(harness)
        await record_question(harness)

        state = harness.orchestrator.state
        assert state.has_image and state.has_audio
        assert isinstance(state.phase, Idle)
        assert (FeedbackKind.ERROR, "Server overloaded") in harness.notifier.events
        assert harness.player.played == []

    @pytest.mark.asyncio
    async def test_next_artifact_after_failure_retries(self, harness):
        harness.inference.submit.return_value = InferenceResponse(success=False, error_message="down")
        await capture_image(harness)
        await record_question(harness)

        harness.inference.submit.return_value = InferenceResponse(success=True, audio=ANSWER_BYTES)
        await capture_image(harness)

        assert harness.inference.submit.await_count == 2
        assert isinstance(harness.orchestrator.state.phase, PlayingResponse)
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_invalid_image_aborts_without_submitting(self, harness):
        harness.camera.image = ImageArtifact(b"\xff\xd8" + b"\x00" * 20)
        await capture_image(harness)
        await record_question(harness)

        assert harness.orchestrator.submission_count == 1
        harness.inference.submit.assert_not_awaited()
        assert FeedbackKind.INVALID_IMAGE in harness.notifier.kinds
        state = harness.orchestrator.state
        assert isinstance(state.phase, Idle)
        assert state.has_image and state.has_audio

    @pytest.mark.asyncio
    async def test_busy_while_submitting(self, harness):
        gate = asyncio.Event()

        async def slow_submit(*args):
            await gate.wait()
            return InferenceResponse(success=True, audio=ANSWER_BYTES)

        harness.inference.submit.side_effect = slow_submit
        await capture_image(harness)
        await record_question(harness)
        assert isinstance(harness.orchestrator.state.phase, Submitting)

        harness.triple_tap()
        harness.hold(3.2)
        await settle()

        assert FeedbackKind.BUSY in harness.notifier.kinds
        assert harness.camera.captures == 1
        assert harness.recorder.calls.count("start") == 1
        assert isinstance(harness.orchestrator.state.phase, Submitting)

        gate.set()
        await settle()
        assert harness.orchestrator.submission_count == 1
        assert isinstance(harness.orchestrator.state.phase, PlayingResponse)
        harness.orchestrator.close()


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


class TestPlayback:
    @pytest.mark.asyncio
    async def test_tap_toggles_pause(self, harness):
        await reach_playback(harness)

        harness.orchestrator.tap()
        await settle()
        assert harness.orchestrator.state.phase == PlayingResponse(paused=True)
        assert harness.orchestrator.gestures.tap_count == 0

        harness.orchestrator.tap()
        await settle()
        assert harness.orchestrator.state.phase == PlayingResponse(paused=False)
        assert harness.player.calls[-2:] == ["pause", "resume"]
        assert harness.notifier.count(FeedbackKind.PLAYBACK_TOGGLED) == 2
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_completion_returns_to_idle(self, harness):
        await reach_playback(harness)

        harness.player.finish()
        await settle()

        assert isinstance(harness.orchestrator.state.phase, Idle)
        assert harness.orchestrator.alive_timers() == set()
        assert harness.orchestrator.jobs.active_count() == 0

    @pytest.mark.asyncio
    async def test_auto_stop_after_timeout(self, harness):
        await reach_playback(harness)

        harness.scheduler.advance(15.1)
        await settle()

        assert isinstance(harness.orchestrator.state.phase, Idle)
        assert harness.player.calls[-1] == "stop"
        assert harness.orchestrator.jobs.active_count() == 0

    @pytest.mark.asyncio
    async def test_hold_during_playback_stops_it(self, harness):
        await reach_playback(harness)

        harness.orchestrator.hold_start()
        await settle()

        assert isinstance(harness.orchestrator.state.phase, HoldingForCapture)
        assert "stop" in harness.player.calls
        assert not harness.orchestrator.timers.is_alive("playback.auto_stop")
        harness.orchestrator.close()

    @pytest.mark.asyncio
    async def test_playback_failure_notifies(self, harness):
        harness.player.play_error = RuntimeError("no output device")
        await capture_image(harness)
        await record_question(harness)

        assert isinstance(harness.orchestrator.state.phase, Idle)
        assert FeedbackKind.PLAYBACK_FAILED in harness.notifier.kinds
        assert not harness.orchestrator.state.can_submit

    @pytest.mark.asyncio
    async def test_playback_failure_outside_simulation_is_not_spoken(self, harness):
        harness.inference.submit.return_value = InferenceResponse(
            success=True, audio=ANSWER_BYTES, metadata={"response_text": "Two cups on a table."}
        )
        harness.player.play_error = RuntimeError("no output device")
        await capture_image(harness)
        await record_question(harness)

        assert isinstance(harness.orchestrator.state.phase, Idle)
        assert FeedbackKind.PLAYBACK_FAILED in harness.notifier.kinds
        assert FeedbackKind.SPEAK not in harness.notifier.kinds

    @pytest.mark.asyncio
    async def test_simulated_answer_is_spoken_not_played(self, scheduler):
        notifier = RecordingNotifier()
        player = FakePlayer()
        inference = type("Sim", (), {})()

        async def submit(image, audio, credentials):
            return InferenceResponse(
                success=True,
                audio=b"The sky is clear.",
                metadata={"mode": "simulation", "response_text": "The sky is clear."},
            )

        inference.submit = submit
        orchestrator = CaptureSessionOrchestrator(
            camera=FakeCamera(),
            recorder=FakeRecorder(),
            player=player,
            inference=inference,
            notifier=notifier,
            credentials=Credentials("pass"),
            scheduler=scheduler,
            simulated=True,
        )
        orchestrator.hold_start()
        scheduler.advance(3.2)
        orchestrator.hold_end()
        await settle()
        for _ in range(2):
            for _ in range(3):
                orchestrator.tap()
            await settle()

        assert (FeedbackKind.SPEAK, "The sky is clear.") in notifier.events
        assert FeedbackKind.PLAYBACK_FAILED not in notifier.kinds
        assert player.calls == []
        assert isinstance(orchestrator.state.phase, Idle)
        assert orchestrator.alive_timers() == set()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_close_leaves_nothing_running(self, harness):
        await capture_image(harness)
        harness.orchestrator.tap()
        harness.triple_tap()
        await settle()
        harness.orchestrator.hold_end()
        assert harness.orchestrator.jobs.active_count() > 0

        harness.orchestrator.close()

        assert harness.orchestrator.alive_timers() == set()
        assert harness.orchestrator.jobs.active_count() == 0
        assert not harness.orchestrator.state.has_image
        assert isinstance(harness.orchestrator.state.phase, Idle)

    @pytest.mark.asyncio
    async def test_close_during_playback(self, harness):
        await reach_playback(harness)
        harness.orchestrator.close()

        assert harness.orchestrator.alive_timers() == set()
        assert harness.orchestrator.jobs.active_count() == 0

        harness.orchestrator.tap()
        harness.orchestrator.hold_start()
        assert harness.scheduler.pending() == []

    @pytest.mark.asyncio
    async def test_logout_while_recording(self, harness):
        harness.triple_tap()
        await settle()

        await harness.orchestrator.logout()

        assert harness.recorder.calls[-1] == "stop"
        assert harness.notifier.kinds[-1] is FeedbackKind.GOODBYE
        assert harness.orchestrator.closed

    @pytest.mark.asyncio
    async def test_close_cancels_pending_cues(self, harness):
        await capture_image(harness)
        assert not harness.notifier.closed

        harness.orchestrator.close()

        assert harness.notifier.closed

    @pytest.mark.asyncio
    async def test_close_survives_notifier_failure(self, harness):
        def broken():
            raise RuntimeError("speech engine gone")

        harness.notifier.close = broken
        await capture_image(harness)

        harness.orchestrator.close()

        assert harness.orchestrator.closed
        assert not harness.orchestrator.state.has_image

    @pytest.mark.asyncio
    async def test_transitions_are_logged(self, harness):
        await capture_image(harness)

        transitions = harness.orchestrator.debug.transitions()
        assert transitions == [("idle", "holding_for_capture"), ("holding_for_capture", "idle")]


@pytest.mark.asyncio
async def test_background_jobs_are_traced_with_session_id(harness):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))

    with patch("urna.telemetry.get_tracer", return_value=provider.get_tracer("urna")):
        await capture_image(harness)

    spans = {span.name: span for span in exporter.get_finished_spans()}
    assert spans["urna.session.capture"].attributes["urna.session_id"] == "session-test"
