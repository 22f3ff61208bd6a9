"""Shared fakes and fixtures for the orchestrator tests.

``ManualScheduler`` replaces the event loop's ``call_later`` so gesture and
playback timers advance only when a test says so.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from urna.collaborators import Credentials, InferenceResponse
from urna.errors import CaptureError
from urna.orchestrator import CaptureSessionOrchestrator
from urna.session.artifacts import AudioArtifact, ImageArtifact

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 400
PLACEHOLDER_BYTES = b"\xff\xd8\xff\xdb" + b"\x11" * 200
M4A_BYTES = b"\x00\x00\x00\x20ftypM4A " + b"\x00" * 3000
ANSWER_BYTES = b"ID3" + b"\x00" * 500


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run without waiting on long-lived listeners."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Manual time
# ---------------------------------------------------------------------------


class ManualHandle:
    def __init__(self, when: float, seq: int, callback, args) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic ``Scheduler``: callbacks fire only inside ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._handles: list[ManualHandle] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self.now

    def call_later(self, delay, callback, *args) -> ManualHandle:
        handle = ManualHandle(self.now + delay, next(self._seq), callback, args)
        self._handles.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in time order.

        Callbacks scheduled while advancing fire too if they fall due.
        """
        target = self.now + seconds
        while True:
            due = [h for h in self._handles if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback(*handle.args)
        self.now = target
        self._handles = [h for h in self._handles if not h.cancelled]

    def pending(self) -> list[ManualHandle]:
        return [h for h in self._handles if not h.cancelled]


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeCamera:
    def __init__(self) -> None:
        self.image = ImageArtifact(JPEG_BYTES)
        self.fail = False
        self.placeholder_fails = False
        self.captures = 0

    async def capture(self) -> ImageArtifact:
        self.captures += 1
        if self.fail:
            raise CaptureError("Camera not ready")
        return self.image

    def placeholder(self) -> ImageArtifact:
        if self.placeholder_fails:
            raise RuntimeError("no placeholder asset")
        return ImageArtifact(PLACEHOLDER_BYTES, placeholder=True)


class FakeRecorder:
    def __init__(self) -> None:
        self.permission = True
        self.start_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.clip = AudioArtifact(M4A_BYTES, duration=2.5)
        self.calls: list[str] = []
        self._elapsed: asyncio.Queue = asyncio.Queue()

    async def request_permission(self) -> bool:
        self.calls.append("permission")
        return self.permission

    async def start(self) -> None:
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error

    async def stop(self) -> AudioArtifact:
        self.calls.append("stop")
        if self.stop_error is not None:
            raise self.stop_error
        return self.clip

    async def durations(self):
        while True:
            yield await self._elapsed.get()

    def emit(self, elapsed: float) -> None:
        self._elapsed.put_nowait(elapsed)


class FakePlayer:
    def __init__(self) -> None:
        self.play_error: Exception | None = None
        self.played: list[bytes] = []
        self.calls: list[str] = []
        self._finished: asyncio.Event | None = None

    async def play(self, audio: bytes) -> None:
        self.calls.append("play")
        if self.play_error is not None:
            raise self.play_error
        self.played.append(audio)
        self._finished = asyncio.Event()

    async def wait_finished(self) -> None:
        await self._finished.wait()

    def finish(self) -> None:
        self._finished.set()

    async def pause(self) -> None:
        self.calls.append("pause")

    async def resume(self) -> None:
        self.calls.append("resume")

    async def stop(self) -> None:
        self.calls.append("stop")


class RecordingNotifier:
    """Notifier that just remembers what it was told."""

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.closed = False

    def notify(self, kind, text=None) -> None:
        self.events.append((kind, text))

    def close(self) -> None:
        self.closed = True

    @property
    def kinds(self) -> list:
        return [k for k, _ in self.events]

    def count(self, kind) -> int:
        return self.kinds.count(kind)


@dataclass
class Harness:
    scheduler: ManualScheduler
    camera: FakeCamera
    recorder: FakeRecorder
    player: FakePlayer
    inference: AsyncMock
    notifier: RecordingNotifier
    orchestrator: CaptureSessionOrchestrator

    def hold(self, seconds: float) -> None:
        self.orchestrator.hold_start()
        self.scheduler.advance(seconds)
        self.orchestrator.hold_end()

    def triple_tap(self) -> None:
        for _ in range(3):
            self.orchestrator.tap()
            self.scheduler.advance(0.1)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def harness(scheduler, notifier) -> Harness:
    camera = FakeCamera()
    recorder = FakeRecorder()
    player = FakePlayer()
    inference = AsyncMock()
    inference.submit.return_value = InferenceResponse(success=True, audio=ANSWER_BYTES)
    orchestrator = CaptureSessionOrchestrator(
        camera=camera,
        recorder=recorder,
        player=player,
        inference=inference,
        notifier=notifier,
        credentials=Credentials("open-sesame", session_token="tok-1"),
        scheduler=scheduler,
        session_id="session-test",
    )
    return Harness(scheduler, camera, recorder, player, inference, notifier, orchestrator)
