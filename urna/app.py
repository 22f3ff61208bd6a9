"""Composition root — wires settings, telemetry and collaborators into an orchestrator.

Data flow:
  1. Host UI forwards pointer events → ``CaptureSessionOrchestrator``.
  2. Hold 3s → camera still (placeholder on failure).
  3. Triple tap → microphone on / off.
  4. Image + question → inference backend (HTTP or simulated).
  5. Answer audio → player, with spoken/haptic cues throughout.
"""

from __future__ import annotations

import logging

from urna.collaborators import Camera, Credentials, Player, Recorder, Speaker, Vibrator
from urna.config import Settings, load_settings
from urna.feedback import FeedbackNotifier
from urna.gestures.timers import Scheduler
from urna.inference import build_inference_client
from urna.orchestrator import CaptureSessionOrchestrator
from urna.telemetry import init_telemetry

logger = logging.getLogger(__name__)


def create_orchestrator(
    camera: Camera,
    recorder: Recorder,
    player: Player,
    speaker: Speaker,
    vibrator: Vibrator | None,
    credentials: Credentials,
    settings: Settings | None = None,
    scheduler: Scheduler | None = None,
) -> CaptureSessionOrchestrator:
    """Build a ready-to-start orchestrator from platform collaborators."""
    settings = settings or load_settings()
    init_telemetry(settings)

    notifier = FeedbackNotifier(
        speaker,
        vibrator,
        enable_audio=settings.enable_audio_feedback,
        enable_haptics=settings.enable_haptic_feedback,
    )
    orchestrator = CaptureSessionOrchestrator(
        camera=camera,
        recorder=recorder,
        player=player,
        inference=build_inference_client(settings),
        notifier=notifier,
        credentials=credentials,
        scheduler=scheduler,
        simulated=settings.simulate,
        playback_timeout=settings.playback_timeout,
    )
    logger.info(
        "[App] Orchestrator %s ready (simulate=%s, backend=%s)",
        orchestrator.session_id,
        settings.simulate,
        settings.base_url,
    )
    return orchestrator
