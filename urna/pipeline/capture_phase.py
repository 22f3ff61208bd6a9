"""Capture phase — take a still image, falling back to the camera's placeholder."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from urna.collaborators import Camera
from urna.errors import CaptureError
from urna.session.artifacts import ImageArtifact
from urna.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of one capture attempt.

    ``degraded`` is True when *artifact* is the placeholder; ``artifact`` is
    None only when the camera could not even supply a placeholder.
    """

    artifact: ImageArtifact | None
    degraded: bool = False
    error: CaptureError | None = None


async def run_capture(camera: Camera) -> CaptureOutcome:
    """Capture an image with *camera*; on failure resolve to its placeholder."""
    with tracer.start_as_current_span("urna.capture") as span:
        try:
            artifact = await camera.capture()
            logger.info("[Capture] Image captured (%d bytes)", artifact.size)
            span.set_attribute("capture.bytes", artifact.size)
            return CaptureOutcome(artifact)
        except CaptureError as exc:
            error = exc
        except Exception as exc:
            error = CaptureError(f"Camera capture failed: {exc}")

        logger.warning("[Capture] %s — using placeholder image", error.message)
        span.set_attribute("capture.degraded", True)
        try:
            placeholder = camera.placeholder()
        except Exception as exc:
            logger.error("[Capture] Placeholder image unavailable: %s", exc)
            return CaptureOutcome(None, degraded=True, error=error)

        if not placeholder.placeholder:
            placeholder = dataclasses.replace(placeholder, placeholder=True)
        return CaptureOutcome(placeholder, degraded=True, error=error)
