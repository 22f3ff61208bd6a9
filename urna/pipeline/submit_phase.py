"""Submit phase — validate the captured pair and call the inference backend."""

from __future__ import annotations

import logging

from urna.collaborators import Credentials, InferenceClient, InferenceResponse
from urna.errors import SubmitError
from urna.feedback import FeedbackKind
from urna.session.artifacts import AudioArtifact, ImageArtifact, check_audio, check_image
from urna.telemetry import get_tracer

logger = logging.getLogger(__name__)
tracer = get_tracer()


def find_invalid_artifact(image: ImageArtifact | None, audio: AudioArtifact | None) -> FeedbackKind | None:
    """Return the feedback cue for the first artifact that fails validation, if any."""
    if not check_image(image):
        return FeedbackKind.INVALID_IMAGE
    if not check_audio(audio):
        return FeedbackKind.INVALID_AUDIO
    return None


async def run_submission(
    client: InferenceClient,
    image: ImageArtifact,
    audio: AudioArtifact,
    credentials: Credentials,
) -> InferenceResponse:
    """Send *image* and *audio* to *client* and return a usable response.

    Raises ``SubmitError`` on transport failure, an unsuccessful response,
    or an empty audio payload.
    """
    with tracer.start_as_current_span(
        "urna.submit",
        attributes={"image.bytes": image.size, "audio.bytes": audio.size},
    ) as span:
        try:
            response = await client.submit(image, audio, credentials)
        except SubmitError:
            raise
        except Exception as exc:
            raise SubmitError(f"Inference request failed: {exc}") from exc

        if not response.success:
            message = response.error_message or "No answer from the server"
            logger.warning("[Submit] Backend reported failure: %s", message)
            raise SubmitError(message, details={"metadata": response.metadata} if response.metadata else None)

        if not response.audio:
            logger.warning("[Submit] Backend returned an empty payload.")
            raise SubmitError("The server returned an empty answer")

        span.set_attribute("response.bytes", len(response.audio))
        logger.info("[Submit] Answer received (%d bytes)", len(response.audio))
        return response
