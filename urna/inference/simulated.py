"""Simulated inference backend for development and demo environments."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from urna.collaborators import Credentials, InferenceResponse
from urna.constants import SIMULATED_DELAY
from urna.session.artifacts import AudioArtifact, ImageArtifact

logger = logging.getLogger(__name__)

_CANNED_ANSWERS = (
    "Based on the picture and your question, this looks like a pleasant scene. "
    "The weather appears clear with a bright blue sky.",
    "From the picture and your question, the surroundings look safe and "
    "comfortable for outdoor activity.",
    "About the picture you asked about: the objects in view look in good "
    "condition and neatly arranged.",
)


class SimulatedInferenceClient:
    """Answers every submission with a canned response after a short delay.

    The answer text is returned UTF-8 encoded in ``audio`` and also in
    ``metadata["response_text"]`` so playback can fall back to speech.
    """

    def __init__(self, *, delay: float = SIMULATED_DELAY, answers: tuple[str, ...] = _CANNED_ANSWERS) -> None:
        self._delay = delay
        self._answers = answers
        self._calls = 0

    async def submit(
        self,
        image: ImageArtifact,
        audio: AudioArtifact,
        credentials: Credentials,
    ) -> InferenceResponse:
        logger.info(
            "[Inference] Simulated request (image %d bytes, audio %d bytes)",
            image.size,
            audio.size,
        )
        if self._delay > 0:
            await asyncio.sleep(self._delay)

        text = self._answers[self._calls % len(self._answers)]
        self._calls += 1
        return InferenceResponse(
            success=True,
            audio=text.encode("utf-8"),
            metadata={
                "mode": "simulation",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "has_audio_input": audio.size > 0,
                "response_text": text,
            },
        )
