"""Captured artifacts and the lightweight checks applied before submission."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from urna.constants import AUDIO_MIN_BYTES, IMAGE_MIN_BYTES

logger = logging.getLogger(__name__)

_AUDIO_TYPES = {"audio/mp4", "audio/aac", "audio/mpeg", "audio/wav"}


@dataclass(frozen=True)
class ImageArtifact:
    """An encoded still image. ``placeholder`` marks the degraded-capture stand-in."""

    data: bytes
    media_type: str = "image/jpeg"
    placeholder: bool = False

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AudioArtifact:
    """An encoded voice clip and its recorded duration in seconds."""

    data: bytes
    duration: float = 0.0
    media_type: str = "audio/mp4"

    @property
    def size(self) -> int:
        return len(self.data)


def sniff_media_type(data: bytes) -> str | None:
    """Guess a media type from the leading bytes of *data*.

    Recognises JPEG, PNG, RIFF/WAV, MP4/M4A (``ftyp`` box), AAC in ADTS and
    MP3 (ID3 tag or MPEG frame sync). Returns None when nothing matches.
    """
    if len(data) < 4:
        return None

    if data[0] == 0xFF and data[1] == 0xD8:
        return "image/jpeg"
    if data[:4] == b"\x89PNG":
        return "image/png"
    if data[:4] == b"RIFF":
        return "audio/wav"
    if len(data) >= 8 and data[4:8] == b"ftyp":
        return "audio/mp4"
    if data[:3] == b"ID3":
        return "audio/mpeg"
    # ADTS sync word is 12 bits with layer bits zero; check before MPEG frame sync
    if data[0] == 0xFF and (data[1] & 0xF6) == 0xF0:
        return "audio/aac"
    if data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
        return "audio/mpeg"
    return None


def check_image(image: ImageArtifact | None) -> bool:
    """True if *image* is present, non-empty and above the plausible minimum size."""
    if image is None:
        logger.warning("[Artifacts] No image artifact declared.")
        return False
    if image.size <= IMAGE_MIN_BYTES:
        logger.warning("[Artifacts] Image too small: %d bytes (minimum %d)", image.size, IMAGE_MIN_BYTES)
        return False
    return True


def check_audio(audio: AudioArtifact | None) -> bool:
    """True if *audio* is present, non-empty and above the plausible minimum size.

    The container sniff is advisory: a clip that does not look like a known
    audio container is logged and still accepted.
    """
    if audio is None:
        logger.warning("[Artifacts] No audio artifact declared.")
        return False
    if audio.size <= AUDIO_MIN_BYTES:
        logger.warning("[Artifacts] Audio too small: %d bytes (minimum %d)", audio.size, AUDIO_MIN_BYTES)
        return False

    detected = sniff_media_type(audio.data)
    if detected not in _AUDIO_TYPES:
        logger.warning(
            "[Artifacts] Audio container not recognised (detected %s) — accepting anyway.",
            detected,
        )
    return True
