"""UrnaError hierarchy — structured, recoverable errors for the capture session.

Every failure a collaborator can raise maps onto one of these classes, and
each carries a consistent envelope so the rendering layer and the logs see
the same shape.

Error codes
-----------
E_CAPTURE_FAILED     Camera unavailable or capture timed out.
E_PERMISSION_DENIED  Microphone permission refused.
E_RECORD_FAILED      Recorder could not start or stop.
E_AUDIO_TOO_SMALL    Recorded clip below the plausible minimum size.
E_INVALID_ARTIFACT   Artifact failed pre-submission validation.
E_SUBMIT_FAILED      Inference call failed (network, non-2xx, malformed).
E_PLAYBACK_FAILED    Response audio could not be played.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from urna.collaborators import Notifier

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    E_CAPTURE_FAILED = "E_CAPTURE_FAILED"
    E_PERMISSION_DENIED = "E_PERMISSION_DENIED"
    E_RECORD_FAILED = "E_RECORD_FAILED"
    E_AUDIO_TOO_SMALL = "E_AUDIO_TOO_SMALL"
    E_INVALID_ARTIFACT = "E_INVALID_ARTIFACT"
    E_SUBMIT_FAILED = "E_SUBMIT_FAILED"
    E_PLAYBACK_FAILED = "E_PLAYBACK_FAILED"


class UrnaError(Exception):
    """Base class for every error surfaced by the capture session."""

    default_code: ErrorCode = ErrorCode.E_SUBMIT_FAILED

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        recoverable: bool = True,
        session_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.recoverable = recoverable
        self.session_id = session_id
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": "error",
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "session_id": self.session_id,
        }
        if self.details:
            d["details"] = self.details
        return d


class CaptureError(UrnaError):
    default_code = ErrorCode.E_CAPTURE_FAILED


class RecordError(UrnaError):
    default_code = ErrorCode.E_RECORD_FAILED


class SubmitError(UrnaError):
    default_code = ErrorCode.E_SUBMIT_FAILED


class PlaybackError(UrnaError):
    default_code = ErrorCode.E_PLAYBACK_FAILED


def report_error(notifier: Notifier, error: UrnaError) -> None:
    """Log *error* and surface it to the user through *notifier*.

    Never raises: a failing notifier is logged at debug level.
    """
    from urna.feedback import FeedbackKind

    logger.warning(
        "[UrnaError] %s: %s (session=%s)",
        error.code.value,
        error.message,
        error.session_id,
    )
    try:
        notifier.notify(FeedbackKind.ERROR, error.message)
    except Exception as exc:
        logger.debug("[UrnaError] Failed to notify user: %s", exc)
