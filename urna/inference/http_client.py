"""HTTP client for the URNA prediction backend (multipart image + audio upload)."""

from __future__ import annotations

import base64
import binascii
import logging

import httpx

from urna.collaborators import Credentials, InferenceResponse
from urna.constants import (
    AUDIO_FIELD_NAME,
    AUDIO_FILENAME,
    HEALTH_PATH,
    HEALTH_TIMEOUT,
    IMAGE_FIELD_NAME,
    IMAGE_FILENAME,
    PREDICT_PATH,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from urna.errors import SubmitError
from urna.session.artifacts import AudioArtifact, ImageArtifact, sniff_media_type
from urna.utils import generate_request_id

logger = logging.getLogger(__name__)


class HttpInferenceClient:
    """Posts the image/question pair to the prediction endpoint.

    Parameters
    ----------
    base_url : str
        Backend root, e.g. ``https://lifedebugger-urna-backend.hf.space``.
    predict_path : str
        Path of the prediction endpoint.
    timeout : float
        Request timeout in seconds. The call is made once; there is no retry.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        predict_path: str = PREDICT_PATH,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._predict_path = predict_path
        self._timeout = timeout
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def submit(
        self,
        image: ImageArtifact,
        audio: AudioArtifact,
        credentials: Credentials,
    ) -> InferenceResponse:
        """Upload *image* and *audio* and interpret the backend's answer.

        Transport failures raise ``SubmitError``; HTTP-level failures come
        back as an unsuccessful ``InferenceResponse`` carrying the server's
        error message.
        """
        url = f"{self._base_url}{self._predict_path}"
        request_id = generate_request_id("predict")
        headers = {
            "User-Agent": USER_AGENT,
            "X-User-Passphrase": credentials.passphrase,
            "X-Request-ID": request_id,
        }
        if credentials.session_token:
            headers["Authorization"] = f"Bearer {credentials.session_token}"

        files = {
            IMAGE_FIELD_NAME: (IMAGE_FILENAME, image.data, image.media_type),
            AUDIO_FIELD_NAME: (AUDIO_FILENAME, audio.data, audio.media_type),
        }

        logger.info(
            "[Inference] POST %s (image %d bytes, audio %d bytes, request=%s)",
            url,
            image.size,
            audio.size,
            request_id,
        )
        try:
            async with self._client(self._timeout) as client:
                response = await client.post(url, headers=headers, files=files)
        except httpx.HTTPError as exc:
            logger.error("[Inference] Network error: %s", exc)
            raise SubmitError(f"Network error: {exc}", details={"request_id": request_id}) from exc

        logger.info("[Inference] Response status: %d", response.status_code)
        return self._parse_response(response)

    async def check_health(self) -> bool:
        """Return True when ``GET /health`` answers 200."""
        try:
            async with self._client(HEALTH_TIMEOUT) as client:
                response = await client.get(f"{self._base_url}{HEALTH_PATH}")
            return response.status_code == 200
        except httpx.HTTPError as exc:
            logger.warning("[Inference] Backend health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_response(response: httpx.Response) -> InferenceResponse:
        if response.status_code != 200:
            message = f"HTTP {response.status_code}"
            try:
                data = response.json()
                if isinstance(data, dict) and data.get("error"):
                    message = str(data["error"])
            except ValueError:
                if response.text:
                    message = response.text
            return InferenceResponse(success=False, error_message=message)

        content_type = response.headers.get("content-type", "")

        if "application/json" in content_type:
            try:
                data = response.json()
            except ValueError:
                return InferenceResponse(success=False, error_message="Malformed JSON response")
            if not isinstance(data, dict):
                return InferenceResponse(success=False, error_message="Malformed JSON response")
            try:
                audio = base64.b64decode(data.get("audio_base64") or "", validate=True)
            except (binascii.Error, ValueError):
                return InferenceResponse(success=False, error_message="Response audio is not valid base64")
            metadata = dict(data.get("metadata") or {})
            if audio:
                metadata.setdefault("audio_format", sniff_media_type(audio))
            return InferenceResponse(
                success=bool(data.get("success", False)),
                audio=audio,
                error_message=data.get("error"),
                metadata=metadata,
            )

        if content_type.startswith("audio/"):
            audio = response.content
            return InferenceResponse(
                success=True,
                audio=audio,
                metadata={"audio_format": sniff_media_type(audio) or content_type.split(";")[0]},
            )

        return InferenceResponse(
            success=False,
            error_message=f"Unexpected response format: {content_type}",
        )
