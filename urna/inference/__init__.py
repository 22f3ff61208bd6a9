"""Inference backends: the real HTTP client and a simulated stand-in."""

from __future__ import annotations

import logging

from urna.collaborators import InferenceClient
from urna.config import Settings
from urna.inference.http_client import HttpInferenceClient
from urna.inference.simulated import SimulatedInferenceClient

logger = logging.getLogger(__name__)


def build_inference_client(settings: Settings) -> InferenceClient:
    """Pick the simulated or HTTP backend according to ``settings.simulate``."""
    if settings.simulate:
        logger.info("[Inference] Simulated backend selected.")
        return SimulatedInferenceClient()
    logger.info("[Inference] HTTP backend at %s", settings.base_url)
    return HttpInferenceClient(
        settings.base_url,
        predict_path=settings.predict_path,
        timeout=settings.request_timeout,
    )


__all__ = ["HttpInferenceClient", "SimulatedInferenceClient", "build_inference_client"]
