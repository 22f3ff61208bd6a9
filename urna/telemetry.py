"""Tracing for the capture session.

Phase modules open spans on the ``urna`` tracer (``urna.capture``,
``urna.recording.stop``, ``urna.submit``, ``urna.playback``). The
orchestrator runs every background job inside a ``urna.session.<job>`` span
stamped with the session id, so phase spans nest under the job that ran them.

Export is picked by ``Settings.telemetry_exporter``:
  - ``"console"`` (default): spans print to stdout.
  - ``"otlp"``: spans go to ``Settings.otlp_endpoint`` (needs the ``otlp`` extra).
  - ``"none"``: spans are recorded but not exported.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)

from urna import __version__
from urna.config import Settings
from urna.constants import TELEMETRY_SERVICE_NAME

logger = logging.getLogger(__name__)

_TRACER_NAME = "urna"
_provider: TracerProvider | None = None


def build_span_exporter(kind: str, endpoint: str) -> SpanExporter | None:
    """Return the exporter for *kind*, or None when export is disabled."""
    if kind == "none":
        return None
    if kind == "otlp":
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        except ImportError:
            logger.warning("[Telemetry] OTLP exporter not installed; using console.")
        else:
            return OTLPSpanExporter(endpoint=endpoint)
    elif kind != "console":
        logger.warning("[Telemetry] Unknown exporter %r; using console.", kind)
    return ConsoleSpanExporter()


def init_telemetry(settings: Settings | None = None) -> TracerProvider:
    """Install the global TracerProvider once and return it."""
    global _provider
    if _provider is not None:
        return _provider

    settings = settings or Settings()
    provider = TracerProvider(
        resource=Resource.create(
            {"service.name": TELEMETRY_SERVICE_NAME, "service.version": __version__}
        )
    )
    exporter = build_span_exporter(settings.telemetry_exporter, settings.otlp_endpoint)
    if exporter is None:
        logger.info("[Telemetry] Span export disabled.")
    elif isinstance(exporter, ConsoleSpanExporter):
        provider.add_span_processor(SimpleSpanProcessor(exporter))
        logger.info("[Telemetry] Console exporter active.")
    else:
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info("[Telemetry] OTLP exporter → %s", settings.otlp_endpoint)

    trace.set_tracer_provider(provider)
    _provider = provider
    return provider


def get_tracer() -> trace.Tracer:
    """Return the URNA tracer (safe to call before ``init_telemetry``)."""
    return trace.get_tracer(_TRACER_NAME)


@contextmanager
def session_span(session_id: str, name: str, **attributes: Any) -> Iterator[trace.Span]:
    """Open span *name* tagged with ``urna.session_id``."""
    with get_tracer().start_as_current_span(
        name, attributes={"urna.session_id": session_id, **attributes}
    ) as span:
        yield span
