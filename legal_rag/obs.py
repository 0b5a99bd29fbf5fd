"""Observability: logging setup, Langfuse traces and OpenTelemetry spans.

- configure_logging: root logging format/level for the API and the worker CLI.
- span: OpenTelemetry span context manager; a console exporter is installed
  once unless an exporter was configured externally.
- Trace: Langfuse trace wrapper. It is inert unless LANGFUSE_HOST and both keys
  are configured, and tracing errors are logged at debug level and dropped so
  they never affect a query.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from langfuse import Langfuse
from langfuse.client import StatefulTraceClient
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from legal_rag.config import settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_langfuse_client: Optional[Langfuse] = None
_otel_inited: bool = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once with the service format.

    Args:
        level: Level name; defaults to settings.LOG_LEVEL.
    """
    name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
    # Client libraries log every HTTP request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)


def _init_langfuse() -> Optional[Langfuse]:
    global _langfuse_client
    if _langfuse_client is not None:
        return _langfuse_client
    if settings.LANGFUSE_HOST and settings.LANGFUSE_PUBLIC_KEY and settings.LANGFUSE_SECRET_KEY:
        _langfuse_client = Langfuse(
            host=settings.LANGFUSE_HOST,
            public_key=settings.LANGFUSE_PUBLIC_KEY,
            secret_key=settings.LANGFUSE_SECRET_KEY,
        )
    return _langfuse_client


def _init_otel() -> None:
    global _otel_inited
    if _otel_inited:
        return
    tp = TracerProvider()
    tp.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tp)
    _otel_inited = True


@contextmanager
def span(name: str, attributes: Optional[Dict[str, Any]] = None):
    """OpenTelemetry span around a pipeline stage; exceptions are recorded and re-raised."""
    _init_otel()
    tracer = trace.get_tracer("legal_rag")
    with tracer.start_as_current_span(name, attributes=attributes or {}) as otel_span:
        yield otel_span


class Trace:
    """Langfuse trace for one query; every method is a no-op when disabled."""

    def __init__(self, name: str, input: Optional[Dict[str, Any]] = None):
        self.name = name
        self._trace: Optional[StatefulTraceClient] = None
        client = _init_langfuse()
        if client is not None:
            try:
                self._trace = client.trace(name=name, input=input or {})
            except Exception:
                logger.debug("Langfuse trace creation failed", exc_info=True)
                self._trace = None

    @property
    def enabled(self) -> bool:
        return self._trace is not None

    def event(self, name: str, data: Optional[Dict[str, Any]] = None):
        """Record a structured event (classification, retrieval counts, fallbacks)."""
        if self._trace is None:
            return
        try:
            self._trace.event(name=name, input=data or {})
        except Exception:
            logger.debug("Langfuse event %s dropped", name, exc_info=True)

    def generation(self, name: str, prompt: str, output: str, metadata: Optional[Dict[str, Any]] = None):
        if self._trace is None:
            return
        try:
            self._trace.generation(
                name=name,
                input=prompt,
                output=output,
                metadata=metadata or {},
                model=settings.OPENAI_MODEL,
            )
        except Exception:
            logger.debug("Langfuse generation %s dropped", name, exc_info=True)

    def end(self, output: Optional[Dict[str, Any]] = None):
        if self._trace is None:
            return
        try:
            self._trace.update(output=output or {})
        except Exception:
            logger.debug("Langfuse trace end dropped", exc_info=True)
