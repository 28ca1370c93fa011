from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import Span

from salesdesk.context import get_correlation_id
from salesdesk.core.config import Settings


SERVICE_NAME = "salesdesk-api"

_provider: TracerProvider | None = None
_exporters_installed = False


def _tracer_provider(environment: str | None = None) -> TracerProvider:
    global _provider

    if _provider is None:
        attributes = {
            "service.name": SERVICE_NAME,
            "service.version": os.getenv("APP_VERSION", "0.1.0"),
        }
        if environment:
            attributes["deployment.environment"] = environment
        _provider = TracerProvider(resource=Resource.create(attributes))
        trace.set_tracer_provider(_provider)
    return _provider


def configure_tracing(settings: Settings) -> TracerProvider | None:
    """Install the process tracer provider and its exporters once.

    Spans go to ``OTEL_EXPORTER_OTLP_ENDPOINT`` when set, and to stdout when
    ``OTEL_CONSOLE_EXPORTER=true``.
    """

    global _exporters_installed

    if not settings.otel_enabled:
        return None

    provider = _tracer_provider(settings.app_env)
    if _exporters_installed:
        return provider

    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _exporters_installed = True
    return provider


def setup_inmemory_otel() -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


@contextmanager
def workflow_span(name: str, correlation_id: str | None = None, **attributes: str) -> Iterator[Span]:
    """Span around a multi-step domain operation, tagged with the request's correlation id."""

    with trace.get_tracer("salesdesk").start_as_current_span(name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)
        resolved = correlation_id or get_correlation_id()
        if resolved:
            span.set_attribute("correlation_id", resolved)
        yield span


def server_request_hook(span: Span | None, scope: dict[str, Any]) -> None:
    if span is None or not span.is_recording():
        return
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id":
            span.set_attribute("correlation_id", value.decode("latin-1"))
            return
