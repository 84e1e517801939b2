"""Process-wide logging and OpenTelemetry setup for evdesk.

Workflow modules log through ``logging.getLogger(__name__)`` so every record lands
under the ``evdesk`` hierarchy. Spans are named ``workflow.<operation>`` and are only
exported when ``otel_enabled`` is set. The OTLP exporter picks up
``OTEL_EXPORTER_OTLP_HEADERS`` from the environment on its own.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from evdesk.core.config import Settings

# Loggers that are chatty at INFO and only matter when something breaks.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")

_active_provider: TracerProvider | None = None


def logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"evdesk": {"format": settings.log_format}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "evdesk",
                "level": level,
            }
        },
        "loggers": {
            "evdesk": {"level": level},
            **{name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        },
        "root": {"handlers": ["console"], "level": level},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Apply :func:`logging_config` and return the ``evdesk`` package logger."""

    dictConfig(logging_config(settings))
    return logging.getLogger("evdesk")


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Install a batching OTLP tracer provider once per process.

    Returns ``None`` when tracing is disabled or a provider is already active, so the
    caller only shuts down what it created.
    """

    global _active_provider

    if not settings.otel_enabled or _active_provider is not None:
        return None

    provider = TracerProvider(resource=Resource.create({"service.name": settings.otel_service_name}))
    exporter = (
        OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        if settings.otel_exporter_otlp_endpoint
        else OTLPSpanExporter()
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _active_provider = provider
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    global _active_provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _active_provider:
        _active_provider = None
