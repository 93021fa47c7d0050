"""Logging and tracing set-up for a triage client session."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from triage.core.config import Settings

# HTTP transport loggers; they log every request line at INFO
HTTP_LOGGERS = ("httpx", "httpcore")

_provider: TracerProvider | None = None


def _level(name: str, default: int = logging.INFO) -> int:
    return getattr(logging, name.upper(), default)


def configure_logging(settings: Settings) -> logging.Logger:
    """Route ``triage.*`` and the HTTP transport through one stream handler.

    Returns the logger named after the application.
    """

    level = _level(settings.log_level)
    http_level = max(level, _level(settings.http_log_level, logging.WARNING))
    loggers: dict[str, dict[str, object]] = {"triage": {"level": level}}
    loggers.update({name: {"level": http_level} for name in HTTP_LOGGERS})

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"triage": {"format": settings.log_format}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "triage",
                    "level": level,
                }
            },
            "root": {"handlers": ["console"], "level": level},
            "loggers": loggers,
        }
    )

    logger = logging.getLogger(settings.app_name)
    logger.setLevel(level)
    return logger


def _tracing_resource(settings: Settings) -> Resource:
    return Resource.create(
        {
            "service.name": settings.otel_service_name,
            "deployment.environment": settings.environment,
            "triage.api.base_url": settings.api_base_url,
        }
    )


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Export ticket API spans over OTLP when ``otel_enabled`` is set.

    Returns ``None`` when tracing is off or another session already owns the
    provider; only the owner shuts it down.
    """

    global _provider

    if _provider is not None or not settings.otel_enabled:
        return None

    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint,
        headers=settings.otel_headers or None,
    )
    provider = TracerProvider(resource=_tracing_resource(settings))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    logging.getLogger(__name__).info(
        "Tracing ticket API calls as %s", settings.otel_service_name
    )
    return provider


def shutdown_tracer(provider: TracerProvider | None) -> None:
    """Flush and stop the provider returned by :func:`init_tracer`."""

    global _provider

    if provider is None:
        return
    provider.shutdown()
    if provider is _provider:
        _provider = None
