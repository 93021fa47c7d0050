"""Configuration and logging for the triage client."""

from .config import Settings, get_settings
from .logging import configure_logging, init_tracer, shutdown_tracer

__all__ = ["Settings", "configure_logging", "get_settings", "init_tracer", "shutdown_tracer"]
