"""Observability subsystem for PolicyBot: structlog configuration."""

from .log_config import configure_logging

__all__ = ["configure_logging"]
