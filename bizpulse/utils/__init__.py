"""Shared utilities (structured logging)."""

from .logging import configure_logging, get_logger, report_context

__all__ = ["configure_logging", "get_logger", "report_context"]
