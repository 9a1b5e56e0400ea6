"""
Structured logging module.

Provides JSON logging with request/job correlation and context propagation.
"""

from forcelink.logging.context import (
    clear_log_context,
    get_log_context,
    set_log_context,
)
from forcelink.logging.context_managers import LogContext
from forcelink.logging.formatters import (
    ConsoleFormatter,
    JSONFormatter,
    sanitize_message,
    sanitize_url,
)
from forcelink.logging.setup import setup_logging

__all__ = [
    # Setup
    "setup_logging",
    # Formatters
    "JSONFormatter",
    "ConsoleFormatter",
    "sanitize_url",
    "sanitize_message",
    # Context
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "LogContext",
]
