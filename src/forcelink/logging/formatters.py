"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any

from forcelink.logging.context import get_log_context
from forcelink.utils.json_serializers import json_serializer

# Pattern to match sensitive query parameters
SENSITIVE_PARAMS_PATTERN = re.compile(
    r"([?&])(sig|token|access_token|refresh_token|key|secret|client_secret|password|auth)=[^&]*",
    re.IGNORECASE,
)

# Bearer credentials that slip into messages
BEARER_PATTERN = re.compile(r"(Bearer\s+)[A-Za-z0-9!._~+/=\-]+", re.IGNORECASE)


def sanitize_url(url: str) -> str:
    """Redact credential-bearing query parameters from a URL."""
    return SENSITIVE_PARAMS_PATTERN.sub(r"\1\2=[REDACTED]", url)


def sanitize_message(message: str) -> str:
    return BEARER_PATTERN.sub(r"\1[REDACTED]", message)


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    Sanitizes URLs and bearer tokens before logging.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        # Correlation
        "request_id",
        "job_id",
        "duration_seconds",
        # HTTP
        "http_status",
        "api_method",
        "api_url",
        "has_body",
        "timeout_seconds",
        # Errors
        "error_category",
        "error_message",
        "error_code",
        "error_type",
        # Resilience
        "attempt",
        "max_attempts",
        "total_attempts",
        "delay_seconds",
        "delay_source",
        "server_retry_after",
        # Auth
        "auth_strategy",
        "instance_url",
        "expires_in_seconds",
        "waiters",
        # Bulk jobs
        "job_state",
        "previous_state",
        "bulk_operation",
        "sobject",
        "records_processed",
        "records_failed",
        "records",
        "bytes_uploaded",
        "poll_count",
        "content_type",
        # Operation tracking
        "operation",
    ]

    # Type mapping for numeric fields so they are not serialized as strings
    NUMERIC_FIELDS = {
        "duration_seconds": float,
        "delay_seconds": float,
        "server_retry_after": float,
        "timeout_seconds": float,
        "expires_in_seconds": float,
        "attempt": int,
        "max_attempts": int,
        "total_attempts": int,
        "http_status": int,
        "waiters": int,
        "records_processed": int,
        "records_failed": int,
        "records": int,
        "bytes_uploaded": int,
        "poll_count": int,
    }

    # Fields that contain URLs and should be sanitized
    URL_FIELDS = ["api_url", "instance_url"]

    def _sanitize_value(self, key: str, value: Any) -> Any:
        if key in self.URL_FIELDS and isinstance(value, str):
            return sanitize_url(value)
        return value

    def _ensure_type(self, field: str, value: Any) -> Any:
        """
        Ensure field has correct type.

        Returns:
            Value with correct type, or None if conversion fails
        """
        if field not in self.NUMERIC_FIELDS or value is None:
            return value

        expected_type = self.NUMERIC_FIELDS[field]
        try:
            return expected_type(value)
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _base_log_entry(record: logging.LogRecord) -> dict[str, Any]:
        return {
            "ts": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_message(record.getMessage()),
        }

    @staticmethod
    def _inject_context(log_entry: dict[str, Any], log_context: dict[str, Any]) -> None:
        for field, value in log_context.items():
            if value:
                log_entry[field] = value

    @staticmethod
    def _should_include_source_location(record: logging.LogRecord) -> bool:
        return record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL)

    def _inject_extra_fields(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                # Type first, then sanitize
                typed_value = self._ensure_type(field, value)
                log_entry[field] = self._sanitize_value(field, typed_value)

    def _inject_exception(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        if not record.exc_info:
            return

        exc_type, exc_value, _ = record.exc_info
        log_entry["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "message": sanitize_message(str(exc_value)) if exc_value else None,
            "stacktrace": self.formatException(record.exc_info),
        }

    def format(self, record: logging.LogRecord) -> str:
        log_entry = self._base_log_entry(record)

        self._inject_context(log_entry, get_log_context())

        if self._should_include_source_location(record):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        self._inject_extra_fields(log_entry, record)
        self._inject_exception(log_entry, record)

        return json.dumps(log_entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter with color-coded log levels.

    Colors are auto-disabled when output is not a TTY (pipes, files).
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _format_level_name(self, record: logging.LogRecord) -> str:
        level_name = record.levelname
        if not self._use_colors:
            return level_name

        color = self.COLORS.get(record.levelno, "")
        if not color:
            return level_name

        return f"{color}{level_name}{self.RESET}"

    @staticmethod
    def _build_tags(record: logging.LogRecord, log_context: dict[str, Any]) -> list[str]:
        job_id = getattr(record, "job_id", None) or log_context.get("job_id")
        request_id = getattr(record, "request_id", None) or log_context.get("request_id")
        operation = log_context.get("operation")

        tags = []
        if operation:
            tags.append(f"[{operation}]")
        if job_id:
            tags.append(f"[job:{job_id}]")
        if request_id:
            tags.append(f"[{request_id[:8]}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        log_context = get_log_context()

        prefix = " - ".join(
            [
                datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
                self._format_level_name(record),
                record.name,
            ]
        )
        message = sanitize_message(record.getMessage())
        tags = self._build_tags(record, log_context)

        line = f"{prefix} - {' '.join(tags)} {message}" if tags else f"{prefix} - {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
