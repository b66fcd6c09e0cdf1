"""Logging utilities for the Allowance Tracker API.

Provides JSON logging configuration for CloudWatch / Application Insights and
helpers that build request/response log entries with credentials redacted.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from pythonjsonlogger import json as jsonlogger

REDACTED = "[REDACTED]"

# Substrings that mark a header or field as sensitive (case-insensitive)
SENSITIVE_KEYS = [
    "authorization",
    "cookie",
    "token",
    "password",
    "secret",
    "api_key",
    "apikey",
    "api-key",
    "x-functions-key",
]

# Bodies above this size are summarized instead of logged
MAX_LOGGED_BODY_CHARS = 2000

_RESERVED_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def configure_json_logging(level: str = "INFO", pretty: bool = False) -> None:
    """Configure the root logger to emit JSON.

    Must be called before request handling starts; child loggers inherit the
    root handler.

    Args:
        level: Log level name
        pretty: Indented JSON for local development instead of compact JSON
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    handler = logging.StreamHandler()
    handler.setLevel(log_level)

    if pretty:
        formatter: logging.Formatter = _PrettyJsonFormatter()
    else:
        # Same field names as the pretty formatter
        formatter = jsonlogger.JsonFormatter(
            "%(name)s %(levelname)s %(message)s",
            rename_fields={"name": "logger", "levelname": "level"},
            timestamp=True,
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


class _PrettyJsonFormatter(logging.Formatter):
    """Indented JSON for reading logs in a terminal."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value
        if record.exc_info:
            log_data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_data, indent=2, ensure_ascii=False, default=str)


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def sanitize_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Copy headers, replacing credential-bearing values with a marker."""
    return {
        key: REDACTED if is_sensitive_key(key) else value
        for key, value in headers.items()
    }


def _summarize_body(body: Optional[str]) -> Any:
    if not body:
        return ""
    if len(body) > MAX_LOGGED_BODY_CHARS:
        return f"({len(body)} chars)"
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return REDACTED
    return _sanitize_value(parsed)


def _sanitize_value(data: Any) -> Any:
    if isinstance(data, dict):
        return {
            key: REDACTED if is_sensitive_key(str(key)) else _sanitize_value(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_sanitize_value(item) for item in data]
    return data


def format_request_log(
    request_id: str,
    http_method: str,
    url: str,
    headers: Mapping[str, str],
    route: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the structured log entry for an inbound request.

    Request bodies are not logged; they may carry personal data.
    """
    return {
        "request_id": request_id,
        "http_method": http_method,
        "request_url": url,
        "route": route,
        "request_headers": sanitize_headers(headers),
    }


def format_response_log(
    request_id: str,
    status_code: int,
    headers: Mapping[str, str],
    body: Optional[str],
    duration_ms: float,
) -> Dict[str, Any]:
    """Build the structured log entry for an outbound response.

    Only error bodies (status >= 400) are included, sanitized.
    """
    log_data: Dict[str, Any] = {
        "request_id": request_id,
        "response_status": status_code,
        "response_headers": sanitize_headers(headers),
        "duration_ms": round(duration_ms, 2),
        "success": status_code < 400,
    }
    if status_code >= 400:
        log_data["response_body"] = _summarize_body(body)
    return log_data
