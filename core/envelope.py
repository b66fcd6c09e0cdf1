"""Shared response-envelope conventions.

Every adapter serializes payloads through this module so that response
bodies are byte-identical regardless of which cloud runtime carries them.
"""

import json
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from pydantic import TypeAdapter

JSON_CONTENT_TYPE = "application/json"


class ErrorCode(str, Enum):
    """Fixed error codes used by the canned context responses."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Canonical spelling for 500 responses unless configuration overrides it
DEFAULT_SERVER_ERROR_CODE = ErrorCode.INTERNAL_SERVER_ERROR.value

DEFAULT_UNAUTHORIZED_MESSAGE = "Unauthorized"
DEFAULT_FORBIDDEN_MESSAGE = "Forbidden"
DEFAULT_NOT_FOUND_MESSAGE = "Resource not found"
DEFAULT_SERVER_ERROR_MESSAGE = "An internal server error occurred"


def error_envelope(code: str, message: str) -> Dict[str, Dict[str, str]]:
    """Build the error body used for every 4xx/5xx response.

    Args:
        code: SCREAMING_SNAKE_CASE error code
        message: Human-readable message

    Returns:
        Dictionary of the form {"error": {"code": ..., "message": ...}}
    """
    if isinstance(code, Enum):
        code = code.value
    return {"error": {"code": code, "message": message}}


_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def _json_default(value: Any) -> Any:
    # Decimals are written as JSON numbers
    if isinstance(value, Decimal):
        return float(value)
    return _ANY_ADAPTER.dump_python(value, mode="json", by_alias=True)


def serialize_json(data: Any) -> str:
    """Serialize a payload to compact JSON.

    Pydantic models are dumped by alias, so models declaring camelCase
    aliases produce camelCase bodies. UUIDs and datetimes are converted the
    way pydantic converts them; decimals become JSON numbers.

    Args:
        data: Payload to serialize

    Returns:
        JSON string without insignificant whitespace
    """
    return json.dumps(
        _ANY_ADAPTER.dump_python(data, by_alias=True),
        default=_json_default,
        separators=(",", ":"),
        ensure_ascii=False,
    )
