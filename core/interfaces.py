"""Cloud-agnostic HTTP interfaces.

This module defines the request facade, response builder and context factory
that every cloud adapter implements. Handlers depend only on these classes and
never see runtime-specific request or response types.
"""

import io
import json
import uuid
from abc import ABC, abstractmethod
from http import HTTPStatus
from typing import (
    Any,
    Awaitable,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)
from urllib.parse import unquote, urlsplit

import httpx
from pydantic import TypeAdapter, ValidationError

from core.envelope import (
    DEFAULT_FORBIDDEN_MESSAGE,
    DEFAULT_NOT_FOUND_MESSAGE,
    DEFAULT_SERVER_ERROR_CODE,
    DEFAULT_SERVER_ERROR_MESSAGE,
    DEFAULT_UNAUTHORIZED_MESSAGE,
    JSON_CONTENT_TYPE,
    ErrorCode,
    error_envelope,
    serialize_json,
)

HeaderValue = Union[str, Sequence[str]]


class BodyDecodeError(ValueError):
    """Raised when a request body cannot be decoded into the requested type."""

    pass


def build_headers(
    raw: Union[Mapping[str, HeaderValue], Iterable[Tuple[str, str]], None],
) -> httpx.Headers:
    """Build a case-insensitive header map from a native header collection.

    Multi-valued headers (given as lists, or as repeated keys in an iterable
    of pairs) are collapsed into a single value joined with ``,``.

    Args:
        raw: Mapping of name to value(s), or iterable of (name, value) pairs

    Returns:
        Case-insensitive httpx.Headers with one entry per header name
    """
    if raw is None:
        return httpx.Headers()

    items = raw.items() if isinstance(raw, Mapping) else raw
    collected: Dict[str, Tuple[str, list]] = {}
    for key, value in items:
        if value is None:
            continue
        values = [value] if isinstance(value, str) else [str(v) for v in value]
        lookup = key.lower()
        if lookup in collected:
            collected[lookup][1].extend(values)
        else:
            collected[lookup] = (key, list(values))

    return httpx.Headers([(key, ",".join(values)) for key, values in collected.values()])


def parse_query_string(url: str) -> Dict[str, str]:
    """Parse the query component of a URL into a decoded mapping.

    Keys and values are percent-decoded. Pairs without ``=`` are skipped and
    repeated keys keep the last value.

    Args:
        url: Absolute or relative URL

    Returns:
        Dictionary of query parameters
    """
    query: Dict[str, str] = {}
    query_string = urlsplit(url).query
    if not query_string:
        return query

    for pair in query_string.split("&"):
        key, sep, value = pair.partition("=")
        if not sep:
            continue
        query[unquote(key)] = unquote(value)

    return query


class HttpRequest(ABC):
    """Read-only view over a runtime's inbound HTTP request."""

    def __init__(self, route_values: Optional[Mapping[str, str]] = None) -> None:
        self._route_values: Dict[str, str] = dict(route_values or {})

    @property
    @abstractmethod
    def method(self) -> str:
        """HTTP method exactly as the runtime reports it."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Full request URL including the query string."""

    @property
    @abstractmethod
    def headers(self) -> httpx.Headers:
        """Case-insensitive request headers."""

    @property
    @abstractmethod
    def body(self) -> Optional[io.BytesIO]:
        """Request body stream, or None when the runtime delivered no body."""

    @property
    def query(self) -> Dict[str, str]:
        return parse_query_string(self.url)

    @property
    def route_values(self) -> Dict[str, str]:
        return self._route_values

    def set_route_values(self, route_values: Optional[Mapping[str, str]]) -> None:
        """Replace the route values discovered by the routing layer.

        Args:
            route_values: New route parameters; existing values are discarded
        """
        self._route_values = dict(route_values or {})

    async def read_body_as_json(self, model: Optional[Any] = None) -> Any:
        """Deserialize the request body as JSON.

        Args:
            model: Optional target type (pydantic model, list[Model], dict, ...)

        Returns:
            Decoded payload, an instance of ``model`` when given, or None when
            the body is missing or empty

        Raises:
            BodyDecodeError: If the body is not valid JSON or does not match
                ``model``
        """
        stream = self.body
        if stream is None:
            return None

        stream.seek(0)
        raw = stream.read()
        if not raw:
            return None

        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise BodyDecodeError(f"Request body is not valid JSON: {e}") from e

        if model is None:
            return payload

        try:
            return TypeAdapter(model).validate_python(payload)
        except ValidationError as e:
            raise BodyDecodeError(f"Request body does not match expected shape: {e}") from e

    def get_query_parameter(self, key: str) -> Optional[str]:
        return self.query.get(key)

    def get_route_value(self, key: str) -> Optional[str]:
        return self.route_values.get(key)

    def get_header(self, key: str) -> Optional[str]:
        return self.headers.get(key)

    def get_route_guid(self, key: str) -> Optional[uuid.UUID]:
        """Parse a route value as a UUID.

        Returns:
            The parsed UUID, or None if the value is missing or malformed
        """
        value = self.get_route_value(key)
        if not value:
            return None
        try:
            return uuid.UUID(value)
        except (ValueError, TypeError):
            return None


class HttpResponse(ABC):
    """Mutable outbound response, translated to the runtime type at the end."""

    def __init__(self, status_code: int = HTTPStatus.OK) -> None:
        self.status_code = int(status_code)
        self.headers = httpx.Headers({"Content-Type": JSON_CONTENT_TYPE})
        self.body: Optional[str] = None

    async def write_json(self, data: Any) -> None:
        self.headers["Content-Type"] = JSON_CONTENT_TYPE
        self.body = serialize_json(data)

    async def write_string(self, content: str) -> None:
        self.body = content

    def add_header(self, key: str, value: str) -> None:
        self.headers[key] = value

    def header_items(self) -> Dict[str, str]:
        """Headers as a plain dict, keeping the casing they were set with."""
        return {
            key.decode(self.headers.encoding): value.decode(self.headers.encoding)
            for key, value in self.headers.raw
        }

    @abstractmethod
    def to_native(self) -> Any:
        """Build the runtime-native response object from the current state."""


class HttpContext(ABC):
    """Per-invocation pairing of a request with a response factory.

    Subclasses supply the request and the concrete response type; the canned
    constructors below keep the JSON body shape identical for every runtime.
    """

    def __init__(self, server_error_code: str = DEFAULT_SERVER_ERROR_CODE) -> None:
        self.server_error_code = server_error_code

    @property
    @abstractmethod
    def request(self) -> HttpRequest:
        """The inbound request for this invocation."""

    @abstractmethod
    def _new_response(self, status_code: int) -> HttpResponse:
        """Create an empty runtime-specific response."""

    def create_response(self, status_code: int = HTTPStatus.OK) -> HttpResponse:
        return self._new_response(status_code)

    async def _json_response(self, status_code: int, data: Any) -> HttpResponse:
        response = self._new_response(status_code)
        await response.write_json(data)
        return response

    async def create_ok_response(self, data: Any) -> HttpResponse:
        return await self._json_response(HTTPStatus.OK, data)

    async def create_created_response(self, data: Any) -> HttpResponse:
        return await self._json_response(HTTPStatus.CREATED, data)

    async def create_bad_request_response(self, code: str, message: str) -> HttpResponse:
        return await self._json_response(HTTPStatus.BAD_REQUEST, error_envelope(code, message))

    async def create_unauthorized_response(
        self, message: str = DEFAULT_UNAUTHORIZED_MESSAGE
    ) -> HttpResponse:
        return await self._json_response(
            HTTPStatus.UNAUTHORIZED, error_envelope(ErrorCode.UNAUTHORIZED, message)
        )

    async def create_forbidden_response(
        self, message: str = DEFAULT_FORBIDDEN_MESSAGE
    ) -> HttpResponse:
        return await self._json_response(
            HTTPStatus.FORBIDDEN, error_envelope(ErrorCode.FORBIDDEN, message)
        )

    async def create_not_found_response(
        self, message: str = DEFAULT_NOT_FOUND_MESSAGE
    ) -> HttpResponse:
        return await self._json_response(
            HTTPStatus.NOT_FOUND, error_envelope(ErrorCode.NOT_FOUND, message)
        )

    async def create_server_error_response(
        self, message: str = DEFAULT_SERVER_ERROR_MESSAGE
    ) -> HttpResponse:
        return await self._json_response(
            HTTPStatus.INTERNAL_SERVER_ERROR,
            error_envelope(self.server_error_code, message),
        )

    def create_no_content_response(self) -> HttpResponse:
        response = self._new_response(HTTPStatus.NO_CONTENT)
        response.body = ""
        return response

    def to_native(self, response: HttpResponse) -> Any:
        """Materialize the runtime-native response for the end of the invocation."""
        return response.to_native()


class Handler(Protocol):
    """Cloud-agnostic business logic invoked by the dispatcher.

    ``principal`` is None for routes that do not require authorization.
    """

    def __call__(self, context: HttpContext, principal: Optional[Any]) -> Awaitable[HttpResponse]:
        ...
