"""AWS Lambda adapter for the Allowance Tracker API.

Wraps API Gateway proxy events (REST API v1, with HTTP API v2 fallbacks for
method and path) behind the cloud-agnostic request/response/context
interfaces, and builds the proxy response dict Lambda returns to API Gateway.
"""

import asyncio
import base64
import binascii
import io
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Protocol
from urllib.parse import quote

import httpx

from core.envelope import DEFAULT_SERVER_ERROR_CODE
from core.interfaces import BodyDecodeError, HttpContext, HttpRequest, HttpResponse, build_headers
from server.http_handler import UniversalHTTPHandler
from server.routing import Route, RouteTable


class LambdaContext(Protocol):
    """Protocol for the AWS Lambda context object."""

    aws_request_id: str
    function_name: Optional[str]
    memory_limit_in_mb: Optional[int]


logger = logging.getLogger(__name__)

LambdaEntryPoint = Callable[[Dict[str, Any], Optional[LambdaContext]], Dict[str, Any]]


class LambdaHttpRequest(HttpRequest):
    """Request facade over an API Gateway proxy event."""

    def __init__(
        self,
        event: Dict[str, Any],
        route_values: Optional[Mapping[str, str]] = None,
    ) -> None:
        if event is None:
            raise ValueError("event is required")
        if route_values is None:
            route_values = event.get("pathParameters") or {}
        super().__init__(route_values)
        self._event = event
        self._headers: Optional[httpx.Headers] = None
        self._body_stream: Optional[io.BytesIO] = None

    def _http_context(self) -> Dict[str, Any]:
        # HTTP API v2 nests method and path here; either level may be null
        return (self._event.get("requestContext") or {}).get("http") or {}

    @property
    def method(self) -> str:
        return (
            self._event.get("httpMethod")
            or self._http_context().get("method")
            or "GET"
        )

    @property
    def path(self) -> str:
        return (
            self._event.get("path")
            or self._event.get("rawPath")
            or self._http_context().get("path")
            or "/"
        )

    @property
    def url(self) -> str:
        scheme = self.headers.get("X-Forwarded-Proto") or "https"
        host = self.headers.get("Host") or "localhost"
        url = f"{scheme}://{host}{quote(self.path, safe='/')}"

        query_string = "&".join(
            f"{quote(key, safe='')}={quote(value, safe='')}"
            for key, value in self._query_parameters().items()
        )
        if query_string:
            url = f"{url}?{query_string}"
        return url

    def _query_parameters(self) -> Dict[str, str]:
        multi = self._event.get("multiValueQueryStringParameters") or {}
        single = self._event.get("queryStringParameters") or {}
        params = {key: values[-1] for key, values in multi.items() if values}
        for key, value in single.items():
            params.setdefault(key, value)
        return params

    @property
    def headers(self) -> httpx.Headers:
        if self._headers is None:
            raw = self._event.get("multiValueHeaders") or self._event.get("headers") or {}
            self._headers = build_headers(raw)
        return self._headers

    @property
    def body(self) -> Optional[io.BytesIO]:
        if self._body_stream is None:
            body = self._event.get("body") or ""
            if self._event.get("isBase64Encoded", False):
                try:
                    data = base64.b64decode(body, validate=True)
                except (binascii.Error, ValueError) as e:
                    raise BodyDecodeError(f"Invalid base64-encoded body: {e}") from e
            else:
                data = body.encode("utf-8")
            self._body_stream = io.BytesIO(data)

        self._body_stream.seek(0)
        return self._body_stream


class LambdaHttpResponse(HttpResponse):
    """Response builder producing an API Gateway proxy response."""

    def build_lambda_response(self) -> Dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "headers": self.header_items(),
            "body": self.body or "",
            "isBase64Encoded": False,
        }

    def to_native(self) -> Dict[str, Any]:
        return self.build_lambda_response()


class LambdaHttpContext(HttpContext):
    """Context for one Lambda invocation."""

    def __init__(
        self,
        event: Dict[str, Any],
        route_values: Optional[Mapping[str, str]] = None,
        server_error_code: str = DEFAULT_SERVER_ERROR_CODE,
    ) -> None:
        super().__init__(server_error_code=server_error_code)
        self._request = LambdaHttpRequest(event, route_values)

    @property
    def request(self) -> LambdaHttpRequest:
        return self._request

    def _new_response(self, status_code: int) -> LambdaHttpResponse:
        return LambdaHttpResponse(status_code)


def _request_id(context: Optional[LambdaContext]) -> str:
    return getattr(context, "aws_request_id", None) or "unknown"


def _invoke(
    http_handler: UniversalHTTPHandler,
    http_context: LambdaHttpContext,
    route: Route,
    context: Optional[LambdaContext],
) -> Dict[str, Any]:
    request_id = _request_id(context)
    logger.info(
        "Lambda invocation started",
        extra={
            "request_id": request_id,
            "function_name": getattr(context, "function_name", None),
            "memory_limit": getattr(context, "memory_limit_in_mb", None),
        },
    )
    response = asyncio.run(http_handler.dispatch(http_context, route, request_id=request_id))
    return http_context.to_native(response)


def create_lambda_handler(http_handler: UniversalHTTPHandler, route: Route) -> LambdaEntryPoint:
    """Build the Lambda entry point for a function serving one route.

    API Gateway has already matched the route and supplies ``pathParameters``.

    Args:
        http_handler: Process-wide dispatcher
        route: Route this function serves

    Returns:
        Function with the ``(event, context)`` Lambda signature
    """

    def lambda_handler(event: Dict[str, Any], context: Optional[LambdaContext]) -> Dict[str, Any]:
        http_context = LambdaHttpContext(event, server_error_code=http_handler.server_error_code)
        return _invoke(http_handler, http_context, route, context)

    lambda_handler.__name__ = route.name
    return lambda_handler


def create_proxy_handler(http_handler: UniversalHTTPHandler, route_table: RouteTable) -> LambdaEntryPoint:
    """Build a single Lambda entry point for a ``{proxy+}`` integration.

    The request path is matched against the route table and the extracted
    parameters become the request's route values.
    """

    def lambda_handler(event: Dict[str, Any], context: Optional[LambdaContext]) -> Dict[str, Any]:
        http_context = LambdaHttpContext(event, server_error_code=http_handler.server_error_code)
        request = http_context.request

        route, params = route_table.match(request.method, request.path)
        if route is None:
            logger.warning(
                f"No route for {request.method} {request.path}",
                extra={"request_id": _request_id(context)},
            )
            response = asyncio.run(http_context.create_not_found_response())
            return http_context.to_native(response)

        request.set_route_values(params)
        return _invoke(http_handler, http_context, route, context)

    return lambda_handler
