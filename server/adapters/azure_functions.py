"""Azure Functions adapter for the Allowance Tracker API.

Wraps ``azure.functions.HttpRequest`` behind the cloud-agnostic interfaces and
materializes ``azure.functions.HttpResponse`` at the end of the invocation.
Azure binds route parameters out of band (``req.route_params``), so they are
set on the request after construction.
"""

import io
import logging
from typing import Awaitable, Callable, Mapping, Optional

import azure.functions as func
import httpx

from core.envelope import DEFAULT_SERVER_ERROR_CODE
from core.interfaces import HttpContext, HttpRequest, HttpResponse, build_headers
from server.http_handler import UniversalHTTPHandler
from server.routing import Route, RouteTable

logger = logging.getLogger(__name__)

AzureEntryPoint = Callable[[func.HttpRequest], Awaitable[func.HttpResponse]]

INVOCATION_ID_HEADER = "x-ms-invocation-id"


class AzureFunctionsHttpRequest(HttpRequest):
    """Request facade over an Azure Functions HTTP trigger request."""

    def __init__(
        self,
        request: func.HttpRequest,
        route_values: Optional[Mapping[str, str]] = None,
    ) -> None:
        if request is None:
            raise ValueError("request is required")
        super().__init__(route_values)
        self._request = request
        self._headers: Optional[httpx.Headers] = None
        self._body_stream: Optional[io.BytesIO] = None

    @property
    def method(self) -> str:
        return self._request.method

    @property
    def url(self) -> str:
        return self._request.url

    @property
    def headers(self) -> httpx.Headers:
        if self._headers is None:
            self._headers = build_headers(dict(self._request.headers))
        return self._headers

    @property
    def body(self) -> Optional[io.BytesIO]:
        if self._body_stream is None:
            data = self._request.get_body()
            if data is None:
                return None
            self._body_stream = io.BytesIO(data)
        return self._body_stream


class AzureFunctionsHttpResponse(HttpResponse):
    """Response builder producing an Azure Functions HttpResponse."""

    def to_native(self) -> func.HttpResponse:
        content_type = self.headers.get("Content-Type") or ""
        mimetype = content_type.split(";", 1)[0].strip() or None
        return func.HttpResponse(
            body=self.body or "",
            status_code=self.status_code,
            headers=self.header_items(),
            mimetype=mimetype,
        )


class AzureFunctionsHttpContext(HttpContext):
    """Context for one Azure Functions invocation."""

    def __init__(
        self,
        request: func.HttpRequest,
        server_error_code: str = DEFAULT_SERVER_ERROR_CODE,
    ) -> None:
        super().__init__(server_error_code=server_error_code)
        self._request = AzureFunctionsHttpRequest(request)
        self._request.set_route_values(dict(request.route_params or {}))

    @property
    def request(self) -> AzureFunctionsHttpRequest:
        return self._request

    def _new_response(self, status_code: int) -> AzureFunctionsHttpResponse:
        return AzureFunctionsHttpResponse(status_code)


def create_azure_function(http_handler: UniversalHTTPHandler, route: Route) -> AzureEntryPoint:
    """Build the HTTP-trigger function body for one route.

    Args:
        http_handler: Process-wide dispatcher
        route: Route this function serves

    Returns:
        Coroutine function taking ``req`` as the Functions host expects
    """

    async def main(req: func.HttpRequest) -> func.HttpResponse:
        http_context = AzureFunctionsHttpContext(req, server_error_code=http_handler.server_error_code)
        request_id = http_context.request.get_header(INVOCATION_ID_HEADER)
        response = await http_handler.dispatch(http_context, route, request_id=request_id)
        return http_context.to_native(response)

    main.__name__ = route.name
    return main


def azure_route_template(path: str) -> str:
    """Azure route templates are relative to the host route prefix."""
    return path.lstrip("/")


def register_routes(
    app: func.FunctionApp,
    http_handler: UniversalHTTPHandler,
    route_table: RouteTable,
) -> None:
    """Register every route of the table as an HTTP-triggered function.

    Functions use the anonymous auth level; bearer tokens are enforced by the
    authorization gate.

    Args:
        app: Function app from the deployment's function_app.py
        http_handler: Process-wide dispatcher
        route_table: Routes to expose
    """
    for route in route_table:
        function = create_azure_function(http_handler, route)
        function = app.route(
            route=azure_route_template(route.path),
            methods=[route.method],
            auth_level=func.AuthLevel.ANONYMOUS,
        )(function)
        app.function_name(name=route.name)(function)
        logger.debug(f"Registered Azure function {route.name} for {route.method} {route.path}")
