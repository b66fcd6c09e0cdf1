"""aiohttp adapter used by the local development server.

Gives local runs the same request/response/context triple the cloud adapters
provide, so handlers behave exactly as they do when deployed.
"""

import io
import logging
import uuid
from typing import Awaitable, Callable, Mapping, Optional

import httpx
from aiohttp import web

from core.envelope import DEFAULT_SERVER_ERROR_CODE
from core.interfaces import HttpContext, HttpRequest, HttpResponse, build_headers
from server.http_handler import UniversalHTTPHandler
from server.routing import Route, RouteTable

logger = logging.getLogger(__name__)


class AiohttpHttpRequest(HttpRequest):
    """Request facade over an aiohttp request whose body was read up front."""

    def __init__(
        self,
        request: web.Request,
        body: bytes,
        route_values: Optional[Mapping[str, str]] = None,
    ) -> None:
        if route_values is None:
            route_values = dict(request.match_info)
        super().__init__(route_values)
        self._request = request
        self._headers = build_headers(list(request.headers.items()))
        self._body_stream = io.BytesIO(body)

    @property
    def method(self) -> str:
        return self._request.method

    @property
    def url(self) -> str:
        return str(self._request.url)

    @property
    def headers(self) -> httpx.Headers:
        return self._headers

    @property
    def body(self) -> Optional[io.BytesIO]:
        return self._body_stream


class AiohttpHttpResponse(HttpResponse):
    def to_native(self) -> web.Response:
        return web.Response(
            status=self.status_code,
            headers=self.header_items(),
            body=self.body.encode("utf-8") if self.body else None,
        )


class AiohttpHttpContext(HttpContext):
    """Context for one local request."""

    def __init__(
        self,
        request: web.Request,
        body: bytes,
        server_error_code: str = DEFAULT_SERVER_ERROR_CODE,
    ) -> None:
        super().__init__(server_error_code=server_error_code)
        self._request = AiohttpHttpRequest(request, body)

    @classmethod
    async def create(
        cls,
        request: web.Request,
        server_error_code: str = DEFAULT_SERVER_ERROR_CODE,
    ) -> "AiohttpHttpContext":
        """Read the request body and build the context."""
        body = await request.read() if request.can_read_body else b""
        return cls(request, body, server_error_code=server_error_code)

    @property
    def request(self) -> AiohttpHttpRequest:
        return self._request

    def _new_response(self, status_code: int) -> AiohttpHttpResponse:
        return AiohttpHttpResponse(status_code)


def create_aiohttp_view(
    http_handler: UniversalHTTPHandler, route: Route
) -> Callable[[web.Request], Awaitable[web.Response]]:
    async def view(request: web.Request) -> web.Response:
        http_context = await AiohttpHttpContext.create(
            request, server_error_code=http_handler.server_error_code
        )
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        response = await http_handler.dispatch(http_context, route, request_id=request_id)
        return http_context.to_native(response)

    return view


def create_local_app(http_handler: UniversalHTTPHandler, route_table: RouteTable) -> web.Application:
    """Build an aiohttp application serving every route of the table.

    Args:
        http_handler: Dispatcher
        route_table: Routes to expose; the table prefix is prepended to paths

    Returns:
        aiohttp web.Application
    """
    app = web.Application()
    for route in route_table:
        app.router.add_route(
            route.method,
            f"{route_table.prefix}{route.path}",
            create_aiohttp_view(http_handler, route),
            name=route.name,
        )
    logger.info(f"Local app configured with {len(route_table)} routes")
    return app
