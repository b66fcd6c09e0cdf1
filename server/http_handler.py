"""Universal HTTP dispatcher for the Allowance Tracker API.

Every cloud adapter hands its per-invocation context to
``UniversalHTTPHandler.dispatch``, which runs the authorization gate for the
route and then the cloud-agnostic handler. The handler instance is built once
per process by ``create_http_handler`` and passed to the adapters' entry-point
factories.
"""

import logging
import time
from typing import Optional

from core.authorization import AuthorizationGate
from core.config import Settings, load_settings
from core.interfaces import HttpContext, HttpResponse
from core.logging_utils import (
    configure_json_logging,
    format_request_log,
    format_response_log,
)
from server.routing import Route

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class UniversalHTTPHandler:
    """Cloud-agnostic request dispatch."""

    def __init__(self, settings: Settings, gate: Optional[AuthorizationGate] = None) -> None:
        """Initialize the dispatcher.

        Args:
            settings: Validated settings
            gate: Authorization gate; built from ``settings.jwt`` when omitted
        """
        self.settings = settings
        self.gate = gate or AuthorizationGate(
            settings.jwt.secret_key, algorithms=settings.jwt.algorithms
        )
        logger.info("UniversalHTTPHandler initialized")

    @property
    def server_error_code(self) -> str:
        return self.settings.server_error_code

    async def dispatch(
        self,
        context: HttpContext,
        route: Route,
        request_id: Optional[str] = None,
    ) -> HttpResponse:
        """Authorize and execute one request.

        Args:
            context: Adapter-built context for this invocation
            route: Matched route
            request_id: Runtime request id for logging/tracing

        Returns:
            The response returned by the handler, or the gate's 401/403

        Raises:
            Exception: Anything the handler lets escape is logged and re-raised
        """
        start_time = time.perf_counter()
        request_id = request_id or "unknown"
        request = context.request

        logger.info(
            "Incoming HTTP request",
            extra=format_request_log(
                request_id=request_id,
                http_method=request.method,
                url=request.url,
                headers=request.headers,
                route=route.name,
            ),
        )

        try:
            if route.authorize:
                result = await self.gate.check_authorization(context, route.roles)
                if not result.is_authorized:
                    response = result.response
                else:
                    principal = result.principal
                    response = await route.handler(context, principal)
            else:
                response = await route.handler(context, None)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Unhandled error in handler {route.name}: {e}",
                extra={
                    "request_id": request_id,
                    "route": route.name,
                    "error_type": type(e).__name__,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise

        response.add_header(REQUEST_ID_HEADER, request_id)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "HTTP request processed",
            extra=format_response_log(
                request_id=request_id,
                status_code=response.status_code,
                headers=response.header_items(),
                body=response.body,
                duration_ms=duration_ms,
            ),
        )
        return response


def create_http_handler(
    settings: Optional[Settings] = None,
    config_path: str = "config.yaml",
) -> UniversalHTTPHandler:
    """Composition root: build settings, logging and the dispatcher once.

    Args:
        settings: Pre-built settings; loaded from the environment/config file
            when omitted
        config_path: YAML file consulted by ``load_settings``

    Returns:
        Ready-to-use UniversalHTTPHandler
    """
    if settings is None:
        settings = load_settings(config_path)

    configure_json_logging(level=settings.logging.level, pretty=settings.logging.pretty)
    return UniversalHTTPHandler(settings)
