"""Cloud runtime adapters for the Allowance Tracker API.

Each adapter is one request/response/context triple over a runtime's native
types, plus the entry-point factories that runtime needs:

- aws_lambda: API Gateway proxy events -> proxy response dicts
- azure_functions: azure.functions.HttpRequest -> azure.functions.HttpResponse
- local_aiohttp: aiohttp.web.Request -> aiohttp.web.Response (local development)

Handlers and the authorization gate never import from this package.
"""

from .aws_lambda import create_lambda_handler, create_proxy_handler
from .azure_functions import create_azure_function, register_routes
from .local_aiohttp import create_local_app

__all__ = [
    "create_lambda_handler",
    "create_proxy_handler",
    "create_azure_function",
    "register_routes",
    "create_local_app",
]
