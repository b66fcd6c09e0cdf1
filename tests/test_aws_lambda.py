"""Tests for the AWS Lambda adapter.

These tests verify API Gateway event wrapping, proxy response materialization
and the Lambda entry points built around UniversalHTTPHandler.
"""

import base64
import json
import uuid
from unittest.mock import AsyncMock

import pytest

from conftest import CHILD_ID, MockLambdaContext, bearer, make_lambda_event, make_token
from core.interfaces import BodyDecodeError
from server.adapters.aws_lambda import (
    LambdaHttpContext,
    LambdaHttpRequest,
    LambdaHttpResponse,
    create_lambda_handler,
    create_proxy_handler,
)
from server.routing import Route, RouteTable


async def echo_handler(context, principal):
    """Echo what the handler can see through the context."""
    return await context.create_ok_response(
        {
            "method": context.request.method,
            "childId": context.request.get_route_guid("childId"),
            "query": context.request.query,
            "user": principal.subject if principal else None,
        }
    )


class TestLambdaHttpRequest:
    """Test API Gateway event wrapping."""

    def test_method_and_url(self):
        event = make_lambda_event(
            method="GET",
            path="/api/children",
            headers={"X-Forwarded-Proto": "http"},
            query={"limit": "5", "q": "hello world"},
        )
        request = LambdaHttpRequest(event)
        assert request.method == "GET"
        assert request.url == "http://api.example.com/api/children?limit=5&q=hello%20world"
        assert request.query == {"limit": "5", "q": "hello world"}

    def test_url_defaults(self):
        event = {"httpMethod": "GET", "path": "/health"}
        assert LambdaHttpRequest(event).url == "https://localhost/health"

    def test_http_api_v2_fallbacks(self):
        event = {
            "rawPath": "/api/children",
            "requestContext": {"http": {"method": "POST", "path": "/api/children"}},
            "headers": {"host": "abc.lambda-url.aws"},
        }
        request = LambdaHttpRequest(event)
        assert request.method == "POST"
        assert request.path == "/api/children"

    def test_null_request_context_uses_defaults(self):
        for event in ({"requestContext": None}, {"requestContext": {"http": None}}):
            request = LambdaHttpRequest(event)
            assert request.method == "GET"
            assert request.path == "/"

    def test_multi_value_headers_joined(self):
        event = make_lambda_event()
        event["multiValueHeaders"]["Accept"] = ["text/html", "application/json"]
        request = LambdaHttpRequest(event)
        assert request.get_header("accept") == "text/html,application/json"

    def test_falls_back_to_single_value_headers(self):
        event = make_lambda_event(headers={"X-Custom": "value"})
        event["multiValueHeaders"] = None
        assert LambdaHttpRequest(event).get_header("x-custom") == "value"

    def test_route_values_from_path_parameters(self):
        event = make_lambda_event(path_parameters={"childId": str(CHILD_ID)})
        assert LambdaHttpRequest(event).get_route_guid("childId") == CHILD_ID

    def test_no_path_parameters(self):
        assert LambdaHttpRequest(make_lambda_event()).route_values == {}

    @pytest.mark.asyncio
    async def test_body_json(self):
        request = LambdaHttpRequest(make_lambda_event(method="POST", body={"amount": 10}))
        assert await request.read_body_as_json() == {"amount": 10}

    @pytest.mark.asyncio
    async def test_base64_body(self):
        event = make_lambda_event(method="POST")
        event["body"] = base64.b64encode(b'{"amount": 3}').decode("ascii")
        event["isBase64Encoded"] = True
        assert await LambdaHttpRequest(event).read_body_as_json() == {"amount": 3}

    @pytest.mark.asyncio
    async def test_invalid_base64_body(self):
        event = make_lambda_event(method="POST")
        event["body"] = "%%%not-base64%%%"
        event["isBase64Encoded"] = True
        with pytest.raises(BodyDecodeError):
            await LambdaHttpRequest(event).read_body_as_json()

    @pytest.mark.asyncio
    async def test_null_body_returns_none(self):
        assert await LambdaHttpRequest(make_lambda_event(body=None)).read_body_as_json() is None


class TestLambdaHttpResponse:
    """Test proxy response materialization."""

    @pytest.mark.asyncio
    async def test_build_lambda_response(self):
        response = LambdaHttpResponse(201)
        await response.write_json({"ok": True})
        response.add_header("X-Request-ID", "abc")
        assert response.build_lambda_response() == {
            "statusCode": 201,
            "headers": {"Content-Type": "application/json", "X-Request-ID": "abc"},
            "body": '{"ok":true}',
            "isBase64Encoded": False,
        }

    def test_empty_body_becomes_empty_string(self):
        context = LambdaHttpContext(make_lambda_event())
        native = context.to_native(context.create_no_content_response())
        assert native["statusCode"] == 204
        assert native["body"] == ""


class TestCreateLambdaHandler:
    """Test the per-route Lambda entry point."""

    def test_dispatches_authorized_request(self, http_handler):
        route = Route("GetChild", "GET", "/children/{childId}", echo_handler)
        lambda_handler = create_lambda_handler(http_handler, route)
        event = make_lambda_event(
            path=f"/api/children/{CHILD_ID}",
            headers=bearer(make_token()),
            path_parameters={"childId": str(CHILD_ID)},
            query={"limit": "3"},
        )

        response = lambda_handler(event, MockLambdaContext())

        assert response["statusCode"] == 200
        assert response["isBase64Encoded"] is False
        assert response["headers"]["X-Request-ID"] == "test-request-id-123"
        body = json.loads(response["body"])
        assert body["childId"] == str(CHILD_ID)
        assert body["query"] == {"limit": "3"}
        assert uuid.UUID(body["user"])

    def test_unauthorized_without_token(self, http_handler):
        route = Route("GetChildren", "GET", "/children", echo_handler)
        response = create_lambda_handler(http_handler, route)(make_lambda_event(), MockLambdaContext())
        assert response["statusCode"] == 401
        assert json.loads(response["body"]) == {
            "error": {"code": "UNAUTHORIZED", "message": "Valid JWT token required"}
        }

    def test_anonymous_route_receives_no_principal(self, http_handler):
        route = Route("Ping", "GET", "/ping", echo_handler, authorize=False)
        response = create_lambda_handler(http_handler, route)(make_lambda_event(path="/api/ping"), None)
        assert response["statusCode"] == 200
        assert json.loads(response["body"])["user"] is None
        assert response["headers"]["X-Request-ID"] == "unknown"

    def test_entry_point_named_after_route(self, http_handler):
        route = Route("GetChildren", "GET", "/children", echo_handler)
        assert create_lambda_handler(http_handler, route).__name__ == "GetChildren"

    def test_handler_exception_propagates(self, http_handler):
        failing = AsyncMock(side_effect=RuntimeError("boom"))
        route = Route("Broken", "GET", "/broken", failing, authorize=False)
        with pytest.raises(RuntimeError):
            create_lambda_handler(http_handler, route)(make_lambda_event(path="/api/broken"), None)


class TestCreateProxyHandler:
    """Test the {proxy+} entry point."""

    @pytest.fixture
    def route_table(self):
        return RouteTable(
            [
                Route("GetChildren", "GET", "/children", echo_handler),
                Route("GetChild", "GET", "/children/{childId}", echo_handler),
            ],
            prefix="/api",
        )

    def test_matches_route_and_sets_route_values(self, http_handler, route_table):
        event = make_lambda_event(path=f"/api/children/{CHILD_ID}", headers=bearer(make_token()))
        response = create_proxy_handler(http_handler, route_table)(event, MockLambdaContext())
        assert response["statusCode"] == 200
        assert json.loads(response["body"])["childId"] == str(CHILD_ID)

    def test_unknown_path_is_404(self, http_handler, route_table):
        event = make_lambda_event(path="/api/unknown")
        response = create_proxy_handler(http_handler, route_table)(event, MockLambdaContext())
        assert response["statusCode"] == 404
        assert json.loads(response["body"])["error"]["code"] == "NOT_FOUND"

    def test_wrong_method_is_404(self, http_handler, route_table):
        event = make_lambda_event(method="DELETE", path="/api/children", headers=bearer(make_token()))
        response = create_proxy_handler(http_handler, route_table)(event, MockLambdaContext())
        assert response["statusCode"] == 404

    def test_gate_runs_for_proxied_routes(self, http_handler, route_table):
        event = make_lambda_event(path="/api/children")
        response = create_proxy_handler(http_handler, route_table)(event, MockLambdaContext())
        assert response["statusCode"] == 401

    def test_null_request_context_is_404(self, http_handler, route_table):
        response = create_proxy_handler(http_handler, route_table)(
            {"requestContext": None}, MockLambdaContext()
        )
        assert response["statusCode"] == 404
