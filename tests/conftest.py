"""Shared fixtures for the Allowance Tracker API tests."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import azure.functions as func
import jwt
import pytest

from core.config import Settings
from server.http_handler import UniversalHTTPHandler

SECRET = "test-secret-key-that-is-long-enough-for-hs256"
OTHER_SECRET = "another-secret-key-that-is-long-enough-for-hs256"

PARENT_ID = uuid.UUID("11111111-1111-4111-8111-111111111111")
CHILD_ID = uuid.UUID("3fa85f64-5717-4562-b3fc-2c963f66afa6")
FAMILY_ID = uuid.UUID("22222222-2222-4222-8222-222222222222")


def make_token(
    subject: Optional[str] = str(PARENT_ID),
    role: Optional[str] = "Parent",
    family_id: Optional[str] = str(FAMILY_ID),
    key: str = SECRET,
    expires_in: Optional[int] = 3600,
    **extra_claims: Any,
) -> str:
    """Sign a token shaped like the ones the API's login endpoint issues."""
    claims: Dict[str, Any] = dict(extra_claims)
    if subject is not None:
        claims["nameid"] = subject
    if role is not None:
        claims["role"] = role
    if family_id is not None:
        claims["FamilyId"] = family_id
    if expires_in is not None:
        claims["exp"] = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return jwt.encode(claims, key, algorithm="HS256")


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def make_lambda_event(
    method: str = "GET",
    path: str = "/api/children",
    headers: Optional[Dict[str, str]] = None,
    query: Optional[Dict[str, str]] = None,
    path_parameters: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> Dict[str, Any]:
    """Build an API Gateway REST (v1) proxy event."""
    headers = {"Host": "api.example.com", **(headers or {})}
    return {
        "resource": path,
        "path": path,
        "httpMethod": method,
        "headers": headers,
        "multiValueHeaders": {k: [v] for k, v in headers.items()},
        "queryStringParameters": query,
        "multiValueQueryStringParameters": {k: [v] for k, v in query.items()} if query else None,
        "pathParameters": path_parameters,
        "requestContext": {"requestId": "req-1", "stage": "prod"},
        "body": json.dumps(body) if body is not None and not isinstance(body, str) else body,
        "isBase64Encoded": False,
    }


def make_azure_request(
    method: str = "GET",
    url: str = "https://func.example.com/api/children",
    headers: Optional[Dict[str, str]] = None,
    route_params: Optional[Dict[str, str]] = None,
    body: Optional[Any] = None,
) -> func.HttpRequest:
    if body is None:
        raw = b""
    elif isinstance(body, (bytes, str)):
        raw = body.encode("utf-8") if isinstance(body, str) else body
    else:
        raw = json.dumps(body).encode("utf-8")
    return func.HttpRequest(
        method=method,
        url=url,
        headers=headers or {},
        route_params=route_params or {},
        body=raw,
    )


class MockLambdaContext:
    """Mock Lambda context object."""

    def __init__(self, request_id: str = "test-request-id-123") -> None:
        self.aws_request_id = request_id
        self.function_name = "test-function"
        self.memory_limit_in_mb = 512


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt={"secret_key": SECRET}, environment="Test")


@pytest.fixture
def http_handler(settings: Settings) -> UniversalHTTPHandler:
    return UniversalHTTPHandler(settings)
