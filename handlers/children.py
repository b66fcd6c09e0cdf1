"""Cloud-agnostic children handlers.

These handlers see only ``HttpContext`` and ``Principal``; the same functions
serve AWS Lambda, Azure Functions and the local server. Business rules live
behind the ``ChildrenService`` protocol.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.authorization import PARENT_ROLE, Principal
from core.interfaces import BodyDecodeError, HttpContext, HttpResponse
from server.routing import Route, RouteTable

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_LIMIT = 20
MAX_TRANSACTION_LIMIT = 100


class ServiceError(Exception):
    """Raised by a ChildrenService when the backing store fails."""

    pass


class ApiModel(BaseModel):
    """Base for request/response bodies: camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Child(ApiModel):
    id: uuid.UUID
    user_id: uuid.UUID
    family_id: uuid.UUID
    first_name: str
    last_name: str
    current_balance: Decimal = Decimal("0")
    weekly_allowance: Decimal = Decimal("0")
    allowance_day: Optional[int] = Field(default=None, ge=0, le=6)
    savings_account_enabled: bool = False


class Transaction(ApiModel):
    id: uuid.UUID
    child_id: uuid.UUID
    amount: Decimal
    type: str
    description: str
    created_at: datetime


class UpdateAllowanceRequest(ApiModel):
    weekly_allowance: Decimal = Field(..., ge=0)


class UpdateChildSettingsRequest(ApiModel):
    """Full replacement of a child's allowance settings."""

    weekly_allowance: Decimal = Field(..., ge=0)
    allowance_day: Optional[int] = Field(default=None, ge=0, le=6)
    savings_account_enabled: bool = False


class ChildrenService(Protocol):
    """Data access consumed by the handlers."""

    async def list_children(self, family_id: uuid.UUID) -> List[Child]:
        ...

    async def get_child(self, child_id: uuid.UUID) -> Optional[Child]:
        ...

    async def list_transactions(self, child_id: uuid.UUID, limit: int) -> List[Transaction]:
        ...

    async def update_allowance(self, child_id: uuid.UUID, weekly_allowance: Decimal) -> Child:
        ...

    async def update_settings(self, child_id: uuid.UUID, settings: UpdateChildSettingsRequest) -> Child:
        ...

    async def delete_child(self, child_id: uuid.UUID) -> None:
        ...


def _parse_limit(value: Optional[str]) -> int:
    try:
        limit = int(value) if value is not None else DEFAULT_TRANSACTION_LIMIT
    except ValueError:
        return DEFAULT_TRANSACTION_LIMIT
    return max(1, min(limit, MAX_TRANSACTION_LIMIT))


class ChildrenHandler:
    """Handlers for /children endpoints."""

    def __init__(self, service: ChildrenService) -> None:
        self.service = service

    async def _load_child(
        self, context: HttpContext, principal: Principal
    ) -> Tuple[Optional[Child], Optional[HttpResponse]]:
        """Resolve the childId route value to a child in the caller's family."""
        child_id = context.request.get_route_guid("childId")
        if child_id is None:
            return None, await context.create_bad_request_response(
                "INVALID_CHILD_ID", "Invalid child ID format"
            )

        child = await self.service.get_child(child_id)
        if child is None or child.family_id != principal.family_id:
            return None, await context.create_not_found_response("Child not found")

        if principal.is_child and child.user_id != principal.user_id:
            return None, await context.create_forbidden_response(
                "Children can only view their own account"
            )

        return child, None

    async def get_children(self, context: HttpContext, principal: Principal) -> HttpResponse:
        family_id = principal.family_id
        if family_id is None:
            return await context.create_bad_request_response("NO_FAMILY", "User is not part of a family")

        try:
            children = await self.service.list_children(family_id)
        except ServiceError as e:
            logger.error(f"Failed to list children: {e}", exc_info=True)
            return await context.create_server_error_response()

        return await context.create_ok_response(children)

    async def get_child(self, context: HttpContext, principal: Principal) -> HttpResponse:
        try:
            child, error = await self._load_child(context, principal)
        except ServiceError as e:
            logger.error(f"Failed to load child: {e}", exc_info=True)
            return await context.create_server_error_response()

        if error is not None:
            return error
        return await context.create_ok_response(child)

    async def get_child_transactions(self, context: HttpContext, principal: Principal) -> HttpResponse:
        limit = _parse_limit(context.request.get_query_parameter("limit"))
        try:
            child, error = await self._load_child(context, principal)
            if error is not None:
                return error
            transactions = await self.service.list_transactions(child.id, limit)
        except ServiceError as e:
            logger.error(f"Failed to list transactions: {e}", exc_info=True)
            return await context.create_server_error_response()

        return await context.create_ok_response(transactions)

    async def update_allowance(self, context: HttpContext, principal: Principal) -> HttpResponse:
        try:
            payload = await context.request.read_body_as_json(UpdateAllowanceRequest)
        except BodyDecodeError as e:
            logger.info(f"Rejected allowance update body: {e}")
            return await context.create_bad_request_response("INVALID_REQUEST", "Invalid request body")

        if payload is None:
            return await context.create_bad_request_response("INVALID_REQUEST", "Request body is required")

        try:
            child, error = await self._load_child(context, principal)
            if error is not None:
                return error
            updated = await self.service.update_allowance(child.id, payload.weekly_allowance)
        except ServiceError as e:
            logger.error(f"Failed to update allowance: {e}", exc_info=True)
            return await context.create_server_error_response()

        return await context.create_ok_response(updated)

    async def update_child_settings(self, context: HttpContext, principal: Principal) -> HttpResponse:
        try:
            payload = await context.request.read_body_as_json(UpdateChildSettingsRequest)
        except BodyDecodeError as e:
            logger.info(f"Rejected child settings body: {e}")
            return await context.create_bad_request_response("INVALID_REQUEST", "Invalid request body")

        if payload is None:
            return await context.create_bad_request_response("INVALID_REQUEST", "Request body is required")

        try:
            child, error = await self._load_child(context, principal)
            if error is not None:
                return error
            updated = await self.service.update_settings(child.id, payload)
        except ServiceError as e:
            logger.error(f"Failed to update child settings: {e}", exc_info=True)
            return await context.create_server_error_response("An error occurred updating settings")

        return await context.create_ok_response(updated)

    async def delete_child(self, context: HttpContext, principal: Principal) -> HttpResponse:
        try:
            child, error = await self._load_child(context, principal)
            if error is not None:
                return error
            await self.service.delete_child(child.id)
        except ServiceError as e:
            logger.error(f"Failed to delete child: {e}", exc_info=True)
            return await context.create_server_error_response()

        return context.create_no_content_response()

    def routes(self) -> List[Route]:
        parent_only = (PARENT_ROLE,)
        return [
            Route("GetChildren", "GET", "/children", self.get_children),
            Route("GetChild", "GET", "/children/{childId}", self.get_child),
            Route(
                "GetChildTransactions",
                "GET",
                "/children/{childId}/transactions",
                self.get_child_transactions,
            ),
            Route(
                "UpdateAllowance",
                "PUT",
                "/children/{childId}/allowance",
                self.update_allowance,
                roles=parent_only,
            ),
            Route(
                "UpdateChildSettings",
                "PUT",
                "/children/{childId}/settings",
                self.update_child_settings,
                roles=parent_only,
            ),
            Route("DeleteChild", "DELETE", "/children/{childId}", self.delete_child, roles=parent_only),
        ]


def build_route_table(service: ChildrenService, prefix: str = "/api") -> RouteTable:
    """Route table for every handler in this module."""
    return RouteTable(ChildrenHandler(service).routes(), prefix=prefix)
