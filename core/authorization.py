"""JWT authorization gate.

Validates bearer tokens against the request facade, enforces an optional role
allow-list and hands the handler either a principal or a ready-made error
response. Works only with the cloud-agnostic interfaces in core.interfaces.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import jwt
from pydantic import BaseModel, ConfigDict, Field

from core.interfaces import HttpContext, HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
TOKEN_REQUIRED_MESSAGE = "Valid JWT token required"
DEFAULT_ALGORITHMS = ("HS256", "HS384", "HS512")

# Claim names, in lookup order. The long URIs are what .NET-issued tokens
# carry when outbound claim mapping is disabled.
SUBJECT_CLAIMS = (
    "nameid",
    "sub",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier",
)
ROLE_CLAIMS = (
    "role",
    "http://schemas.microsoft.com/ws/2008/06/identity/claims/role",
)
FAMILY_ID_CLAIM = "FamilyId"

PARENT_ROLE = "Parent"
CHILD_ROLE = "Child"


class PrincipalIntegrityError(RuntimeError):
    """A validated token is missing a claim every issued token must carry."""

    pass


def _first_claim(claims: Dict[str, Any], names: Sequence[str]) -> Optional[Any]:
    for name in names:
        value = claims.get(name)
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[0]
        return value
    return None


class Principal(BaseModel):
    """Claims extracted from a validated bearer token."""

    model_config = ConfigDict(frozen=True)

    claims: Dict[str, Any] = Field(default_factory=dict)

    @property
    def subject(self) -> Optional[str]:
        value = _first_claim(self.claims, SUBJECT_CLAIMS)
        return str(value) if value is not None else None

    @property
    def user_id(self) -> uuid.UUID:
        """Subject identifier as a UUID.

        Raises:
            PrincipalIntegrityError: If the subject claim is absent or not a UUID
        """
        subject = self.subject
        if subject is None:
            raise PrincipalIntegrityError("User ID not found in token")
        try:
            return uuid.UUID(subject)
        except ValueError as e:
            raise PrincipalIntegrityError(f"User ID in token is not a valid UUID: {subject!r}") from e

    @property
    def family_id(self) -> Optional[uuid.UUID]:
        value = self.claims.get(FAMILY_ID_CLAIM)
        if value is None:
            return None
        try:
            return uuid.UUID(str(value))
        except ValueError as e:
            raise PrincipalIntegrityError(f"Family ID in token is not a valid UUID: {value!r}") from e

    @property
    def roles(self) -> List[str]:
        for name in ROLE_CLAIMS:
            value = self.claims.get(name)
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                return [str(v) for v in value]
            return [str(value)]
        return []

    @property
    def role(self) -> Optional[str]:
        roles = self.roles
        return roles[0] if roles else None

    @property
    def is_parent(self) -> bool:
        return self.role is not None and self.role.lower() == PARENT_ROLE.lower()

    @property
    def is_child(self) -> bool:
        return self.role is not None and self.role.lower() == CHILD_ROLE.lower()


@dataclass(frozen=True)
class AuthorizationResult:
    """Outcome of an authorization check.

    Exactly one of ``response`` (rejected) or an authorized principal is
    meaningful. A 403 rejection still carries the principal for logging.
    """

    principal: Optional[Principal] = None
    response: Optional[HttpResponse] = None

    @property
    def is_authorized(self) -> bool:
        return self.response is None and self.principal is not None


class AuthorizationGate:
    """Bearer-token authentication and role authorization for one process.

    The gate holds only the immutable validation parameters, so one instance
    is shared by every invocation.
    """

    def __init__(self, signing_key: str, algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> None:
        """Initialize the gate.

        Args:
            signing_key: Symmetric HMAC key used to sign tokens

        Raises:
            ValueError: If the signing key is empty
        """
        if not signing_key:
            raise ValueError("JWT secret not configured")
        self._signing_key = signing_key
        self._algorithms = list(algorithms)

    def validate_token(self, request: HttpRequest) -> Optional[Principal]:
        """Validate the bearer token carried by a request.

        Issuer and audience are not checked and no clock skew is allowed.

        Args:
            request: Request facade

        Returns:
            Principal on success, None for a missing, malformed, expired or
            wrongly signed token
        """
        auth_header = request.get_header("Authorization")
        if not auth_header or not auth_header[: len(BEARER_PREFIX)].lower() == BEARER_PREFIX.lower():
            logger.warning("Missing or non-bearer Authorization header")
            return None

        token = auth_header[len(BEARER_PREFIX):].strip()
        try:
            claims = jwt.decode(
                token,
                self._signing_key,
                algorithms=self._algorithms,
                options={"verify_aud": False, "verify_iss": False},
                leeway=0,
            )
        except jwt.PyJWTError as e:
            logger.warning(
                "JWT validation failed",
                extra={"error_type": type(e).__name__},
            )
            return None

        return Principal(claims=claims)

    async def check_authorization(
        self,
        context: HttpContext,
        required_roles: Optional[Sequence[str]] = None,
    ) -> AuthorizationResult:
        """Authenticate the request and optionally enforce a role allow-list.

        Args:
            context: Invocation context
            required_roles: Roles allowed to proceed; empty or None allows any
                authenticated principal

        Returns:
            AuthorizationResult carrying either the principal or a 401/403
            response built through the context
        """
        principal = self.validate_token(context.request)
        if principal is None:
            response = await context.create_unauthorized_response(TOKEN_REQUIRED_MESSAGE)
            return AuthorizationResult(response=response)

        if required_roles:
            role = principal.role
            allowed = {r.lower() for r in required_roles}
            if role is None or role.lower() not in allowed:
                logger.warning(
                    "Role not permitted",
                    extra={"role": role, "required_roles": list(required_roles)},
                )
                response = await context.create_forbidden_response(
                    f"User must have one of the following roles: {', '.join(required_roles)}"
                )
                return AuthorizationResult(principal=principal, response=response)

        return AuthorizationResult(principal=principal)
