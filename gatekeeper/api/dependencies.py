"""
FastAPI dependencies for authentication and authorization.

This module provides:
- Access to the wired security core
- Current claims extraction from the Bearer access token
- Permission-based access control checked against live RBAC state
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatekeeper.core.exceptions import InsufficientPermissionsError, TokenMalformedError
from gatekeeper.domain.value_objects.token_claims import AccessTokenClaims
from gatekeeper.infrastructure.container import Container

logger = logging.getLogger(__name__)

# Security scheme for Swagger UI
security = HTTPBearer(
    scheme_name="Bearer",
    description="Enter your JWT access token",
    auto_error=False,
)


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


async def get_current_claims(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    container: Annotated[Container, Depends(get_container)],
) -> AccessTokenClaims:
    """
    Dependency to validate the Bearer access token.

    Signature, issuer, audience, expiry and revocation are all checked.

    Raises:
        TokenMalformedError: Missing or invalid token (401)
        TokenExpiredError: Expired token (401)
        TokenRevokedError: Revoked token (401)

    Usage:
        @router.get("/me")
        async def me(claims: CurrentClaims):
            return {"user_id": claims.subject}
    """
    if credentials is None:
        logger.warning("Authentication failed: missing Bearer token")
        raise TokenMalformedError(message="Missing authentication credentials")
    return await container.auth_service.authenticate(credentials.credentials)


CurrentClaims = Annotated[AccessTokenClaims, Depends(get_current_claims)]
CoreContainer = Annotated[Container, Depends(get_container)]
ClientIP = Annotated[str | None, Depends(get_client_ip)]


def require_permission(permission: str) -> Callable[..., Awaitable[AccessTokenClaims]]:
    """
    Build a dependency that requires ``permission``.

    The check runs against resolved RBAC state rather than the token's
    embedded permissions, so a revoked role takes effect immediately.

    Example:
        @router.post("/roles", dependencies=[Depends(require_permission("roles:manage"))])
    """

    async def check(claims: CurrentClaims, container: CoreContainer) -> AccessTokenClaims:
        if not await container.rbac_service.has_permission(claims.subject, permission):
            logger.warning(f"User {claims.subject} denied: missing permission {permission}")
            raise InsufficientPermissionsError(details={"required_permission": permission})
        return claims

    return check
