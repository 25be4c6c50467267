"""
Authentication API routes.

This module provides REST endpoints for:
- User registration
- Password login and second-factor completion
- Token refresh
- Logout and logout everywhere
- Password change, sessions and login history
"""

import logging

from fastapi import APIRouter, Request, Response, status

from gatekeeper.api.dependencies import ClientIP, CoreContainer, CurrentClaims
from gatekeeper.api.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    LoginAttemptResponse,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    RecoveryLoginRequest,
    RefreshRequest,
    RegisterRequest,
    RevokedCountResponse,
    SessionResponse,
    TwoFactorLoginRequest,
    UserResponse,
)
from gatekeeper.application.dto.auth_dto import AuthResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _to_response(result: AuthResult) -> AuthResponse:
    """Raise failed results; map successes and challenges to the response body."""
    result.raise_for_error()
    tokens = result.tokens
    return AuthResponse(
        status=result.status,
        user_id=result.user_id,
        access_token=tokens.access_token if tokens else None,
        refresh_token=tokens.refresh_token if tokens else None,
        token_type=tokens.token_type if tokens else None,
        expires_in=tokens.expires_in if tokens else None,
        refresh_expires_at=tokens.refresh_expires_at if tokens else None,
        challenge_token=result.challenge_token,
        two_factor_method=result.two_factor_method,
    )


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(body: RegisterRequest, container: CoreContainer) -> UserResponse:
    """
    Register a new user.

    Raises:
        409: Email or username already exists
        422: Password doesn't meet requirements
    """
    user = await container.auth_service.register(
        username=body.username,
        email=str(body.email),
        password=body.password,
        phone_number=body.phone_number,
    )
    return UserResponse.model_validate(user)


@router.post("/login", response_model=AuthResponse, summary="Login with username or email")
async def login(body: LoginRequest, request: Request, container: CoreContainer, ip: ClientIP) -> AuthResponse:
    """
    Authenticate with password.

    When two-factor is enabled the response has status
    ``two_factor_required`` and a ``challenge_token`` instead of tokens.
    """
    result = await container.auth_service.login(
        body.identifier,
        body.password,
        ip_address=ip,
        user_agent=request.headers.get("User-Agent"),
    )
    return _to_response(result)


@router.post("/2fa/verify", response_model=AuthResponse, summary="Complete login with a 2FA code")
async def verify_two_factor(
    body: TwoFactorLoginRequest, request: Request, container: CoreContainer, ip: ClientIP
) -> AuthResponse:
    result = await container.auth_service.verify_two_factor(
        body.challenge_token,
        body.code,
        ip_address=ip,
        user_agent=request.headers.get("User-Agent"),
    )
    return _to_response(result)


@router.post("/2fa/recovery", response_model=AuthResponse, summary="Complete login with a recovery code")
async def login_with_recovery_code(
    body: RecoveryLoginRequest, request: Request, container: CoreContainer, ip: ClientIP
) -> AuthResponse:
    result = await container.auth_service.login_with_recovery_code(
        body.challenge_token,
        body.recovery_code,
        ip_address=ip,
        user_agent=request.headers.get("User-Agent"),
    )
    return _to_response(result)


@router.post("/refresh", response_model=AuthResponse, summary="Rotate the refresh token")
async def refresh(body: RefreshRequest, container: CoreContainer, ip: ClientIP) -> AuthResponse:
    """
    Exchange a refresh token for a new pair.

    Reusing a rotated token fails and ends every session in its chain.
    """
    return _to_response(await container.auth_service.refresh(body.refresh_token, ip))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="End this session")
async def logout(
    body: LogoutRequest, claims: CurrentClaims, container: CoreContainer, ip: ClientIP
) -> Response:
    await container.auth_service.logout(body.refresh_token, claims, ip)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/logout-all", response_model=RevokedCountResponse, summary="End every session")
async def logout_everywhere(claims: CurrentClaims, container: CoreContainer, ip: ClientIP) -> RevokedCountResponse:
    revoked = await container.auth_service.logout_everywhere(claims.subject, ip)
    return RevokedCountResponse(revoked=revoked)


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT, summary="Change password")
async def change_password(
    body: ChangePasswordRequest, claims: CurrentClaims, container: CoreContainer, ip: ClientIP
) -> Response:
    """
    Change the password. All sessions, including this one, end.

    Raises:
        401: Current password is wrong
        422: New password violates the policy
    """
    await container.auth_service.change_password(
        claims.subject, body.current_password, body.new_password, ip
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=MeResponse, summary="Current token identity")
async def me(claims: CurrentClaims) -> MeResponse:
    return MeResponse(
        user_id=claims.subject,
        username=claims.username,
        email=claims.email,
        roles=sorted(claims.roles),
        permissions=sorted(claims.permissions),
        expires_at=claims.expires_at,
    )


@router.get("/sessions", response_model=list[SessionResponse], summary="Active sessions")
async def list_sessions(claims: CurrentClaims, container: CoreContainer) -> list[SessionResponse]:
    sessions = await container.auth_service.list_sessions(claims.subject)
    return [SessionResponse.model_validate(s) for s in sessions]


@router.get("/login-history", response_model=list[LoginAttemptResponse], summary="Recent sign-in attempts")
async def login_history(claims: CurrentClaims, container: CoreContainer) -> list[LoginAttemptResponse]:
    attempts = await container.auth_service.login_history(claims.subject)
    return [LoginAttemptResponse.model_validate(a) for a in attempts]
