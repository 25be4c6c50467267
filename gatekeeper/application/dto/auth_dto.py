"""Authentication DTOs (Data Transfer Objects).

Expected authentication outcomes are returned as ``AuthResult`` values
instead of being raised. Callers that prefer exceptions (the HTTP layer)
call ``raise_for_error()``.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from gatekeeper.core.exceptions import ErrorKind, exception_for_kind
from gatekeeper.domain.value_objects.token_claims import AccessTokenClaims
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod

# User-facing messages. Authentication failures stay deliberately vague.
MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_CREDENTIALS: "Invalid username or password",
    ErrorKind.ACCOUNT_LOCKED: "Account is temporarily locked",
    ErrorKind.TOO_MANY_ATTEMPTS: "Too many attempts. Please try again later.",
    ErrorKind.TWO_FACTOR_REQUIRED: "Two-factor authentication required",
    ErrorKind.TWO_FACTOR_INVALID_CODE: "Invalid verification code",
    ErrorKind.TOKEN_EXPIRED: "Token has expired",
    ErrorKind.TOKEN_REVOKED: "Token has been revoked",
    ErrorKind.TOKEN_MALFORMED: "Invalid token",
}


class AuthStatus(str, Enum):
    """Outcome of an authentication step."""

    SUCCESS = "success"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    FAILED = "failed"


class TokenPair(BaseModel):
    """Access and refresh tokens issued together."""

    access_token: str = Field(..., description="Signed JWT access token")
    refresh_token: str = Field(..., description="Opaque refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    refresh_expires_at: datetime = Field(..., description="Refresh token expiry")

    model_config = {"frozen": True}

    def __repr__(self) -> str:
        return f"TokenPair(token_type={self.token_type!r}, expires_in={self.expires_in})"


class AuthResult(BaseModel):
    """Result of login, second-factor verification or token refresh."""

    status: AuthStatus
    user_id: UUID | None = None
    tokens: TokenPair | None = None
    error: ErrorKind | None = None
    message: str | None = None
    challenge_token: str | None = Field(
        default=None, description="Presented with the second factor"
    )
    two_factor_method: TwoFactorMethod | None = None
    locked_until: datetime | None = None
    retry_after_seconds: int | None = None
    remaining_attempts: int | None = None

    model_config = {"frozen": True}

    @property
    def succeeded(self) -> bool:
        return self.status == AuthStatus.SUCCESS

    @classmethod
    def success(cls, user_id: UUID, tokens: TokenPair) -> "AuthResult":
        return cls(status=AuthStatus.SUCCESS, user_id=user_id, tokens=tokens)

    @classmethod
    def two_factor_required(
        cls, challenge_token: str, method: TwoFactorMethod
    ) -> "AuthResult":
        return cls(
            status=AuthStatus.TWO_FACTOR_REQUIRED,
            error=ErrorKind.TWO_FACTOR_REQUIRED,
            message=MESSAGES[ErrorKind.TWO_FACTOR_REQUIRED],
            challenge_token=challenge_token,
            two_factor_method=method,
        )

    @classmethod
    def failure(cls, kind: ErrorKind, **extra: Any) -> "AuthResult":
        """
        Build a failed result.

        Args:
            kind: Error kind
            **extra: locked_until, retry_after_seconds, remaining_attempts

        Returns:
            Failed AuthResult with the standard message for ``kind``
        """
        return cls(
            status=AuthStatus.FAILED,
            error=kind,
            message=extra.pop("message", None) or MESSAGES.get(kind, kind.value),
            **extra,
        )

    def raise_for_error(self) -> None:
        """
        Raise the exception matching a failed result.

        Does nothing for successful results and for two-factor challenges,
        which are not failures from the caller's point of view.
        """
        if self.status != AuthStatus.FAILED or self.error is None:
            return
        details: dict[str, Any] = {}
        if self.locked_until is not None:
            details["locked_until"] = self.locked_until.isoformat()
        if self.retry_after_seconds is not None:
            details["retry_after"] = self.retry_after_seconds
        if self.remaining_attempts is not None:
            details["remaining_attempts"] = self.remaining_attempts
        raise exception_for_kind(self.error, self.message, details or None)


class TokenValidationResult(BaseModel):
    """Result of access token validation."""

    claims: AccessTokenClaims | None = None
    error: ErrorKind | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_valid(self) -> bool:
        return self.claims is not None and self.error is None

    def raise_for_error(self) -> AccessTokenClaims:
        """
        Return the claims or raise the matching token exception.

        Raises:
            TokenMalformedError, TokenExpiredError, TokenRevokedError
        """
        if self.is_valid:
            return self.claims
        kind = self.error or ErrorKind.TOKEN_MALFORMED
        raise exception_for_kind(kind, MESSAGES.get(kind))


class TwoFactorSetup(BaseModel):
    """Material shown once when a user starts authenticator setup."""

    secret: str = Field(..., description="Base32 shared secret for manual entry")
    provisioning_uri: str = Field(..., description="otpauth:// URI")
    qr_code_png_base64: str = Field(..., description="QR code of the URI as base64 PNG")

    model_config = {"frozen": True}

    def __repr__(self) -> str:
        return "TwoFactorSetup(secret='[REDACTED]')"
