"""
Exception hierarchy and error taxonomy for the security core.

Expected authentication outcomes (wrong password, locked account, 2FA
challenge) are returned to the caller as ``AuthResult`` values carrying an
``ErrorKind``. Commands (role management, password change, 2FA setup) and
the API layer use the exception classes below. ``exception_for_kind`` maps a
kind back to its exception when a result has to be raised.

Exception hierarchy:
    AppException (base)
    ├── AuthenticationError (401)
    │   ├── InvalidCredentialsError
    │   ├── TokenMalformedError
    │   ├── TokenExpiredError
    │   ├── TokenRevokedError
    │   ├── AccountLockedError
    │   ├── TwoFactorRequiredError
    │   └── TwoFactorInvalidCodeError
    ├── AuthorizationError (403)
    │   ├── InsufficientPermissionsError
    │   └── ForbiddenOperationError
    ├── ResourceError
    │   ├── NotFoundError (404)
    │   ├── AlreadyExistsError (409)
    │   └── ConcurrencyConflictError (409)
    ├── ValidationError (422)
    │   ├── PasswordPolicyViolationError
    │   └── InvalidInputError
    ├── TooManyAttemptsError (429)
    └── ServiceUnavailableError (503)
        ├── CacheUnavailableError
        └── PersistenceUnavailableError
"""

from datetime import datetime
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Machine-readable failure kinds shared by results and exceptions."""

    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    TOO_MANY_ATTEMPTS = "TOO_MANY_ATTEMPTS"
    TWO_FACTOR_REQUIRED = "TWO_FACTOR_REQUIRED"
    TWO_FACTOR_INVALID_CODE = "TWO_FACTOR_INVALID_CODE"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    PASSWORD_POLICY_VIOLATION = "PASSWORD_POLICY_VIOLATION"
    FORBIDDEN_OPERATION = "FORBIDDEN_OPERATION"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    INVALID_INPUT = "INVALID_INPUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class AppException(Exception):
    """
    Base exception class for all security core exceptions.

    Attributes:
        status_code: HTTP status code for the error
        error_code: Machine-readable error code
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize application exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (default: 500)
            error_code: Machine-readable error code
            details: Optional dictionary with additional error details
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


# =============================================================================
# Authentication Errors (401 Unauthorized)
# =============================================================================


class AuthenticationError(AppException):
    """Base class for authentication errors."""

    def __init__(
        self,
        message: str = "Authentication failed",
        error_code: str = "AUTHENTICATION_FAILED",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code,
            details=details,
        )


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials are invalid. Never says which part was wrong."""

    def __init__(
        self,
        message: str = "Invalid username or password",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.INVALID_CREDENTIALS.value,
            details=details,
        )


class TokenMalformedError(AuthenticationError):
    """Raised when a token cannot be decoded, has a bad signature or unknown value."""

    def __init__(
        self,
        message: str = "Invalid token",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.TOKEN_MALFORMED.value,
            details=details,
        )


class TokenExpiredError(AuthenticationError):
    """Raised when a token has expired."""

    def __init__(
        self,
        message: str = "Token has expired",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.TOKEN_EXPIRED.value,
            details=details,
        )


class TokenRevokedError(AuthenticationError):
    """Raised when a token has been revoked (logout, rotation, security event)."""

    def __init__(
        self,
        message: str = "Token has been revoked",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.TOKEN_REVOKED.value,
            details=details,
        )


class AccountLockedError(AuthenticationError):
    """Raised when account is locked due to failed login attempts."""

    def __init__(
        self,
        message: str = "Account is temporarily locked",
        locked_until: datetime | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if locked_until is not None:
            details["locked_until"] = locked_until.isoformat()
        super().__init__(
            message=message,
            error_code=ErrorKind.ACCOUNT_LOCKED.value,
            details=details,
        )
        self.locked_until = locked_until


class TwoFactorRequiredError(AuthenticationError):
    """Raised when a second factor must be presented to finish authentication."""

    def __init__(
        self,
        message: str = "Two-factor authentication required",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.TWO_FACTOR_REQUIRED.value,
            details=details,
        )


class TwoFactorInvalidCodeError(AuthenticationError):
    """Raised when a TOTP, delivered or recovery code is rejected."""

    def __init__(
        self,
        message: str = "Invalid verification code",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.TWO_FACTOR_INVALID_CODE.value,
            details=details,
        )


# =============================================================================
# Authorization Errors (403 Forbidden)
# =============================================================================


class AuthorizationError(AppException):
    """Base class for authorization errors."""

    def __init__(
        self,
        message: str = "Access denied",
        error_code: str = "AUTHORIZATION_FAILED",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code,
            details=details,
        )


class InsufficientPermissionsError(AuthorizationError):
    """Raised when the caller lacks a required permission."""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="INSUFFICIENT_PERMISSIONS",
            details=details,
        )


class ForbiddenOperationError(AuthorizationError):
    """Raised for operations that are never allowed, such as deleting a system role."""

    def __init__(
        self,
        message: str = "Operation is not allowed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code=ErrorKind.FORBIDDEN_OPERATION.value,
            details=details,
        )


# =============================================================================
# Resource Errors (404, 409)
# =============================================================================


class ResourceError(AppException):
    """Base class for resource-related errors."""

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details,
        )


class NotFoundError(ResourceError):
    """Raised when a requested user, role or permission is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message is None:
            message = f"{resource} not found"
        super().__init__(
            message=message,
            status_code=404,
            error_code=ErrorKind.NOT_FOUND.value,
            details=details,
        )


class AlreadyExistsError(ResourceError):
    """Raised when attempting to create a resource that already exists."""

    def __init__(
        self,
        resource: str = "Resource",
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message is None:
            message = f"{resource} already exists"
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorKind.ALREADY_EXISTS.value,
            details=details,
        )


class ConcurrencyConflictError(ResourceError):
    """Raised when an optimistic update collides with a concurrent writer."""

    def __init__(
        self,
        message: str = "The record was modified concurrently",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=409,
            error_code=ErrorKind.CONCURRENCY_CONFLICT.value,
            details=details,
        )


# =============================================================================
# Validation Errors (422 Unprocessable Entity)
# =============================================================================


class ValidationError(AppException):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str = "Validation failed",
        error_code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=422,
            error_code=error_code,
            details=details,
        )


class PasswordPolicyViolationError(ValidationError):
    """
    Raised when a password violates the policy.

    Unlike authentication failures, the message is specific: every violated
    rule is listed so the user can fix the password.
    """

    def __init__(
        self,
        violations: list[str] | None = None,
        message: str = "Password does not meet security requirements",
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        self.violations = list(violations or [])
        details["violations"] = self.violations
        super().__init__(
            message=message,
            error_code=ErrorKind.PASSWORD_POLICY_VIOLATION.value,
            details=details,
        )


class InvalidInputError(ValidationError):
    """Raised when input data is invalid."""

    def __init__(
        self,
        field: str | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if message is None and field:
            message = f"Invalid input for field: {field}"
        elif message is None:
            message = "Invalid input"

        super().__init__(
            message=message,
            error_code=ErrorKind.INVALID_INPUT.value,
            details=details,
        )


# =============================================================================
# Rate Limiting Error (429 Too Many Requests)
# =============================================================================


class TooManyAttemptsError(AppException):
    """Raised when an IP or username key is rate limited or blacklisted."""

    def __init__(
        self,
        message: str = "Too many attempts. Please try again later.",
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if retry_after:
            details["retry_after"] = retry_after
        super().__init__(
            message=message,
            status_code=429,
            error_code=ErrorKind.TOO_MANY_ATTEMPTS.value,
            details=details,
        )
        self.retry_after = retry_after


# =============================================================================
# Infrastructure Errors (503 Service Unavailable)
# =============================================================================


class ServiceUnavailableError(AppException):
    """Raised when a backing store cannot be reached."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=503,
            error_code=ErrorKind.SERVICE_UNAVAILABLE.value,
            details=details,
        )


class CacheUnavailableError(ServiceUnavailableError):
    """Raised when the cache backend fails."""


class PersistenceUnavailableError(ServiceUnavailableError):
    """Raised when the database fails."""


_KIND_TO_EXCEPTION: dict[ErrorKind, type[AppException]] = {
    ErrorKind.INVALID_CREDENTIALS: InvalidCredentialsError,
    ErrorKind.ACCOUNT_LOCKED: AccountLockedError,
    ErrorKind.TOO_MANY_ATTEMPTS: TooManyAttemptsError,
    ErrorKind.TWO_FACTOR_REQUIRED: TwoFactorRequiredError,
    ErrorKind.TWO_FACTOR_INVALID_CODE: TwoFactorInvalidCodeError,
    ErrorKind.TOKEN_EXPIRED: TokenExpiredError,
    ErrorKind.TOKEN_REVOKED: TokenRevokedError,
    ErrorKind.TOKEN_MALFORMED: TokenMalformedError,
    ErrorKind.FORBIDDEN_OPERATION: ForbiddenOperationError,
    ErrorKind.CONCURRENCY_CONFLICT: ConcurrencyConflictError,
    ErrorKind.SERVICE_UNAVAILABLE: ServiceUnavailableError,
}


def exception_for_kind(
    kind: ErrorKind,
    message: str | None = None,
    details: dict[str, Any] | None = None,
) -> AppException:
    """
    Build the exception matching an error kind.

    Args:
        kind: Error kind carried by a result
        message: Optional message override
        details: Optional error details

    Returns:
        Exception instance ready to be raised

    Example:
        >>> raise exception_for_kind(ErrorKind.TOKEN_EXPIRED)
    """
    if kind == ErrorKind.PASSWORD_POLICY_VIOLATION:
        violations = (details or {}).get("violations", [])
        return PasswordPolicyViolationError(violations=violations)
    if kind == ErrorKind.NOT_FOUND:
        return NotFoundError(message=message, details=details)
    if kind == ErrorKind.ALREADY_EXISTS:
        return AlreadyExistsError(message=message, details=details)
    if kind == ErrorKind.INVALID_INPUT:
        return InvalidInputError(message=message, details=details)

    exc_class = _KIND_TO_EXCEPTION[kind]
    if message is None:
        return exc_class(details=details)
    return exc_class(message=message, details=details)
