"""Application DTOs."""

from gatekeeper.application.dto.auth_dto import (
    AuthResult,
    AuthStatus,
    TokenPair,
    TokenValidationResult,
    TwoFactorSetup,
)

__all__ = [
    "AuthResult",
    "AuthStatus",
    "TokenPair",
    "TokenValidationResult",
    "TwoFactorSetup",
]
