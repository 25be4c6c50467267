"""Domain value objects package."""

from gatekeeper.domain.value_objects.password_policy import PolicyRule, PolicyViolation
from gatekeeper.domain.value_objects.token_claims import TOKEN_TYPE_ACCESS, AccessTokenClaims
from gatekeeper.domain.value_objects.two_factor import TwoFactorMethod, TwoFactorState

__all__ = [
    "TOKEN_TYPE_ACCESS",
    "AccessTokenClaims",
    "PolicyRule",
    "PolicyViolation",
    "TwoFactorMethod",
    "TwoFactorState",
]
