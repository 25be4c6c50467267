"""Access token claims value object."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

TOKEN_TYPE_ACCESS = "access"


@dataclass(frozen=True)
class AccessTokenClaims:
    """
    Verified claims of a signed access token.

    The token itself is never persisted; this is what validation yields.
    ``issued_at`` keeps sub-second precision so it can be compared with the
    per-user "tokens valid since" marker.
    """

    subject: UUID
    username: str
    email: str
    jti: str
    issued_at: datetime
    expires_at: datetime
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)
    token_type: str = TOKEN_TYPE_ACCESS

    def has_permission(self, permission: str) -> bool:
        """Check a permission embedded in the token."""
        return permission in self.permissions

    def has_any_role(self, role_names: set[str] | frozenset[str] | list[str]) -> bool:
        """Check whether any of the given role names is embedded in the token."""
        return not self.roles.isdisjoint(role_names)

    @property
    def seconds_remaining(self) -> int:
        """Whole seconds until expiry, floored at zero."""
        return max(0, int((self.expires_at - datetime.now(UTC)).total_seconds()))
