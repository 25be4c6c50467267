"""RBAC association entities.

Associations have no surrogate identity; they are identified by their key
pair, so equality and hashing use that pair.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(eq=False)
class RolePermission:
    """Grant of one permission to one role. At most one per (role, permission)."""

    role_id: UUID
    permission_id: UUID
    created_at: datetime | None = None

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.role_id, self.permission_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RolePermission):
            return False
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(eq=False)
class UserRole:
    """
    Assignment of one role to one user, optionally time-limited.

    Expired assignments stay stored until a cleanup pass, but are excluded
    from permission resolution.
    """

    user_id: UUID
    role_id: UUID
    created_at: datetime | None = None
    expires_at: datetime | None = None

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.user_id, self.role_id)

    def is_expired(self, now: datetime) -> bool:
        """Check if the assignment has expired."""
        return self.expires_at is not None and now >= self.expires_at

    def is_active(self, now: datetime) -> bool:
        return not self.is_expired(now)

    def renew(self, expires_at: datetime | None) -> None:
        """Reactivate an expired assignment with a new expiry."""
        self.expires_at = expires_at

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UserRole):
            return False
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)
