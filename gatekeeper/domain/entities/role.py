"""Role domain entity."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from gatekeeper.core.exceptions import ForbiddenOperationError

ROLE_NAME_MAX_LENGTH = 100


@dataclass(eq=False)
class Role:
    """
    Role entity: a named grant of permissions held by users.

    System roles (``is_system=True``) cannot be renamed or deleted. Role
    permission links are stored as ``RolePermission`` associations.
    """

    id: UUID
    name: str
    display_name: str
    description: str | None = None
    is_system: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate role after initialization."""
        self.name = _validate_name(self.name)
        if not self.display_name or not self.display_name.strip():
            self.display_name = self.name

    def rename(self, new_name: str) -> None:
        """
        Change the role name.

        Args:
            new_name: New unique name

        Raises:
            ForbiddenOperationError: If this is a system role
            ValueError: If the name is invalid
        """
        if self.is_system:
            raise ForbiddenOperationError(
                message=f"System role '{self.name}' cannot be renamed",
                details={"role": self.name},
            )
        self.name = _validate_name(new_name)

    def ensure_deletable(self) -> None:
        """
        Raises:
            ForbiddenOperationError: If this is a system role
        """
        if self.is_system:
            raise ForbiddenOperationError(
                message=f"System role '{self.name}' cannot be deleted",
                details={"role": self.name},
            )

    def deactivate(self) -> None:
        self.is_active = False

    def activate(self) -> None:
        self.is_active = True

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, Role):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)


def _validate_name(name: str) -> str:
    if not name or not name.strip():
        raise ValueError("Role name cannot be empty")
    name = name.strip()
    if len(name) > ROLE_NAME_MAX_LENGTH:
        raise ValueError(f"Role name cannot exceed {ROLE_NAME_MAX_LENGTH} characters")
    return name
