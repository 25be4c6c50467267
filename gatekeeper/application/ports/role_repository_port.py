"""Role and permission repository port interfaces."""

from typing import Protocol
from uuid import UUID

from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.role import Role


class RoleRepositoryPort(Protocol):
    """Repository interface for Role entity."""

    async def add(self, role: Role) -> Role:
        """
        Add a new role.

        Args:
            role: Role entity to add

        Returns:
            Created role entity
        """
        ...

    async def get_by_id(self, role_id: UUID) -> Role | None:
        """
        Retrieve role by ID.

        Returns:
            Role entity if found, None otherwise
        """
        ...

    async def get_by_name(self, name: str) -> Role | None:
        """
        Retrieve role by its unique name (case-insensitive).

        Returns:
            Role entity if found, None otherwise
        """
        ...

    async def list_all(self, include_inactive: bool = True) -> list[Role]:
        """List roles ordered by name."""
        ...

    async def update(self, role: Role) -> Role:
        """Persist changes to an existing role."""
        ...

    async def delete(self, role_id: UUID) -> bool:
        """
        Delete a role and its associations.

        Returns:
            True if a role was deleted
        """
        ...


class PermissionRepositoryPort(Protocol):
    """Repository interface for Permission entity."""

    async def add(self, permission: Permission) -> Permission:
        """Add a new permission."""
        ...

    async def get_by_id(self, permission_id: UUID) -> Permission | None:
        """Retrieve permission by ID."""
        ...

    async def get_by_name(self, name: str) -> Permission | None:
        """Retrieve permission by its unique ``resource:action`` name."""
        ...

    async def get_by_ids(self, permission_ids: list[UUID]) -> list[Permission]:
        """Retrieve every permission whose id is in ``permission_ids``."""
        ...

    async def list_all(self) -> list[Permission]:
        """List permissions ordered by group and name."""
        ...

    async def update(self, permission: Permission) -> Permission:
        """Persist changes to an existing permission."""
        ...
