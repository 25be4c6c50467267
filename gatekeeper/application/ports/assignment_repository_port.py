"""RBAC association repository port interfaces."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from gatekeeper.domain.entities.assignments import RolePermission, UserRole
from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.role import Role


class RolePermissionRepositoryPort(Protocol):
    """Repository interface for role-permission associations."""

    async def exists(self, role_id: UUID, permission_id: UUID) -> bool:
        """Check whether the (role, permission) association exists."""
        ...

    async def add(self, association: RolePermission) -> RolePermission:
        """
        Add an association.

        Callers check ``exists`` first; the storage layer also enforces
        uniqueness of the pair.
        """
        ...

    async def remove(self, role_id: UUID, permission_id: UUID) -> bool:
        """
        Remove an association.

        Returns:
            True if an association was removed, False if none existed
        """
        ...

    async def list_permissions_for_role(self, role_id: UUID) -> list[Permission]:
        """List the permissions granted to a role."""
        ...

    async def list_permission_names_for_roles(self, role_ids: list[UUID]) -> set[str]:
        """
        Resolve the names of active permissions granted to any of the roles.

        Args:
            role_ids: Roles to resolve

        Returns:
            Set of permission names
        """
        ...


class UserRoleRepositoryPort(Protocol):
    """Repository interface for user-role assignments."""

    async def get(self, user_id: UUID, role_id: UUID) -> UserRole | None:
        """Retrieve the assignment for (user, role), expired or not."""
        ...

    async def add(self, assignment: UserRole) -> UserRole:
        """Add an assignment."""
        ...

    async def update(self, assignment: UserRole) -> UserRole:
        """Persist a changed expiry."""
        ...

    async def remove(self, user_id: UUID, role_id: UUID) -> bool:
        """
        Remove an assignment.

        Returns:
            True if an assignment was removed, False if none existed
        """
        ...

    async def list_active_roles_for_user(
        self, user_id: UUID, now: datetime
    ) -> list[tuple[Role, UserRole]]:
        """
        List active roles held through unexpired assignments.

        Args:
            user_id: User to resolve
            now: Reference time for expiry

        Returns:
            (role, assignment) pairs
        """
        ...

    async def list_user_ids_for_role(self, role_id: UUID) -> list[UUID]:
        """List every user holding the role, including expired assignments."""
        ...

    async def delete_expired(self, now: datetime) -> list[UUID]:
        """
        Physically remove expired assignments.

        Returns:
            Ids of the users whose assignments were removed
        """
        ...
