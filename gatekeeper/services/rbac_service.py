"""
RBAC store: roles, permissions, their associations and cached resolution.

Resolution results are cached per user. Every mutation that can change a
user's effective permissions invalidates the affected users' entries after
its transaction commits and before it returns, so the next
``resolve_permissions`` call always reflects it.

Cache entries are tagged with a per-user epoch. Invalidation writes a new
epoch, so an entry computed from data read before the mutation can never
be served after it, even if that slower reader writes it back late.
"""

import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from gatekeeper.application.ports.cache_port import CachePort
from gatekeeper.application.ports.unit_of_work_port import UnitOfWorkFactory, UnitOfWorkPort
from gatekeeper.core.clock import Clock, utc_now
from gatekeeper.core.config import Settings
from gatekeeper.core.exceptions import AlreadyExistsError, InvalidInputError, NotFoundError
from gatekeeper.domain.entities.assignments import RolePermission, UserRole
from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.role import Role
from gatekeeper.services import cache_keys
from gatekeeper.services.base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAuthorization:
    """Role and permission names a user holds right now."""

    roles: frozenset[str]
    permissions: frozenset[str]


class RbacService(BaseService):
    """
    Role-based access control.

    Assigning a held role or permission and removing an absent one are
    no-op successes. System roles cannot be renamed or deleted.

    Args:
        uow_factory: Unit of work factory
        settings: Application settings (cache TTL)
        cache: Permission cache
        clock: Time source
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        cache: CachePort,
        clock: Clock = utc_now,
    ):
        super().__init__(uow_factory, clock)
        self.settings = settings
        self.cache = cache

    @property
    def epoch_ttl_seconds(self) -> int:
        """Epoch keys outlive every cache entry tagged with them."""
        return 2 * self.settings.permission_cache_ttl_seconds

    # =========================================================================
    # Roles
    # =========================================================================

    async def create_role(
        self,
        name: str,
        display_name: str | None = None,
        description: str | None = None,
        is_system: bool = False,
    ) -> Role:
        """
        Create a role.

        Raises:
            AlreadyExistsError: If a role with the same name exists
            InvalidInputError: If the name is empty or too long
        """
        try:
            role = Role(
                id=uuid.uuid4(),
                name=name,
                display_name=display_name or "",
                description=description,
                is_system=is_system,
                created_at=self._clock(),
            )
        except ValueError as e:
            raise InvalidInputError(field="name", message=str(e)) from e

        async with self._transaction() as uow:
            if await uow.roles.get_by_name(role.name) is not None:
                raise AlreadyExistsError(resource="Role", details={"name": role.name})
            await uow.roles.add(role)

        logger.info(f"Created role '{role.name}' ({role.id})")
        return role

    async def rename_role(self, role_id: UUID, new_name: str) -> Role:
        """
        Rename a role.

        Raises:
            NotFoundError: If the role does not exist
            ForbiddenOperationError: If the role is a system role
            AlreadyExistsError: If the new name is taken
        """
        async with self._transaction() as uow:
            role = await self._get_role(uow, role_id)
            try:
                role.rename(new_name)
            except ValueError as e:
                raise InvalidInputError(field="name", message=str(e)) from e
            existing = await uow.roles.get_by_name(role.name)
            if existing is not None and existing.id != role.id:
                raise AlreadyExistsError(resource="Role", details={"name": role.name})
            role.updated_at = self._clock()
            await uow.roles.update(role)
            affected = await uow.user_roles.list_user_ids_for_role(role_id)

        await self.invalidate_users(affected)
        logger.info(f"Renamed role {role_id} to '{role.name}'")
        return role

    async def delete_role(self, role_id: UUID) -> None:
        """
        Delete a role together with its permission links and assignments.

        Raises:
            NotFoundError: If the role does not exist
            ForbiddenOperationError: If the role is a system role
        """
        async with self._transaction() as uow:
            role = await self._get_role(uow, role_id)
            role.ensure_deletable()
            affected = await uow.user_roles.list_user_ids_for_role(role_id)
            await uow.roles.delete(role_id)

        await self.invalidate_users(affected)
        logger.info(f"Deleted role '{role.name}' ({role_id}); {len(affected)} users affected")

    async def set_role_active(self, role_id: UUID, active: bool) -> Role:
        """
        Activate or deactivate a role. Inactive roles grant nothing.

        Raises:
            NotFoundError: If the role does not exist
        """
        async with self._transaction() as uow:
            role = await self._get_role(uow, role_id)
            if role.is_active == active:
                return role
            if active:
                role.activate()
            else:
                role.deactivate()
            role.updated_at = self._clock()
            await uow.roles.update(role)
            affected = await uow.user_roles.list_user_ids_for_role(role_id)

        await self.invalidate_users(affected)
        return role

    async def deactivate_role(self, role_id: UUID) -> Role:
        return await self.set_role_active(role_id, False)

    async def get_role(self, role_id: UUID) -> Role:
        async with self._transaction() as uow:
            return await self._get_role(uow, role_id)

    async def list_roles(self, include_inactive: bool = True) -> list[Role]:
        async with self._transaction() as uow:
            return await uow.roles.list_all(include_inactive=include_inactive)

    # =========================================================================
    # Permissions
    # =========================================================================

    async def create_permission(
        self,
        name: str,
        description: str | None = None,
        group: str | None = None,
    ) -> Permission:
        """
        Create a permission named ``resource:action``.

        Raises:
            InvalidInputError: If the name is not ``resource:action``
            AlreadyExistsError: If the permission exists
        """
        try:
            permission = Permission(
                id=uuid.uuid4(),
                name=name,
                group=group,
                description=description,
                created_at=self._clock(),
            )
        except ValueError as e:
            raise InvalidInputError(field="name", message=str(e)) from e

        async with self._transaction() as uow:
            if await uow.permissions.get_by_name(permission.name) is not None:
                raise AlreadyExistsError(resource="Permission", details={"name": permission.name})
            await uow.permissions.add(permission)

        logger.info(f"Created permission '{permission.name}'")
        return permission

    async def list_permissions(self) -> list[Permission]:
        async with self._transaction() as uow:
            return await uow.permissions.list_all()

    async def get_role_permissions(self, role_id: UUID) -> list[Permission]:
        """
        Raises:
            NotFoundError: If the role does not exist
        """
        async with self._transaction() as uow:
            await self._get_role(uow, role_id)
            return await uow.role_permissions.list_permissions_for_role(role_id)

    async def assign_permission_to_role(self, role_id: UUID, permission_id: UUID) -> bool:
        """
        Grant a permission to a role.

        Returns:
            True if the grant was added, False if the role already had it

        Raises:
            NotFoundError: If the role or permission does not exist
        """
        return await self.assign_permissions_to_role(role_id, [permission_id]) == 1

    async def assign_permissions_to_role(self, role_id: UUID, permission_ids: Iterable[UUID]) -> int:
        """
        Grant several permissions to a role in one transaction.

        Either every missing grant is added or none is: an unknown
        permission id aborts the whole batch.

        Args:
            role_id: Role to grant to
            permission_ids: Permissions to grant; duplicates are ignored

        Returns:
            Number of grants added

        Raises:
            NotFoundError: If the role or any permission does not exist

        Example:
            >>> added = await rbac.assign_permissions_to_role(editor.id, [read.id, write.id])
        """
        wanted = list(dict.fromkeys(permission_ids))
        added = 0
        async with self._transaction() as uow:
            await self._get_role(uow, role_id)
            found = {p.id for p in await uow.permissions.get_by_ids(wanted)}
            missing = [str(pid) for pid in wanted if pid not in found]
            if missing:
                raise NotFoundError(resource="Permission", details={"permission_ids": missing})

            now = self._clock()
            for permission_id in wanted:
                if await uow.role_permissions.exists(role_id, permission_id):
                    continue
                await uow.role_permissions.add(RolePermission(role_id, permission_id, now))
                added += 1
            affected = await uow.user_roles.list_user_ids_for_role(role_id) if added else []

        await self.invalidate_users(affected)
        if added:
            logger.info(f"Granted {added} permissions to role {role_id}")
        return added

    async def remove_permission_from_role(self, role_id: UUID, permission_id: UUID) -> bool:
        """
        Revoke a permission from a role.

        Returns:
            True if a grant was removed, False if there was none
        """
        return await self.remove_permissions_from_role(role_id, [permission_id]) == 1

    async def remove_permissions_from_role(self, role_id: UUID, permission_ids: Iterable[UUID]) -> int:
        """
        Revoke several permissions from a role in one transaction.

        Returns:
            Number of grants removed
        """
        removed = 0
        async with self._transaction() as uow:
            for permission_id in dict.fromkeys(permission_ids):
                if await uow.role_permissions.remove(role_id, permission_id):
                    removed += 1
            affected = await uow.user_roles.list_user_ids_for_role(role_id) if removed else []

        await self.invalidate_users(affected)
        if removed:
            logger.info(f"Revoked {removed} permissions from role {role_id}")
        return removed

    # =========================================================================
    # User roles
    # =========================================================================

    async def assign_role(
        self,
        user_id: UUID,
        role_id: UUID,
        expires_at: datetime | None = None,
        uow: UnitOfWorkPort | None = None,
    ) -> bool:
        """
        Give a user a role, optionally until ``expires_at``.

        An expired assignment of the same role is renewed. When joining a
        caller transaction, the cache is invalidated before that
        transaction commits and the caller owns a second invalidation.

        Args:
            user_id: User to assign to
            role_id: Role to assign
            expires_at: Optional expiry
            uow: Optional caller transaction

        Returns:
            True if the assignment changed, False if the user already held the role

        Raises:
            NotFoundError: If the user or role does not exist
        """
        now = self._clock()
        if expires_at is not None and expires_at <= now:
            raise InvalidInputError(field="expires_at", message="Role expiry must be in the future")

        async with self._transaction(uow) as tx:
            if await tx.users.get_by_id(user_id) is None:
                raise NotFoundError(resource="User")
            await self._get_role(tx, role_id)

            existing = await tx.user_roles.get(user_id, role_id)
            if existing is not None and existing.is_active(now):
                return False
            if existing is not None:
                existing.renew(expires_at)
                await tx.user_roles.update(existing)
            else:
                await tx.user_roles.add(UserRole(user_id, role_id, now, expires_at))

        await self.invalidate_user(user_id)
        logger.info(f"Assigned role {role_id} to user {user_id}")
        return True

    async def remove_role(self, user_id: UUID, role_id: UUID) -> bool:
        """
        Take a role away from a user.

        Returns:
            True if an assignment was removed, False if the user did not hold it
        """
        async with self._transaction() as uow:
            removed = await uow.user_roles.remove(user_id, role_id)

        if removed:
            await self.invalidate_user(user_id)
            logger.info(f"Removed role {role_id} from user {user_id}")
        return removed

    async def get_user_roles(self, user_id: UUID) -> list[Role]:
        """List the active roles a user holds through unexpired assignments."""
        async with self._transaction() as uow:
            pairs = await uow.user_roles.list_active_roles_for_user(user_id, self._clock())
        return [role for role, _ in pairs]

    async def cleanup_expired_user_roles(self) -> int:
        """
        Physically delete expired assignments.

        Returns:
            Number of users affected
        """
        async with self._transaction() as uow:
            user_ids = await uow.user_roles.delete_expired(self._clock())
        affected = list(dict.fromkeys(user_ids))
        await self.invalidate_users(affected)
        logger.info(f"Removed expired role assignments for {len(affected)} users")
        return len(affected)

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve_authorization(self, user_id: UUID) -> ResolvedAuthorization:
        """
        Resolve the roles and permissions a user holds, using the cache.

        Permissions are the union over every active, unexpired role the user
        holds. Inactive permissions are excluded.

        Args:
            user_id: User to resolve

        Returns:
            ResolvedAuthorization

        Raises:
            ServiceUnavailableError: If the cache or database is unreachable
        """
        epoch = await self.cache.get(cache_keys.user_authorization_epoch(user_id))
        if epoch is not None:
            cached = await self.cache.get(cache_keys.user_authorization(user_id))
            if cached is not None:
                entry = json.loads(cached)
                if entry.get("epoch") == epoch:
                    return ResolvedAuthorization(
                        roles=frozenset(entry["roles"]),
                        permissions=frozenset(entry["permissions"]),
                    )
        else:
            # The epoch must exist before the database read, see invalidate_user
            epoch = uuid.uuid4().hex
            await self.cache.set(
                cache_keys.user_authorization_epoch(user_id), epoch, self.epoch_ttl_seconds
            )

        resolved, ttl = await self._load_authorization(user_id)
        if ttl > 0:
            entry = {
                "epoch": epoch,
                "roles": sorted(resolved.roles),
                "permissions": sorted(resolved.permissions),
            }
            await self.cache.set(cache_keys.user_authorization(user_id), json.dumps(entry), ttl)
        return resolved

    async def _load_authorization(self, user_id: UUID) -> tuple[ResolvedAuthorization, float]:
        now = self._clock()
        async with self._transaction() as uow:
            pairs = await uow.user_roles.list_active_roles_for_user(user_id, now)
            role_ids = [role.id for role, _ in pairs]
            permissions = (
                await uow.role_permissions.list_permission_names_for_roles(role_ids)
                if role_ids
                else set()
            )

        ttl = float(self.settings.permission_cache_ttl_seconds)
        for _, assignment in pairs:
            if assignment.expires_at is not None:
                ttl = min(ttl, (assignment.expires_at - now).total_seconds())

        resolved = ResolvedAuthorization(
            roles=frozenset(role.name for role, _ in pairs),
            permissions=frozenset(permissions),
        )
        return resolved, ttl

    async def resolve_permissions(self, user_id: UUID) -> frozenset[str]:
        return (await self.resolve_authorization(user_id)).permissions

    async def has_permission(self, user_id: UUID, permission_name: str) -> bool:
        """
        Check whether a user holds a permission.

        Example:
            >>> await rbac.has_permission(alice.id, "content:write")
            True
        """
        permissions = await self.resolve_permissions(user_id)
        return permission_name.strip().lower() in permissions

    async def has_any_role(self, user_id: UUID, role_names: Iterable[str]) -> bool:
        """Check whether a user holds at least one of the roles (case-insensitive)."""
        wanted = {name.strip().lower() for name in role_names}
        held = (await self.resolve_authorization(user_id)).roles
        return any(role.lower() in wanted for role in held)

    # =========================================================================
    # Cache invalidation
    # =========================================================================

    async def invalidate_user(self, user_id: UUID) -> None:
        """
        Drop a user's cached authorization.

        A new epoch is written first, then the entry is removed. A reader
        that loaded data before the mutation tags its entry with the old
        epoch, which no longer matches.
        """
        await self.cache.set(
            cache_keys.user_authorization_epoch(user_id), uuid.uuid4().hex, self.epoch_ttl_seconds
        )
        await self.cache.remove(cache_keys.user_authorization(user_id))

    async def invalidate_users(self, user_ids: Iterable[UUID]) -> None:
        for user_id in user_ids:
            await self.invalidate_user(user_id)

    @staticmethod
    async def _get_role(uow: UnitOfWorkPort, role_id: UUID) -> Role:
        role = await uow.roles.get_by_id(role_id)
        if role is None:
            raise NotFoundError(resource="Role")
        return role
