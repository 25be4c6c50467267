"""SQLAlchemy implementations of the role, permission and assignment ports."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.application.ports.assignment_repository_port import (
    RolePermissionRepositoryPort,
    UserRoleRepositoryPort,
)
from gatekeeper.application.ports.role_repository_port import (
    PermissionRepositoryPort,
    RoleRepositoryPort,
)
from gatekeeper.core.exceptions import NotFoundError
from gatekeeper.domain.entities.assignments import RolePermission, UserRole
from gatekeeper.domain.entities.permission import Permission
from gatekeeper.domain.entities.role import Role
from gatekeeper.infrastructure.persistence.sqlalchemy.mappers import (
    AssignmentMapper,
    PermissionMapper,
    RoleMapper,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.models import (
    PermissionModel,
    RoleModel,
    RolePermissionModel,
    UserRoleModel,
)
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.base_repository import (
    BaseRepository,
    flush_session,
)


class SqlAlchemyRoleRepository(BaseRepository[RoleModel, Role], RoleRepositoryPort):
    """SQLAlchemy implementation of RoleRepositoryPort."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, RoleModel, RoleMapper, "Role")

    async def get_by_name(self, name: str) -> Role | None:
        stmt = select(RoleModel).where(RoleModel.name_normalized == name.strip().lower())
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def list_all(self, include_inactive: bool = True) -> list[Role]:
        stmt = select(RoleModel).order_by(RoleModel.name_normalized)
        if not include_inactive:
            stmt = stmt.where(RoleModel.is_active.is_(True))
        result = await self.session.execute(stmt)
        return [self.mapper.to_entity(m) for m in result.scalars().all()]

    async def update(self, role: Role) -> Role:
        model = await self.session.get(RoleModel, role.id)
        if model is None:
            raise NotFoundError(resource="Role")
        self.mapper.to_model(role, existing_model=model)
        await self.flush()
        return self.mapper.to_entity(model)

    async def delete(self, role_id: UUID) -> bool:
        """
        Delete a role together with its associations.

        Associations are removed explicitly so the behaviour does not depend
        on the backend enforcing ON DELETE CASCADE.
        """
        await self.session.execute(
            delete(RolePermissionModel).where(RolePermissionModel.role_id == role_id)
        )
        await self.session.execute(delete(UserRoleModel).where(UserRoleModel.role_id == role_id))
        result = await self.session.execute(delete(RoleModel).where(RoleModel.id == role_id))
        await self.flush()
        return result.rowcount > 0


class SqlAlchemyPermissionRepository(
    BaseRepository[PermissionModel, Permission], PermissionRepositoryPort
):
    """SQLAlchemy implementation of PermissionRepositoryPort."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PermissionModel, PermissionMapper, "Permission")

    async def get_by_name(self, name: str) -> Permission | None:
        stmt = select(PermissionModel).where(PermissionModel.name == name.strip().lower())
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def get_by_ids(self, permission_ids: list[UUID]) -> list[Permission]:
        if not permission_ids:
            return []
        stmt = select(PermissionModel).where(PermissionModel.id.in_(permission_ids))
        result = await self.session.execute(stmt)
        return [self.mapper.to_entity(m) for m in result.scalars().all()]

    async def list_all(self) -> list[Permission]:
        stmt = select(PermissionModel).order_by(PermissionModel.group, PermissionModel.name)
        result = await self.session.execute(stmt)
        return [self.mapper.to_entity(m) for m in result.scalars().all()]

    async def update(self, permission: Permission) -> Permission:
        model = await self.session.get(PermissionModel, permission.id)
        if model is None:
            raise NotFoundError(resource="Permission")
        self.mapper.to_model(permission, existing_model=model)
        await self.flush()
        return self.mapper.to_entity(model)


class SqlAlchemyRolePermissionRepository(RolePermissionRepositoryPort):
    """SQLAlchemy implementation of RolePermissionRepositoryPort."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def exists(self, role_id: UUID, permission_id: UUID) -> bool:
        stmt = select(
            exists().where(
                RolePermissionModel.role_id == role_id,
                RolePermissionModel.permission_id == permission_id,
            )
        )
        return bool(await self.session.scalar(stmt))

    async def add(self, association: RolePermission) -> RolePermission:
        self.session.add(AssignmentMapper.role_permission_to_model(association))
        await flush_session(self.session, "Role permission")
        return association

    async def remove(self, role_id: UUID, permission_id: UUID) -> bool:
        result = await self.session.execute(
            delete(RolePermissionModel).where(
                RolePermissionModel.role_id == role_id,
                RolePermissionModel.permission_id == permission_id,
            )
        )
        return result.rowcount > 0

    async def list_permissions_for_role(self, role_id: UUID) -> list[Permission]:
        stmt = (
            select(PermissionModel)
            .join(RolePermissionModel, RolePermissionModel.permission_id == PermissionModel.id)
            .where(RolePermissionModel.role_id == role_id)
            .order_by(PermissionModel.name)
        )
        result = await self.session.execute(stmt)
        return [PermissionMapper.to_entity(m) for m in result.scalars().all()]

    async def list_permission_names_for_roles(self, role_ids: list[UUID]) -> set[str]:
        if not role_ids:
            return set()
        stmt = (
            select(PermissionModel.name)
            .join(RolePermissionModel, RolePermissionModel.permission_id == PermissionModel.id)
            .where(
                RolePermissionModel.role_id.in_(role_ids),
                PermissionModel.is_active.is_(True),
            )
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())


class SqlAlchemyUserRoleRepository(UserRoleRepositoryPort):
    """SQLAlchemy implementation of UserRoleRepositoryPort."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: UUID, role_id: UUID) -> UserRole | None:
        model = await self.session.get(UserRoleModel, (user_id, role_id))
        return AssignmentMapper.user_role_to_entity(model) if model else None

    async def add(self, assignment: UserRole) -> UserRole:
        self.session.add(AssignmentMapper.user_role_to_model(assignment))
        await flush_session(self.session, "User role")
        return assignment

    async def update(self, assignment: UserRole) -> UserRole:
        model = await self.session.get(UserRoleModel, (assignment.user_id, assignment.role_id))
        if model is None:
            raise NotFoundError(resource="User role")
        AssignmentMapper.user_role_to_model(assignment, existing_model=model)
        await flush_session(self.session, "User role")
        return assignment

    async def remove(self, user_id: UUID, role_id: UUID) -> bool:
        result = await self.session.execute(
            delete(UserRoleModel).where(
                UserRoleModel.user_id == user_id,
                UserRoleModel.role_id == role_id,
            )
        )
        return result.rowcount > 0

    async def list_active_roles_for_user(
        self, user_id: UUID, now: datetime
    ) -> list[tuple[Role, UserRole]]:
        stmt = (
            select(RoleModel, UserRoleModel)
            .join(UserRoleModel, UserRoleModel.role_id == RoleModel.id)
            .where(
                UserRoleModel.user_id == user_id,
                RoleModel.is_active.is_(True),
                or_(UserRoleModel.expires_at.is_(None), UserRoleModel.expires_at > now),
            )
            .order_by(RoleModel.name_normalized)
        )
        result = await self.session.execute(stmt)
        return [
            (RoleMapper.to_entity(role), AssignmentMapper.user_role_to_entity(assignment))
            for role, assignment in result.all()
        ]

    async def list_user_ids_for_role(self, role_id: UUID) -> list[UUID]:
        stmt = select(UserRoleModel.user_id).where(UserRoleModel.role_id == role_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_expired(self, now: datetime) -> list[UUID]:
        expired = UserRoleModel.expires_at.is_not(None) & (UserRoleModel.expires_at <= now)
        result = await self.session.execute(select(UserRoleModel.user_id).where(expired))
        user_ids = sorted(set(result.scalars().all()))
        if user_ids:
            await self.session.execute(delete(UserRoleModel).where(expired))
        return user_ids
