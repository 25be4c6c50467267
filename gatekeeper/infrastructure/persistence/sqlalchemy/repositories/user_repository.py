"""SQLAlchemy implementation of UserRepositoryPort."""

from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from gatekeeper.application.ports.user_repository_port import UserRepositoryPort
from gatekeeper.core.exceptions import ConcurrencyConflictError, NotFoundError
from gatekeeper.domain.entities.user import User
from gatekeeper.infrastructure.persistence.sqlalchemy.mappers import UserMapper
from gatekeeper.infrastructure.persistence.sqlalchemy.models import UserModel
from gatekeeper.infrastructure.persistence.sqlalchemy.repositories.base_repository import (
    BaseRepository,
)


class SqlAlchemyUserRepository(BaseRepository[UserModel, User], UserRepositoryPort):
    """
    SQLAlchemy implementation of UserRepositoryPort.

    Soft-deleted users are filtered out explicitly by each lookup; there is
    no global query filter.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, UserModel, UserMapper, "User")

    async def get_by_id(self, user_id: UUID, include_deleted: bool = False) -> User | None:
        stmt = select(UserModel).where(UserModel.id == user_id)
        if not include_deleted:
            stmt = stmt.where(UserModel.deleted_at.is_(None))
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(UserModel).where(
            UserModel.username_normalized == username.strip().lower(),
            UserModel.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def get_by_email(self, email: str) -> User | None:
        stmt = select(UserModel).where(
            UserModel.email == email.strip().lower(),
            UserModel.deleted_at.is_(None),
        )
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self.mapper.to_entity(model) if model else None

    async def exists_by_username(self, username: str) -> bool:
        stmt = select(exists().where(UserModel.username_normalized == username.strip().lower()))
        return bool(await self.session.scalar(stmt))

    async def exists_by_email(self, email: str) -> bool:
        stmt = select(exists().where(UserModel.email == email.strip().lower()))
        return bool(await self.session.scalar(stmt))

    async def update(self, user: User) -> User:
        """
        Update a user with an optimistic version check.

        The version is compared twice: against the row loaded here (catches
        entities read in an earlier transaction) and by the UPDATE's
        ``WHERE version = ...`` clause (catches writers racing this flush).

        Raises:
            NotFoundError: If the user does not exist
            ConcurrencyConflictError: If the versions differ
        """
        model = await self.session.get(UserModel, user.id)
        if model is None:
            raise NotFoundError(resource="User")
        if model.version != user.version:
            raise ConcurrencyConflictError(
                details={"expected_version": user.version, "actual_version": model.version}
            )

        self.mapper.to_model(user, existing_model=model)
        await self.flush()
        user.version = model.version
        return user
