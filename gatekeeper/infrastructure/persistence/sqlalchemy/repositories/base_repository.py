"""
Base repository class for common database operations.

Provides generic add/get operations for entity tables and translates
SQLAlchemy failures raised at flush time into core exceptions:

- IntegrityError (unique constraint) -> AlreadyExistsError
- StaleDataError (optimistic version check) -> ConcurrencyConflictError
- OperationalError / InterfaceError -> PersistenceUnavailableError
"""

import logging
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from gatekeeper.core.exceptions import (
    AlreadyExistsError,
    ConcurrencyConflictError,
    PersistenceUnavailableError,
)

TModel = TypeVar("TModel")
TEntity = TypeVar("TEntity")

logger = logging.getLogger(__name__)


async def flush_session(session: AsyncSession, resource: str = "Resource") -> None:
    """
    Flush pending changes, translating database errors.

    Args:
        session: Session to flush
        resource: Resource name used in AlreadyExistsError messages
    """
    try:
        await session.flush()
    except IntegrityError as e:
        logger.info(f"Integrity error while flushing {resource}: {e.orig}")
        raise AlreadyExistsError(resource=resource) from e
    except StaleDataError as e:
        logger.warning(f"Concurrent modification detected for {resource}")
        raise ConcurrencyConflictError() from e
    except (OperationalError, InterfaceError) as e:
        logger.error(f"Database unavailable while flushing {resource}: {e}")
        raise PersistenceUnavailableError() from e


class BaseRepository(Generic[TModel, TEntity]):
    """
    Base repository providing common operations for UUID-keyed tables.

    Type Parameters:
        TModel: SQLAlchemy model type (e.g., UserModel)
        TEntity: Domain entity type (e.g., User)

    Usage:
        class SqlAlchemyUserRepository(BaseRepository[UserModel, User]):
            def __init__(self, session: AsyncSession):
                super().__init__(session, UserModel, UserMapper, "User")
    """

    def __init__(self, session: AsyncSession, model_class: type[TModel], mapper, resource: str):
        """
        Initialize base repository.

        Args:
            session: SQLAlchemy async session
            model_class: SQLAlchemy model class
            mapper: Mapper class with to_entity() and to_model() methods
            resource: Human-readable resource name for errors
        """
        self.session = session
        self.model_class = model_class
        self.mapper = mapper
        self.resource = resource

    async def add(self, entity: TEntity) -> TEntity:
        """
        Add a new entity to the database.

        Args:
            entity: Domain entity to persist

        Returns:
            Created entity as stored

        Raises:
            AlreadyExistsError: If a unique constraint is violated
        """
        model = self.mapper.to_model(entity)
        self.session.add(model)
        await self.flush()
        return self.mapper.to_entity(model)

    async def get_by_id(self, entity_id: UUID) -> TEntity | None:
        """
        Retrieve entity by ID.

        Returns:
            Domain entity if found, None otherwise
        """
        stmt = select(self.model_class).where(self.model_class.id == entity_id)
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return self.mapper.to_entity(model)

    async def flush(self) -> None:
        await flush_session(self.session, self.resource)
