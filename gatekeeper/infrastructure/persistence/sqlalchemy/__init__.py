"""SQLAlchemy async persistence adapter."""

from gatekeeper.infrastructure.persistence.sqlalchemy.database import DatabaseConfig
from gatekeeper.infrastructure.persistence.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork

__all__ = ["DatabaseConfig", "SqlAlchemyUnitOfWork"]
