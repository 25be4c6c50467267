"""User repository port interface."""

from typing import Protocol
from uuid import UUID

from gatekeeper.domain.entities.user import User


class UserRepositoryPort(Protocol):
    """Repository interface for User entity."""

    async def add(self, user: User) -> User:
        """
        Add a new user to the repository.

        Args:
            user: User entity to add

        Returns:
            Created user entity
        """
        ...

    async def get_by_id(self, user_id: UUID, include_deleted: bool = False) -> User | None:
        """
        Retrieve user by ID.

        Soft-deleted users are only returned when ``include_deleted`` is set.

        Args:
            user_id: User's unique identifier
            include_deleted: Also return soft-deleted users

        Returns:
            User entity if found, None otherwise
        """
        ...

    async def get_by_username(self, username: str) -> User | None:
        """
        Retrieve an active-record user by username (case-insensitive).

        Args:
            username: Username to look up

        Returns:
            User entity if found, None otherwise
        """
        ...

    async def get_by_email(self, email: str) -> User | None:
        """
        Retrieve an active-record user by email (case-insensitive).

        Args:
            email: Email address to look up

        Returns:
            User entity if found, None otherwise
        """
        ...

    async def exists_by_username(self, username: str) -> bool:
        """Check whether any user (deleted or not) holds this username."""
        ...

    async def exists_by_email(self, email: str) -> bool:
        """Check whether any user (deleted or not) holds this email."""
        ...

    async def update(self, user: User) -> User:
        """
        Persist changes to an existing user.

        The update is optimistic: it fails when the stored version differs
        from ``user.version``.

        Args:
            user: User entity with modified fields

        Returns:
            Updated user entity with the new version

        Raises:
            NotFoundError: If the user does not exist
            ConcurrencyConflictError: If the user was modified concurrently
        """
        ...
