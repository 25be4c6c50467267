"""Refresh token repository port interface."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from gatekeeper.domain.entities.refresh_token import RefreshToken


class RefreshTokenRepositoryPort(Protocol):
    """Repository interface for RefreshToken entity."""

    async def add(self, refresh_token: RefreshToken) -> RefreshToken:
        """
        Add a new refresh token to the repository.

        Args:
            refresh_token: RefreshToken entity to add

        Returns:
            Created refresh token entity
        """
        ...

    async def get_by_id(self, token_id: UUID) -> RefreshToken | None:
        """
        Retrieve refresh token by ID.

        Returns:
            RefreshToken entity if found, None otherwise
        """
        ...

    async def get_by_token_hash(self, token_hash: str) -> RefreshToken | None:
        """
        Retrieve refresh token by the SHA-256 digest of its value.

        Args:
            token_hash: Hex digest of the opaque token

        Returns:
            RefreshToken entity if found, None otherwise
        """
        ...

    async def update(self, refresh_token: RefreshToken) -> RefreshToken:
        """
        Persist revocation fields of an existing token.

        Raises:
            ConcurrencyConflictError: If the stored token was revoked
                concurrently while ``refresh_token`` still saw it active
        """
        ...

    async def list_active_for_user(self, user_id: UUID, now: datetime) -> list[RefreshToken]:
        """List the user's unrevoked, unexpired tokens, newest first."""
        ...

    async def revoke_all_for_user(
        self,
        user_id: UUID,
        now: datetime,
        reason: str,
        ip_address: str | None = None,
    ) -> int:
        """
        Revoke every unrevoked token of the user in one statement.

        Returns:
            Number of tokens revoked
        """
        ...

    async def delete_expired(self, before: datetime) -> int:
        """
        Delete tokens that expired before ``before``.

        Returns:
            Number of tokens deleted
        """
        ...
