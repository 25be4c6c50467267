"""Recovery code and login history repository port interfaces."""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from gatekeeper.domain.entities.login_attempt import LoginAttempt
from gatekeeper.domain.entities.recovery_code import RecoveryCode


class RecoveryCodeRepositoryPort(Protocol):
    """Repository interface for RecoveryCode entity."""

    async def add_many(self, codes: list[RecoveryCode]) -> list[RecoveryCode]:
        """Add a batch of freshly generated codes."""
        ...

    async def list_for_user(self, user_id: UUID) -> list[RecoveryCode]:
        """List all of the user's codes, used or not."""
        ...

    async def mark_used(self, code_id: UUID, used_at: datetime) -> bool:
        """
        Mark a code as used if and only if it is still unused.

        This is a compare-and-set: of two concurrent consumers of the same
        code, exactly one gets True.

        Args:
            code_id: Code to consume
            used_at: Consumption timestamp

        Returns:
            True if this call consumed the code
        """
        ...

    async def delete_for_user(self, user_id: UUID) -> int:
        """
        Delete every code of the user.

        Returns:
            Number of codes deleted
        """
        ...


class LoginAttemptRepositoryPort(Protocol):
    """Repository interface for login history."""

    async def add(self, attempt: LoginAttempt) -> LoginAttempt:
        """Record an authentication attempt."""
        ...

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> list[LoginAttempt]:
        """List the user's most recent attempts, newest first."""
        ...
