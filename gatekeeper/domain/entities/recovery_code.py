"""Two-factor recovery code domain entity."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(eq=False)
class RecoveryCode:
    """
    Single-use backup credential for two-factor login.

    ``code_value`` holds the SHA-256 digest of the code when hashing is
    enabled, the plaintext otherwise. A code is consumable at most once and
    only before ``expires_at``.
    """

    id: UUID
    user_id: UUID
    code_value: str
    created_at: datetime
    expires_at: datetime
    is_used: bool = False
    used_at: datetime | None = None

    def __repr__(self) -> str:
        return f"RecoveryCode(id={self.id}, user_id={self.user_id}, is_used={self.is_used})"

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_usable(self, now: datetime) -> bool:
        """True if the code is unused and unexpired."""
        return not self.is_used and not self.is_expired(now)

    def mark_used(self, now: datetime) -> None:
        self.is_used = True
        self.used_at = now

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, RecoveryCode):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)
