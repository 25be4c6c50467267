"""Login history domain entity."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


class LoginStage:
    """Which authentication step produced the attempt."""

    PASSWORD = "password"
    TWO_FACTOR = "two_factor"
    RECOVERY_CODE = "recovery_code"


@dataclass(eq=False)
class LoginAttempt:
    """
    One recorded authentication attempt.

    ``user_id`` is None when the identifier matched no account; the
    submitted identifier is still kept so repeated probing can be audited.
    """

    id: UUID
    identifier: str
    succeeded: bool
    stage: str
    attempted_at: datetime
    user_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    failure_reason: str | None = None

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, LoginAttempt):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)
