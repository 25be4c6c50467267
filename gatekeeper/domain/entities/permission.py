"""Permission domain entity."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

PERMISSION_SEPARATOR = ":"


@dataclass(eq=False)
class Permission:
    """
    Permission entity named ``resource:action`` (e.g. ``content:write``).

    Names are unique across the whole permission set. ``group`` is only
    used to group permissions for display.
    """

    id: UUID
    name: str
    group: str | None = None
    description: str | None = None
    is_active: bool = True
    created_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate permission after initialization."""
        self.name = self.name.strip().lower() if self.name else ""
        resource, sep, action = self.name.partition(PERMISSION_SEPARATOR)
        if not sep or not resource or not action or PERMISSION_SEPARATOR in action:
            raise ValueError(f"Permission name must look like 'resource:action', got {self.name!r}")
        if self.group is None:
            self.group = resource

    @property
    def resource(self) -> str:
        """Resource part of the name, e.g. ``content``."""
        return self.name.split(PERMISSION_SEPARATOR)[0]

    @property
    def action(self) -> str:
        """Action part of the name, e.g. ``write``."""
        return self.name.split(PERMISSION_SEPARATOR)[1]

    def __eq__(self, other: object) -> bool:
        """Entity equality based on identity (id), not value."""
        if not isinstance(other, Permission):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash based on identity."""
        return hash(self.id)
