"""Unit tests for Role, Permission and assignment entities."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from gatekeeper.core.exceptions import ForbiddenOperationError
from gatekeeper.domain.entities import Permission, Role, RolePermission, UserRole

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


class TestRole:
    """Test Role entity."""

    def test_display_name_defaults_to_name(self):
        role = Role(id=uuid4(), name="  Editor ", display_name="")

        assert role.name == "Editor"
        assert role.display_name == "Editor"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_invalid_name_raises_error(self, name):
        with pytest.raises(ValueError):
            Role(id=uuid4(), name=name, display_name="Role")

    def test_rename(self):
        role = Role(id=uuid4(), name="Editor", display_name="Editor")

        role.rename("Writer")

        assert role.name == "Writer"

    def test_system_role_cannot_be_renamed(self):
        role = Role(id=uuid4(), name="Admin", display_name="Admin", is_system=True)

        with pytest.raises(ForbiddenOperationError):
            role.rename("Root")
        assert role.name == "Admin"

    def test_system_role_cannot_be_deleted(self):
        role = Role(id=uuid4(), name="Admin", display_name="Admin", is_system=True)

        with pytest.raises(ForbiddenOperationError):
            role.ensure_deletable()

    def test_regular_role_is_deletable(self):
        Role(id=uuid4(), name="Editor", display_name="Editor").ensure_deletable()

    def test_activate_and_deactivate(self):
        role = Role(id=uuid4(), name="Editor", display_name="Editor")

        role.deactivate()
        assert role.is_active is False
        role.activate()
        assert role.is_active is True


class TestPermission:
    """Test Permission entity naming rules."""

    def test_name_is_normalized(self):
        permission = Permission(id=uuid4(), name=" Content:Write ")

        assert permission.name == "content:write"
        assert permission.resource == "content"
        assert permission.action == "write"
        assert permission.group == "content"

    def test_explicit_group_is_kept(self):
        permission = Permission(id=uuid4(), name="content:write", group="Editorial")

        assert permission.group == "Editorial"

    @pytest.mark.parametrize("name", ["", "content", "content:", ":write", "a:b:c"])
    def test_invalid_name_raises_error(self, name):
        with pytest.raises(ValueError):
            Permission(id=uuid4(), name=name)


class TestAssignments:
    """Test association entities."""

    def test_role_permission_equality_by_key(self):
        role_id, permission_id = uuid4(), uuid4()

        first = RolePermission(role_id=role_id, permission_id=permission_id)
        second = RolePermission(role_id=role_id, permission_id=permission_id, created_at=NOW)

        assert first == second
        assert len({first, second}) == 1

    def test_user_role_without_expiry_never_expires(self):
        assignment = UserRole(user_id=uuid4(), role_id=uuid4())

        assert assignment.is_active(NOW + timedelta(days=3650)) is True

    def test_user_role_expiry(self):
        assignment = UserRole(user_id=uuid4(), role_id=uuid4(), expires_at=NOW)

        assert assignment.is_expired(NOW - timedelta(seconds=1)) is False
        assert assignment.is_expired(NOW) is True

    def test_user_role_renew(self):
        assignment = UserRole(user_id=uuid4(), role_id=uuid4(), expires_at=NOW)

        assignment.renew(NOW + timedelta(days=1))

        assert assignment.is_active(NOW) is True
