"""
RBAC administration API routes.

This module provides HTTP endpoints for:
- Roles: create, list, rename, activate, deactivate, delete
- Permissions: create, list
- Role grants: add or remove permissions in batches
- User roles: assign, remove, list
- Account lifecycle: lock, unlock, deactivate, activate, delete

Read endpoints need ``roles:read``; role changes need ``roles:manage``;
user changes need ``users:manage``.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from gatekeeper.api.dependencies import CoreContainer, require_permission
from gatekeeper.api.schemas import (
    AssignRoleRequest,
    ChangedCountResponse,
    LockAccountRequest,
    PermissionCreate,
    PermissionIdsRequest,
    PermissionResponse,
    RoleCreate,
    RoleRename,
    RoleResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

RolesRead = Depends(require_permission("roles:read"))
RolesManage = Depends(require_permission("roles:manage"))
UsersManage = Depends(require_permission("users:manage"))


# =============================================================================
# Roles
# =============================================================================


@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RolesManage],
    summary="Create role",
)
async def create_role(body: RoleCreate, container: CoreContainer) -> RoleResponse:
    """
    Create a role.

    Raises:
        409: Role name already exists
    """
    role = await container.rbac_service.create_role(
        body.name, display_name=body.display_name, description=body.description
    )
    return RoleResponse.model_validate(role)


@router.get("/roles", response_model=list[RoleResponse], dependencies=[RolesRead], summary="List roles")
async def list_roles(container: CoreContainer, include_inactive: bool = True) -> list[RoleResponse]:
    roles = await container.rbac_service.list_roles(include_inactive=include_inactive)
    return [RoleResponse.model_validate(r) for r in roles]


@router.get("/roles/{role_id}", response_model=RoleResponse, dependencies=[RolesRead], summary="Get role")
async def get_role(role_id: UUID, container: CoreContainer) -> RoleResponse:
    return RoleResponse.model_validate(await container.rbac_service.get_role(role_id))


@router.patch("/roles/{role_id}", response_model=RoleResponse, dependencies=[RolesManage], summary="Rename role")
async def rename_role(role_id: UUID, body: RoleRename, container: CoreContainer) -> RoleResponse:
    role = await container.rbac_service.rename_role(role_id, body.name)
    return RoleResponse.model_validate(role)


@router.post(
    "/roles/{role_id}/activate",
    response_model=RoleResponse,
    dependencies=[RolesManage],
    summary="Activate role",
)
async def activate_role(role_id: UUID, container: CoreContainer) -> RoleResponse:
    role = await container.rbac_service.set_role_active(role_id, True)
    return RoleResponse.model_validate(role)


@router.post(
    "/roles/{role_id}/deactivate",
    response_model=RoleResponse,
    dependencies=[RolesManage],
    summary="Deactivate role",
)
async def deactivate_role(role_id: UUID, container: CoreContainer) -> RoleResponse:
    """Holders of an inactive role lose its permissions immediately."""
    role = await container.rbac_service.deactivate_role(role_id)
    return RoleResponse.model_validate(role)


@router.delete(
    "/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[RolesManage],
    summary="Delete role",
)
async def delete_role(role_id: UUID, container: CoreContainer) -> Response:
    """
    Delete a role.

    Raises:
        403: System roles cannot be deleted
        404: Role not found
    """
    await container.rbac_service.delete_role(role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Permissions
# =============================================================================


@router.post(
    "/permissions",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[RolesManage],
    summary="Create permission",
)
async def create_permission(body: PermissionCreate, container: CoreContainer) -> PermissionResponse:
    permission = await container.rbac_service.create_permission(
        body.name, description=body.description, group=body.group
    )
    return PermissionResponse.model_validate(permission)


@router.get(
    "/permissions",
    response_model=list[PermissionResponse],
    dependencies=[RolesRead],
    summary="List permissions",
)
async def list_permissions(container: CoreContainer) -> list[PermissionResponse]:
    permissions = await container.rbac_service.list_permissions()
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.get(
    "/roles/{role_id}/permissions",
    response_model=list[PermissionResponse],
    dependencies=[RolesRead],
    summary="List role permissions",
)
async def get_role_permissions(role_id: UUID, container: CoreContainer) -> list[PermissionResponse]:
    permissions = await container.rbac_service.get_role_permissions(role_id)
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.post(
    "/roles/{role_id}/permissions",
    response_model=ChangedCountResponse,
    dependencies=[RolesManage],
    summary="Grant permissions to role",
)
async def assign_permissions(
    role_id: UUID, body: PermissionIdsRequest, container: CoreContainer
) -> ChangedCountResponse:
    """
    Grant several permissions in one transaction.

    An unknown permission id rejects the whole batch.
    """
    changed = await container.rbac_service.assign_permissions_to_role(role_id, body.permission_ids)
    return ChangedCountResponse(changed=changed)


@router.post(
    "/roles/{role_id}/permissions/remove",
    response_model=ChangedCountResponse,
    dependencies=[RolesManage],
    summary="Revoke permissions from role",
)
async def remove_permissions(
    role_id: UUID, body: PermissionIdsRequest, container: CoreContainer
) -> ChangedCountResponse:
    changed = await container.rbac_service.remove_permissions_from_role(role_id, body.permission_ids)
    return ChangedCountResponse(changed=changed)


# =============================================================================
# Users
# =============================================================================


@router.get(
    "/users/{user_id}/roles",
    response_model=list[RoleResponse],
    dependencies=[RolesRead],
    summary="List user roles",
)
async def get_user_roles(user_id: UUID, container: CoreContainer) -> list[RoleResponse]:
    roles = await container.rbac_service.get_user_roles(user_id)
    return [RoleResponse.model_validate(r) for r in roles]


@router.put(
    "/users/{user_id}/roles/{role_id}",
    response_model=ChangedCountResponse,
    dependencies=[UsersManage],
    summary="Assign role to user",
)
async def assign_role(
    user_id: UUID,
    role_id: UUID,
    container: CoreContainer,
    body: AssignRoleRequest | None = None,
) -> ChangedCountResponse:
    """Assign a role, optionally until ``expires_at``. Assigning twice changes nothing."""
    expires_at = body.expires_at if body else None
    changed = await container.rbac_service.assign_role(user_id, role_id, expires_at=expires_at)
    return ChangedCountResponse(changed=int(changed))


@router.delete(
    "/users/{user_id}/roles/{role_id}",
    response_model=ChangedCountResponse,
    dependencies=[UsersManage],
    summary="Remove role from user",
)
async def remove_role(user_id: UUID, role_id: UUID, container: CoreContainer) -> ChangedCountResponse:
    changed = await container.rbac_service.remove_role(user_id, role_id)
    return ChangedCountResponse(changed=int(changed))


@router.post(
    "/users/{user_id}/unlock",
    response_model=UserResponse,
    dependencies=[UsersManage],
    summary="Unlock account",
)
async def unlock_account(user_id: UUID, container: CoreContainer) -> UserResponse:
    user = await container.auth_service.unlock_account(user_id)
    return UserResponse.model_validate(user)


@router.post(
    "/users/{user_id}/lock",
    response_model=UserResponse,
    dependencies=[UsersManage],
    summary="Lock account",
)
async def lock_account(
    user_id: UUID,
    container: CoreContainer,
    body: LockAccountRequest | None = None,
) -> UserResponse:
    duration = body.duration_minutes if body else None
    user = await container.user_admin_service.lock_account(user_id, duration_minutes=duration)
    return UserResponse.model_validate(user)


@router.post(
    "/users/{user_id}/deactivate",
    response_model=UserResponse,
    dependencies=[UsersManage],
    summary="Deactivate user",
)
async def deactivate_user(user_id: UUID, container: CoreContainer) -> UserResponse:
    """Block login and revoke every session of the user."""
    user = await container.user_admin_service.deactivate_user(user_id)
    return UserResponse.model_validate(user)


@router.post(
    "/users/{user_id}/activate",
    response_model=UserResponse,
    dependencies=[UsersManage],
    summary="Activate user",
)
async def activate_user(user_id: UUID, container: CoreContainer) -> UserResponse:
    user = await container.user_admin_service.activate_user(user_id)
    return UserResponse.model_validate(user)


@router.delete(
    "/users/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[UsersManage],
    summary="Delete user",
)
async def delete_user(user_id: UUID, container: CoreContainer) -> Response:
    """
    Soft delete a user and revoke every session.

    Raises:
        404: User not found or already deleted
    """
    await container.user_admin_service.soft_delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
