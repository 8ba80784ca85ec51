from enum import StrEnum
from typing import Any

from fastapi import Depends, HTTPException, status

from sharegate.core.security import get_current_user


class Role(StrEnum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    APPROVER = "Approver"
    USER = "User"
    VIEWER = "Viewer"


class Permission(StrEnum):
    ADMIN_ACCESS = "Admin.Access"
    BUCKET_MANAGE = "Bucket.Manage"
    BUCKET_PERMISSION_MANAGE = "BucketPermission.Manage"
    APPROVAL_READ = "Approval.Read"
    APPROVAL_PROCESS = "Approval.Process"
    APPROVAL_MANAGE = "Approval.Manage"
    APPROVAL_POLICY_MANAGE = "ApprovalPolicy.Manage"
    APPROVAL_SETTINGS_MANAGE = "ApprovalSettings.Manage"
    SHARE_CREATE = "Share.Create"


ROLE_ALIASES = {
    "admin": Role.ADMIN.value,
    "administrator": Role.ADMIN.value,
    "manager": Role.MANAGER.value,
    "approver": Role.APPROVER.value,
    "user": Role.USER.value,
    "viewer": Role.VIEWER.value,
}

ROLE_PERMISSIONS: dict[str, frozenset[Permission]] = {
    Role.ADMIN.value: frozenset(Permission),
    Role.MANAGER.value: frozenset({
        Permission.APPROVAL_READ,
        Permission.APPROVAL_PROCESS,
        Permission.APPROVAL_MANAGE,
        Permission.APPROVAL_POLICY_MANAGE,
        Permission.BUCKET_PERMISSION_MANAGE,
        Permission.SHARE_CREATE,
    }),
    Role.APPROVER.value: frozenset({
        Permission.APPROVAL_READ,
        Permission.APPROVAL_PROCESS,
        Permission.SHARE_CREATE,
    }),
    Role.USER.value: frozenset({Permission.APPROVAL_READ, Permission.SHARE_CREATE}),
    Role.VIEWER.value: frozenset({Permission.APPROVAL_READ}),
}


def normalize_role(role: str) -> str:
    return ROLE_ALIASES.get(role.strip().lower(), role.strip())


def role_permissions(role: str) -> frozenset[Permission]:
    return ROLE_PERMISSIONS.get(normalize_role(role), frozenset())


def has_permission(role: str, permission: Permission) -> bool:
    return permission in role_permissions(role)


def require_permission(*permissions: Permission):
    """FastAPI dependency that checks the current user's role grants every listed permission."""

    async def _check(current_user: Any = Depends(get_current_user)):
        granted = role_permissions(current_user.role)
        missing = [p.value for p in permissions if p not in granted]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{normalize_role(current_user.role)}' not authorized. Missing: {missing}",
            )
        return current_user

    return _check
