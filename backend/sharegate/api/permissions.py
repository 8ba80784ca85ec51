"""Bucket permission API: checks, grants and group memberships."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.exceptions import NotFoundError
from sharegate.core.rbac import Permission, require_permission
from sharegate.core.security import get_current_credential, get_current_user
from sharegate.models.credential import Credential
from sharegate.models.permission import PermissionLevel
from sharegate.models.user import User
from sharegate.permissions.resolver import permission_resolver
from sharegate.schemas.permission import (
    BucketPermissionCreate,
    BucketPermissionRead,
    CredentialPermissionCreate,
    CredentialPermissionRead,
    GroupMembershipCreate,
    PermissionCheckResult,
)
from sharegate.services import permission_service

router = APIRouter(prefix="/permissions", tags=["permissions"])


# ── Checks ─────────────────────────────────────────────────────────────


@router.get("/buckets/{bucket_id}/check", response_model=PermissionCheckResult)
async def check_my_permission(
    bucket_id: int,
    level: PermissionLevel = PermissionLevel.READ,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await permission_resolver.check_user(db, user, bucket_id, level)


@router.get("/buckets/{bucket_id}/check-credential", response_model=PermissionCheckResult)
async def check_credential_permission(
    bucket_id: int,
    level: PermissionLevel = PermissionLevel.READ,
    db: AsyncSession = Depends(get_db),
    credential: Credential = Depends(get_current_credential),
):
    return await permission_resolver.check_credential(db, credential, bucket_id, level)


@router.get("/buckets/{bucket_id}/users/{user_id}/check", response_model=PermissionCheckResult)
async def check_user_permission(
    bucket_id: int,
    user_id: int,
    level: PermissionLevel = PermissionLevel.READ,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    subject = await db.get(User, user_id)
    if subject is None:
        raise NotFoundError(f"User {user_id} not found")
    return await permission_resolver.check_user(db, subject, bucket_id, level)


# ── User / group grants ────────────────────────────────────────────────


@router.get("/buckets/{bucket_id}/grants", response_model=list[BucketPermissionRead])
async def list_bucket_grants(
    bucket_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    return await permission_service.list_bucket_permissions(db, bucket_id)


@router.post("/grants", response_model=BucketPermissionRead, status_code=201)
async def grant_bucket_permission(
    body: BucketPermissionCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    return await permission_service.grant_bucket_permission(db, body, admin.id)


@router.delete("/grants/{permission_id}", status_code=204)
async def revoke_bucket_permission(
    permission_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    await permission_service.revoke_bucket_permission(db, permission_id)


# ── Credential grants ──────────────────────────────────────────────────


@router.get("/buckets/{bucket_id}/credential-grants", response_model=list[CredentialPermissionRead])
async def list_credential_grants(
    bucket_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    return await permission_service.list_credential_permissions(db, bucket_id)


@router.post("/credential-grants", response_model=CredentialPermissionRead, status_code=201)
async def grant_credential_permission(
    body: CredentialPermissionCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    return await permission_service.grant_credential_permission(db, body, admin.id)


@router.delete("/credential-grants/{permission_id}", status_code=204)
async def revoke_credential_permission(
    permission_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.BUCKET_PERMISSION_MANAGE)),
):
    await permission_service.revoke_credential_permission(db, permission_id)


# ── Group memberships ──────────────────────────────────────────────────


@router.post("/memberships", status_code=201)
async def add_group_membership(
    body: GroupMembershipCreate,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.ADMIN_ACCESS)),
) -> dict:
    membership = await permission_service.add_group_membership(db, body)
    return {"id": membership.id, "user_id": body.user_id, "group_name": membership.group_name}


@router.delete("/memberships/{user_id}/{group_name}", status_code=204)
async def remove_group_membership(
    user_id: int,
    group_name: str,
    db: AsyncSession = Depends(get_db),
    _admin: User = Depends(require_permission(Permission.ADMIN_ACCESS)),
):
    await permission_service.remove_group_membership(db, user_id, group_name)
