"""Bucket grant administration.

Every mutation commits and then invalidates the resolver cache before
returning, so no later check can observe the previous grant.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import ConflictError, NotFoundError, ValidationError
from sharegate.models.credential import Credential
from sharegate.models.permission import (
    BucketPermission,
    CredentialBucketPermission,
    SubjectType,
)
from sharegate.models.storage import StorageBucket
from sharegate.models.user import GroupMembership, User
from sharegate.permissions.resolver import permission_resolver
from sharegate.schemas.permission import (
    BucketPermissionCreate,
    CredentialPermissionCreate,
    GroupMembershipCreate,
)
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


async def _get_bucket(db: AsyncSession, bucket_id: int) -> StorageBucket:
    bucket = await db.get(StorageBucket, bucket_id)
    if bucket is None:
        raise NotFoundError(f"Bucket {bucket_id} not found")
    return bucket


# ── User and group grants ─────────────────────────────────────────

async def grant_bucket_permission(
    db: AsyncSession,
    data: BucketPermissionCreate,
    granted_by: int | None,
) -> BucketPermission:
    """Create or replace the grant for one (bucket, subject) pair."""
    await _get_bucket(db, data.bucket_id)
    subject_id = data.subject_id.strip()
    if data.subject_type == SubjectType.USER:
        if not subject_id.isdigit() or await db.get(User, int(subject_id)) is None:
            raise ValidationError(f"User subject '{subject_id}' does not exist")

    result = await db.execute(
        select(BucketPermission).where(
            BucketPermission.bucket_id == data.bucket_id,
            BucketPermission.subject_type == data.subject_type.value,
            BucketPermission.subject_id == subject_id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = BucketPermission(
            bucket_id=data.bucket_id,
            subject_type=data.subject_type.value,
            subject_id=subject_id,
        )
        db.add(grant)
    grant.permission = data.permission
    grant.granted_by = granted_by

    await _commit(db, f"grant on bucket {data.bucket_id}")
    permission_resolver.cache.invalidate_bucket(data.bucket_id)
    logger.info(
        "Granted %s on bucket %s to %s %s",
        data.permission.name, data.bucket_id, data.subject_type.value, subject_id,
    )
    return grant


async def revoke_bucket_permission(db: AsyncSession, permission_id: int) -> None:
    grant = await db.get(BucketPermission, permission_id)
    if grant is None:
        raise NotFoundError(f"Bucket permission {permission_id} not found")
    bucket_id = grant.bucket_id
    await db.delete(grant)
    await _commit(db, f"revoke on bucket {bucket_id}")
    permission_resolver.cache.invalidate_bucket(bucket_id)
    logger.info("Revoked bucket permission %s on bucket %s", permission_id, bucket_id)


async def list_bucket_permissions(db: AsyncSession, bucket_id: int) -> list[BucketPermission]:
    await _get_bucket(db, bucket_id)
    result = await db.execute(
        select(BucketPermission)
        .where(BucketPermission.bucket_id == bucket_id)
        .order_by(BucketPermission.subject_type, BucketPermission.subject_id)
    )
    return list(result.scalars().all())


# ── Credential grants ─────────────────────────────────────────────

async def grant_credential_permission(
    db: AsyncSession,
    data: CredentialPermissionCreate,
    granted_by: int | None,
) -> CredentialBucketPermission:
    await _get_bucket(db, data.bucket_id)
    if await db.get(Credential, data.credential_id) is None:
        raise NotFoundError(f"Credential {data.credential_id} not found")

    result = await db.execute(
        select(CredentialBucketPermission).where(
            CredentialBucketPermission.credential_id == data.credential_id,
            CredentialBucketPermission.bucket_id == data.bucket_id,
        )
    )
    grant = result.scalar_one_or_none()
    if grant is None:
        grant = CredentialBucketPermission(credential_id=data.credential_id, bucket_id=data.bucket_id)
        db.add(grant)
    grant.permission = data.permission
    grant.granted_by = granted_by

    await _commit(db, f"credential grant on bucket {data.bucket_id}")
    permission_resolver.cache.invalidate_credential(data.credential_id)
    logger.info("Granted %s on bucket %s to credential %s", data.permission.name, data.bucket_id, data.credential_id)
    return grant


async def revoke_credential_permission(db: AsyncSession, permission_id: int) -> None:
    grant = await db.get(CredentialBucketPermission, permission_id)
    if grant is None:
        raise NotFoundError(f"Credential permission {permission_id} not found")
    credential_id = grant.credential_id
    await db.delete(grant)
    await _commit(db, f"credential revoke {permission_id}")
    permission_resolver.cache.invalidate_credential(credential_id)


async def list_credential_permissions(db: AsyncSession, bucket_id: int) -> list[CredentialBucketPermission]:
    await _get_bucket(db, bucket_id)
    result = await db.execute(
        select(CredentialBucketPermission)
        .where(CredentialBucketPermission.bucket_id == bucket_id)
        .order_by(CredentialBucketPermission.credential_id)
    )
    return list(result.scalars().all())


# ── Group memberships ─────────────────────────────────────────────

async def add_group_membership(db: AsyncSession, data: GroupMembershipCreate) -> GroupMembership:
    user = await db.get(User, data.user_id)
    if user is None:
        raise NotFoundError(f"User {data.user_id} not found")
    group_name = data.group_name.strip()
    if group_name in {m.group_name for m in user.memberships}:
        raise ConflictError(f"User {data.user_id} is already a member of '{group_name}'")
    membership = GroupMembership(group_name=group_name)
    user.memberships.append(membership)
    await _commit(db, f"membership for user {data.user_id}")
    permission_resolver.cache.clear()
    logger.info("User %s joined group '%s'", data.user_id, group_name)
    return membership


async def remove_group_membership(db: AsyncSession, user_id: int, group_name: str) -> None:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    membership = next((m for m in user.memberships if m.group_name == group_name), None)
    if membership is None:
        raise NotFoundError(f"User {user_id} is not a member of '{group_name}'")
    user.memberships.remove(membership)
    await _commit(db, f"membership removal for user {user_id}")
    permission_resolver.cache.clear()
    logger.info("User %s left group '%s'", user_id, group_name)


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError(f"Conflicting write for {what}; reload and retry") from exc
