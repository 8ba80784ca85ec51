"""Bucket permission resolution for human users and machine credentials.

Effective level for a user:
  - max(direct user grant, every group grant the user holds) on the bucket
  - roles carrying ``Bucket.Manage`` resolve to ADMIN on every bucket

Effective level for a credential:
  - the credential's own bucket grant, capped by ``max_permission``
  - NONE when the credential is inactive, expired, or its provider
    allow-list excludes the bucket's provider

Absence of access is a normal outcome: nothing here raises for "no access".
"""

from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.config import settings
from sharegate.core.rbac import Permission, has_permission
from sharegate.models.credential import Credential
from sharegate.models.permission import (
    BucketPermission,
    CredentialBucketPermission,
    PermissionLevel,
    SubjectType,
)
from sharegate.models.storage import StorageBucket
from sharegate.models.user import User
from sharegate.permissions.cache import PermissionCache
from sharegate.schemas.permission import DenialReason, PermissionCheckResult
from sharegate.utils.clock import as_utc, utcnow
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


class PermissionResolver:
    def __init__(self, cache: PermissionCache | None = None):
        self.cache = cache or PermissionCache(enabled=settings.permission_cache_enabled)

    # ── Users ─────────────────────────────────────────────────────

    async def resolve_user(self, db: AsyncSession, user: User, bucket_id: int) -> PermissionLevel:
        if has_permission(user.role, Permission.BUCKET_MANAGE):
            return PermissionLevel.ADMIN
        return await self._user_grant_level(db, user, bucket_id)

    async def check_user(
        self,
        db: AsyncSession,
        user: User,
        bucket_id: int,
        required: PermissionLevel,
    ) -> PermissionCheckResult:
        if await db.get(StorageBucket, bucket_id) is None:
            return _denied(DenialReason.BUCKET_NOT_FOUND, required)

        held = await self.resolve_user(db, user, bucket_id)
        result = _compare(held, required)
        if not result.allowed:
            logger.debug(
                "User %s denied %s on bucket %s: %s (held %s)",
                user.id, required.name, bucket_id, result.reason, held.name,
            )
        return result

    async def _user_grant_level(self, db: AsyncSession, user: User, bucket_id: int) -> PermissionLevel:
        key = ("user", user.id, bucket_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        generation = self.cache.generation()

        groups = sorted(user.group_names)
        subject_filter = and_(
            BucketPermission.subject_type == SubjectType.USER,
            BucketPermission.subject_id == str(user.id),
        )
        if groups:
            subject_filter = or_(
                subject_filter,
                and_(
                    BucketPermission.subject_type == SubjectType.GROUP,
                    BucketPermission.subject_id.in_(groups),
                ),
            )

        result = await db.execute(
            select(BucketPermission.permission).where(
                BucketPermission.bucket_id == bucket_id,
                subject_filter,
            )
        )
        level = max(result.scalars().all(), default=PermissionLevel.NONE)
        self.cache.set(key, level, generation)
        return level

    # ── Credentials ───────────────────────────────────────────────

    async def resolve_credential(
        self,
        db: AsyncSession,
        credential: Credential,
        bucket_id: int,
        now: datetime | None = None,
    ) -> PermissionLevel:
        bucket = await db.get(StorageBucket, bucket_id)
        if bucket is None:
            return PermissionLevel.NONE
        level, _ = await self._evaluate_credential(db, credential, bucket, now or utcnow())
        return level

    async def check_credential(
        self,
        db: AsyncSession,
        credential: Credential,
        bucket_id: int,
        required: PermissionLevel,
        now: datetime | None = None,
    ) -> PermissionCheckResult:
        bucket = await db.get(StorageBucket, bucket_id)
        if bucket is None:
            return _denied(DenialReason.BUCKET_NOT_FOUND, required)

        held, gate = await self._evaluate_credential(db, credential, bucket, now or utcnow())
        if gate is not None:
            logger.debug("Credential %s denied on bucket %s: %s", credential.id, bucket_id, gate)
            return _denied(gate, required)
        return _compare(held, required)

    async def _evaluate_credential(
        self,
        db: AsyncSession,
        credential: Credential,
        bucket: StorageBucket,
        now: datetime,
    ) -> tuple[PermissionLevel, DenialReason | None]:
        """Returns the capped level plus the gate that blocked it, if any."""
        if not credential.is_active:
            return PermissionLevel.NONE, DenialReason.CREDENTIAL_INACTIVE
        expires_at = as_utc(credential.expires_at)
        if expires_at is not None and expires_at <= now:
            return PermissionLevel.NONE, DenialReason.CREDENTIAL_EXPIRED
        allowed_providers = credential.allowed_provider_ids or []
        if allowed_providers and bucket.provider_id not in allowed_providers:
            return PermissionLevel.NONE, DenialReason.PROVIDER_NOT_ALLOWED

        grant = await self._credential_grant_level(db, credential.id, bucket.id)
        ceiling = PermissionLevel(credential.max_permission)
        return min(grant, ceiling), None

    async def _credential_grant_level(self, db: AsyncSession, credential_id: int, bucket_id: int) -> PermissionLevel:
        key = ("credential", credential_id, bucket_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        generation = self.cache.generation()

        result = await db.execute(
            select(CredentialBucketPermission.permission).where(
                CredentialBucketPermission.credential_id == credential_id,
                CredentialBucketPermission.bucket_id == bucket_id,
            )
        )
        level = result.scalar_one_or_none() or PermissionLevel.NONE
        self.cache.set(key, level, generation)
        return level


def _denied(reason: DenialReason, required: PermissionLevel) -> PermissionCheckResult:
    return PermissionCheckResult(allowed=False, reason=reason, required=required, held=PermissionLevel.NONE)


def _compare(held: PermissionLevel, required: PermissionLevel) -> PermissionCheckResult:
    if held >= required:
        return PermissionCheckResult(allowed=True, required=required, held=held)
    reason = DenialReason.NO_GRANT if held == PermissionLevel.NONE else DenialReason.INSUFFICIENT_LEVEL
    return PermissionCheckResult(allowed=False, reason=reason, required=required, held=held)


permission_resolver = PermissionResolver()
