"""Approval policy service: CRUD, the fallback policy, and dry-run matching."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    ProtectedPolicyError,
    ValidationError,
)
from sharegate.models.approval import (
    FALLBACK_POLICY_NAME,
    ApprovalPolicy,
    ApprovalStatus,
    ShareApprovalRequest,
)
from sharegate.schemas.policy import PolicyCreate, PolicyUpdate
from sharegate.services import settings_service
from sharegate.utils.clock import utcnow
from sharegate.utils.logging import get_logger
from sharegate.workflow import matcher
from sharegate.workflow.matcher import MatchResult, ShareAttributes

logger = get_logger(__name__)

FALLBACK_PRIORITY = 999
FALLBACK_TIMEOUT_HOURS = 72
FALLBACK_REQUIRED_APPROVALS = 1

_ID_FILTERS = ("category_ids", "provider_ids", "user_ids", "credential_ids", "approver_ids")
# fields that would stop the fallback from matching everything
_FALLBACK_LOCKED = ("category_ids", "provider_ids", "user_ids", "credential_ids", "file_types", "max_file_size_bytes")


# ── Validation ────────────────────────────────────────────────────

def validate_policy_fields(values: dict) -> None:
    """Reject malformed filter sets before anything is written."""
    errors: list[str] = []

    for field in _ID_FILTERS:
        ids = values.get(field)
        if ids is None:
            continue
        if any(i <= 0 for i in ids):
            errors.append(f"{field} must contain positive ids")
        if len(set(ids)) != len(ids):
            errors.append(f"{field} contains duplicate entries")

    file_types = values.get("file_types")
    if file_types is not None:
        normalized = [matcher.normalize_file_type(t) for t in file_types]
        if any(not t for t in normalized):
            errors.append("file_types must not contain empty entries")
        if len(set(normalized)) != len(normalized):
            errors.append("file_types contains duplicate entries")

    max_size = values.get("max_file_size_bytes")
    if max_size is not None and max_size < 0:
        errors.append("max_file_size_bytes must not be negative")

    count = values.get("required_approval_count")
    if count is not None and count <= 0:
        errors.append("required_approval_count must be positive")

    timeout = values.get("approval_timeout_hours")
    if timeout is not None and timeout <= 0:
        errors.append("approval_timeout_hours must be positive")

    priority = values.get("priority")
    if priority is not None and not 1 <= priority < FALLBACK_PRIORITY:
        errors.append(f"priority must be between 1 and {FALLBACK_PRIORITY - 1}")

    if errors:
        raise ValidationError("; ".join(errors))


def _normalized_file_types(file_types: list[str]) -> list[str]:
    return [matcher.normalize_file_type(t) for t in file_types]


# ── CRUD ──────────────────────────────────────────────────────────

async def create_policy(db: AsyncSession, data: PolicyCreate, user_id: int | None) -> ApprovalPolicy:
    values = data.model_dump()
    validate_policy_fields(values)
    values["file_types"] = _normalized_file_types(values["file_types"])

    policy = ApprovalPolicy(**values, is_system=False, created_by=user_id)
    db.add(policy)
    await db.flush()
    logger.info("Created approval policy %s '%s' (priority %s)", policy.id, policy.name, policy.priority)
    return policy


async def get_policy(db: AsyncSession, policy_id: int) -> ApprovalPolicy:
    policy = await db.get(ApprovalPolicy, policy_id)
    if policy is None or policy.is_deleted:
        raise NotFoundError(f"Approval policy {policy_id} not found")
    return policy


async def list_policies(
    db: AsyncSession,
    is_active: bool | None = None,
    name: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ApprovalPolicy], int]:
    stmt = select(ApprovalPolicy).where(ApprovalPolicy.is_deleted.is_(False))
    if is_active is not None:
        stmt = stmt.where(ApprovalPolicy.is_active.is_(is_active))
    if name:
        stmt = stmt.where(ApprovalPolicy.name.ilike(f"%{name.strip()}%"))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    stmt = (
        stmt.order_by(ApprovalPolicy.priority, ApprovalPolicy.name, ApprovalPolicy.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total


async def list_matchable_policies(db: AsyncSession) -> list[ApprovalPolicy]:
    """Every non-deleted policy, fallback included, in evaluation order."""
    result = await db.execute(
        select(ApprovalPolicy)
        .where(ApprovalPolicy.is_deleted.is_(False))
        .order_by(ApprovalPolicy.priority, ApprovalPolicy.name, ApprovalPolicy.id)
    )
    return list(result.scalars().all())


async def update_policy(db: AsyncSession, policy_id: int, data: PolicyUpdate) -> ApprovalPolicy:
    policy = await get_policy(db, policy_id)
    changes = data.model_dump(exclude_unset=True)
    expected_version = changes.pop("version", None)
    if expected_version is not None and expected_version != policy.version:
        raise ConcurrencyConflictError(
            f"Approval policy {policy_id} is at version {policy.version}, not {expected_version}"
        )

    if policy.is_system:
        locked = [f for f in _FALLBACK_LOCKED if changes.get(f)]
        if locked or changes.get("is_active") is False or changes.get("require_approval") is False:
            raise ProtectedPolicyError("The fallback policy must stay active, unfiltered and approval-required")
        if "priority" in changes and changes["priority"] != FALLBACK_PRIORITY:
            raise ProtectedPolicyError("The fallback policy priority cannot be changed")
        if "required_approval_count" in changes and changes["required_approval_count"] != FALLBACK_REQUIRED_APPROVALS:
            raise ProtectedPolicyError("The fallback policy always requires exactly one approval")
        changes.pop("required_approval_count", None)
        changes.pop("priority", None)
    validate_policy_fields(changes)

    if changes.get("file_types") is not None:
        changes["file_types"] = _normalized_file_types(changes["file_types"])

    for field, value in changes.items():
        if value is None and field in _ID_FILTERS + ("file_types",):
            value = []
        setattr(policy, field, value)
    await db.flush()
    logger.info("Updated approval policy %s (version %s)", policy.id, policy.version)
    return policy


async def delete_policy(db: AsyncSession, policy_id: int) -> None:
    policy = await get_policy(db, policy_id)
    if policy.is_system:
        raise ProtectedPolicyError("The fallback policy cannot be deleted")

    pending = await count_pending_requests(db, policy_id)
    if pending:
        raise ConflictError(f"Approval policy {policy_id} still has {pending} pending request(s)")

    policy.is_deleted = True
    policy.deleted_at = utcnow()
    policy.is_active = False
    await db.flush()
    logger.info("Soft-deleted approval policy %s", policy_id)


async def toggle_policy(db: AsyncSession, policy_id: int) -> ApprovalPolicy:
    policy = await get_policy(db, policy_id)
    if policy.is_system and policy.is_active:
        raise ProtectedPolicyError("The fallback policy cannot be deactivated")
    policy.is_active = not policy.is_active
    await db.flush()
    logger.info("Approval policy %s is now %s", policy_id, "active" if policy.is_active else "inactive")
    return policy


async def count_pending_requests(db: AsyncSession, policy_id: int) -> int:
    result = await db.execute(
        select(func.count(ShareApprovalRequest.id)).where(
            ShareApprovalRequest.policy_id == policy_id,
            ShareApprovalRequest.status == ApprovalStatus.PENDING.value,
            ShareApprovalRequest.is_deleted.is_(False),
        )
    )
    return result.scalar_one()


async def count_active_policies(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count(ApprovalPolicy.id)).where(
            ApprovalPolicy.is_deleted.is_(False),
            ApprovalPolicy.is_active.is_(True),
        )
    )
    return result.scalar_one()


# ── Fallback policy ───────────────────────────────────────────────

async def ensure_fallback_policy(db: AsyncSession) -> ApprovalPolicy:
    """Create the fallback policy, or restore it if it was tampered with."""
    result = await db.execute(select(ApprovalPolicy).where(ApprovalPolicy.is_system.is_(True)))
    policy = result.scalar_one_or_none()

    if policy is None:
        policy = ApprovalPolicy(
            name=FALLBACK_POLICY_NAME,
            description="Catch-all policy applied when no other policy matches",
            is_active=True,
            is_system=True,
            priority=FALLBACK_PRIORITY,
            require_approval=True,
            approval_timeout_hours=FALLBACK_TIMEOUT_HOURS,
            required_approval_count=FALLBACK_REQUIRED_APPROVALS,
        )
        db.add(policy)
        await db.flush()
        logger.info("Created fallback approval policy %s", policy.id)
        return policy

    if (
        policy.is_deleted
        or not policy.is_active
        or not policy.require_approval
        or policy.required_approval_count != FALLBACK_REQUIRED_APPROVALS
    ):
        policy.is_deleted = False
        policy.deleted_at = None
        policy.is_active = True
        policy.require_approval = True
        policy.required_approval_count = FALLBACK_REQUIRED_APPROVALS
        await db.flush()
        logger.warning("Restored fallback approval policy %s", policy.id)
    return policy


# ── Dry run ───────────────────────────────────────────────────────

async def test_policy_match(db: AsyncSession, attributes: ShareAttributes) -> MatchResult:
    snapshot = await settings_service.get_snapshot(db)
    policies = await list_matchable_policies(db)
    return matcher.match(snapshot, policies, attributes)
