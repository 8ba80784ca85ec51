"""Versioned approval settings.

Every write inserts a new row with ``version + 1`` and retires the previous
current row. A snapshot already handed to an in-flight decision is never
affected by a later write.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import ConcurrencyConflictError
from sharegate.models.approval import ApprovalSettings
from sharegate.schemas.settings import SettingsSnapshot, SettingsUpdate
from sharegate.utils.clock import utcnow
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS = {
    "force_approval_for_all": False,
    "force_all_enabled_by": None,
    "force_all_enabled_at": None,
    "force_all_reason": None,
    "force_approval_for_large_files": True,
    "large_file_threshold_bytes": 100 * 1024 * 1024,
    "default_expiration_days": 7,
    "default_required_approvals": 1,
    "notifications_enabled": True,
}


async def get_current(db: AsyncSession) -> ApprovalSettings | None:
    result = await db.execute(
        select(ApprovalSettings)
        .where(ApprovalSettings.is_current.is_(True))
        .order_by(ApprovalSettings.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def ensure_default_settings(db: AsyncSession) -> ApprovalSettings:
    """Return the current row, creating version 1 with defaults on an empty table."""
    current = await get_current(db)
    if current is not None:
        return current
    row = ApprovalSettings(version=1, is_current=True, **DEFAULT_SETTINGS)
    db.add(row)
    await _flush_or_conflict(db)
    logger.info("Created default approval settings (version 1)")
    return row


async def get_snapshot(db: AsyncSession) -> SettingsSnapshot:
    row = await ensure_default_settings(db)
    return SettingsSnapshot.model_validate(row)


async def list_versions(db: AsyncSession, limit: int = 20) -> list[ApprovalSettings]:
    result = await db.execute(
        select(ApprovalSettings).order_by(ApprovalSettings.version.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def update_settings(db: AsyncSession, data: SettingsUpdate, user_id: int | None) -> ApprovalSettings:
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    return await _write_version(db, changes, user_id)


async def enable_force_approval(db: AsyncSession, user_id: int, reason: str) -> ApprovalSettings:
    changes = {
        "force_approval_for_all": True,
        "force_all_enabled_by": user_id,
        "force_all_enabled_at": utcnow(),
        "force_all_reason": reason,
    }
    row = await _write_version(db, changes, user_id)
    logger.warning("Force approval for all shares ENABLED by user %s: %s", user_id, reason)
    return row


async def disable_force_approval(db: AsyncSession, user_id: int) -> ApprovalSettings:
    changes = {
        "force_approval_for_all": False,
        "force_all_enabled_by": None,
        "force_all_enabled_at": None,
        "force_all_reason": None,
    }
    row = await _write_version(db, changes, user_id)
    logger.info("Force approval for all shares disabled by user %s", user_id)
    return row


async def reset_settings(db: AsyncSession, user_id: int) -> ApprovalSettings:
    return await _write_version(db, dict(DEFAULT_SETTINGS), user_id)


# ── Internals ─────────────────────────────────────────────────────

async def _write_version(db: AsyncSession, changes: dict, user_id: int | None) -> ApprovalSettings:
    current = await ensure_default_settings(db)

    values = {field: getattr(current, field) for field in DEFAULT_SETTINGS}
    values.update(changes)

    new_row = ApprovalSettings(
        version=current.version + 1,
        is_current=True,
        created_by=user_id,
        **values,
    )
    current.is_current = False
    current.retired_at = utcnow()
    db.add(new_row)
    await _flush_or_conflict(db)

    logger.info("Approval settings updated to version %s by user %s", new_row.version, user_id)
    return new_row


async def _flush_or_conflict(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConcurrencyConflictError("Approval settings were changed concurrently; reload and retry") from exc
