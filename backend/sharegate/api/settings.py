from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.rbac import Permission, require_permission
from sharegate.models.user import User
from sharegate.schemas.settings import ForceApprovalRequest, SettingsRead, SettingsUpdate
from sharegate.services import settings_service

router = APIRouter(prefix="/approvals/settings", tags=["settings"])


@router.get("", response_model=SettingsRead)
async def get_settings(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await settings_service.ensure_default_settings(db)


@router.get("/versions", response_model=list[SettingsRead])
async def list_settings_versions(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_SETTINGS_MANAGE)),
):
    return await settings_service.list_versions(db, limit=limit)


@router.put("", response_model=SettingsRead)
async def update_settings(
    body: SettingsUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_SETTINGS_MANAGE)),
):
    return await settings_service.update_settings(db, body, user.id)


@router.post("/force-all", response_model=SettingsRead)
async def enable_force_approval(
    body: ForceApprovalRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_SETTINGS_MANAGE)),
):
    return await settings_service.enable_force_approval(db, user.id, body.reason)


@router.delete("/force-all", response_model=SettingsRead)
async def disable_force_approval(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_SETTINGS_MANAGE)),
):
    return await settings_service.disable_force_approval(db, user.id)


@router.post("/reset", response_model=SettingsRead)
async def reset_settings(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_SETTINGS_MANAGE)),
):
    return await settings_service.reset_settings(db, user.id)
