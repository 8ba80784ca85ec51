from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.rbac import Permission, require_permission
from sharegate.models.user import User
from sharegate.schemas.approval import ApprovalStats
from sharegate.services import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/approvals", response_model=ApprovalStats)
async def approval_stats(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await dashboard_service.get_approval_stats(db)
