"""Approval policy API: CRUD, activation toggle and dry-run matching."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.rbac import Permission, require_permission
from sharegate.models.user import User
from sharegate.schemas.common import Page
from sharegate.schemas.policy import (
    PolicyCreate,
    PolicyRead,
    PolicyTestRequest,
    PolicyTestResponse,
    PolicyUpdate,
)
from sharegate.services import policy_service
from sharegate.workflow.matcher import ShareAttributes

router = APIRouter(prefix="/approvals/policies", tags=["policies"])


@router.post("", response_model=PolicyRead, status_code=201)
async def create_policy(
    body: PolicyCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_POLICY_MANAGE)),
):
    return await policy_service.create_policy(db, body, user.id)


@router.get("", response_model=Page[PolicyRead])
async def list_policies(
    is_active: bool | None = None,
    name: str | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    items, total = await policy_service.list_policies(
        db, is_active=is_active, name=name, page=page, page_size=page_size,
    )
    return Page[PolicyRead](
        items=[PolicyRead.model_validate(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.post("/test", response_model=PolicyTestResponse)
async def test_policy_match(
    body: PolicyTestRequest,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_POLICY_MANAGE)),
):
    """Show which policy a share with these attributes would select, without creating anything."""
    result = await policy_service.test_policy_match(db, ShareAttributes(**body.model_dump()))
    return PolicyTestResponse(
        requires_approval=result.requires_approval,
        policy_id=result.policy.id,
        policy_name=result.policy.name,
        reason=result.reason,
        forced=result.forced,
    )


@router.get("/{policy_id}", response_model=PolicyRead)
async def get_policy(
    policy_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await policy_service.get_policy(db, policy_id)


@router.put("/{policy_id}", response_model=PolicyRead)
async def update_policy(
    policy_id: int,
    body: PolicyUpdate,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_POLICY_MANAGE)),
):
    return await policy_service.update_policy(db, policy_id, body)


@router.post("/{policy_id}/toggle", response_model=PolicyRead)
async def toggle_policy(
    policy_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_POLICY_MANAGE)),
):
    return await policy_service.toggle_policy(db, policy_id)


@router.delete("/{policy_id}", status_code=204)
async def delete_policy(
    policy_id: int,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_POLICY_MANAGE)),
):
    await policy_service.delete_policy(db, policy_id)
