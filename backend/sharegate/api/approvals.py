"""Approval request API: queues, detail, decisions, history and maintenance."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.rbac import Permission, require_permission
from sharegate.models.approval import ApprovalStatus
from sharegate.models.user import User
from sharegate.schemas.approval import (
    ApprovalRequestDetail,
    ApprovalRequestRead,
    DecisionCreate,
    DecisionRead,
    HistoryRead,
    SweepResult,
)
from sharegate.schemas.common import Page
from sharegate.services import approval_query_service
from sharegate.workflow.engine import workflow_engine

router = APIRouter(prefix="/approvals", tags=["approvals"])


# ── Queues ─────────────────────────────────────────────────────────────


@router.get("/requests/pending", response_model=Page[ApprovalRequestRead])
async def list_pending_requests(
    assigned_to_me: bool = False,
    approver_id: int | None = None,
    requested_by: int | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    if assigned_to_me:
        approver_id = user.id
    items, total = await approval_query_service.list_pending(
        db, approver_id=approver_id, requested_by=requested_by, page=page, page_size=page_size,
    )
    return Page[ApprovalRequestRead](
        items=[ApprovalRequestRead.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/requests/mine", response_model=Page[ApprovalRequestRead])
async def list_my_requests(
    status: ApprovalStatus | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    items, total = await approval_query_service.list_for_requester(
        db, user.id, status=status, page=page, page_size=page_size,
    )
    return Page[ApprovalRequestRead](
        items=[ApprovalRequestRead.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


# ── Single request ─────────────────────────────────────────────────────


@router.get("/requests/{request_id}", response_model=ApprovalRequestDetail)
async def get_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await approval_query_service.get_detail(db, request_id, user)


@router.post("/requests/{request_id}/decisions", response_model=ApprovalRequestRead)
async def decide_request(
    request_id: str,
    body: DecisionCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    """Cast a vote. Eligibility (approver list or Approval.Process) is enforced by the engine."""
    request = await workflow_engine.decide(db, request_id, user, body.decision, body.comment)
    return ApprovalRequestRead.model_validate(request)


@router.get("/requests/{request_id}/decisions", response_model=list[DecisionRead])
async def list_decisions(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await approval_query_service.list_decisions(db, request_id)


@router.get("/requests/{request_id}/history", response_model=list[HistoryRead])
async def list_history(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await approval_query_service.list_history(db, request_id)


@router.get("/requests/{request_id}/can-approve")
async def can_approve(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.APPROVAL_READ)),
) -> dict[str, bool]:
    request = await workflow_engine.get_request(db, request_id)
    return {"can_approve": await workflow_engine.can_user_approve(db, request, user)}


# ── Maintenance ────────────────────────────────────────────────────────


@router.post("/maintenance/process-expired", response_model=SweepResult)
async def process_expired(
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_MANAGE)),
):
    report = await workflow_engine.process_expired(db)
    return SweepResult(expired=report.expired, skipped=report.skipped, failed=report.failed)
