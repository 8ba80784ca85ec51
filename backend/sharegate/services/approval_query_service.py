"""Read projections over approval requests, decisions and history."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.models.approval import (
    ApprovalDecision,
    ApprovalHistory,
    ApprovalStatus,
    ShareApprovalRequest,
)
from sharegate.models.document import DocumentShare
from sharegate.models.user import User
from sharegate.schemas.approval import ApprovalRequestDetail, ApprovalRequestRead
from sharegate.workflow.engine import workflow_engine


def _page_bounds(page: int, page_size: int) -> tuple[int, int]:
    start = (page - 1) * page_size
    return start, start + page_size


async def list_pending(
    db: AsyncSession,
    approver_id: int | None = None,
    requested_by: int | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ShareApprovalRequest], int]:
    """Pending requests in approver-queue order (priority, then deadline)."""
    stmt = (
        select(ShareApprovalRequest)
        .where(
            ShareApprovalRequest.status == ApprovalStatus.PENDING.value,
            ShareApprovalRequest.is_deleted.is_(False),
        )
        .order_by(ShareApprovalRequest.priority, ShareApprovalRequest.deadline, ShareApprovalRequest.id)
    )
    if requested_by is not None:
        stmt = stmt.where(ShareApprovalRequest.requested_by == requested_by)

    requests = list((await db.execute(stmt)).scalars().all())
    if approver_id is not None:
        # JSON list membership is filtered here to stay portable across backends
        requests = [r for r in requests if approver_id in (r.assigned_approver_ids or [])]

    start, end = _page_bounds(page, page_size)
    return requests[start:end], len(requests)


async def list_for_requester(
    db: AsyncSession,
    user_id: int,
    status: ApprovalStatus | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ShareApprovalRequest], int]:
    stmt = select(ShareApprovalRequest).where(
        ShareApprovalRequest.requested_by == user_id,
        ShareApprovalRequest.is_deleted.is_(False),
    )
    if status is not None:
        stmt = stmt.where(ShareApprovalRequest.status == status.value)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    start, _ = _page_bounds(page, page_size)
    result = await db.execute(
        stmt.order_by(ShareApprovalRequest.created_at.desc(), ShareApprovalRequest.id)
        .offset(start)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def get_detail(db: AsyncSession, request_id: str, viewer: User) -> ApprovalRequestDetail:
    request = await workflow_engine.get_request(db, request_id)
    share = await db.get(DocumentShare, request.share_id)
    document = share.document if share else None

    detail = ApprovalRequestDetail.model_validate(
        ApprovalRequestRead.model_validate(request).model_dump()
        | {
            "policy_name": request.policy.name if request.policy else None,
            "document_id": document.id if document else None,
            "document_name": document.name if document else None,
            "share_code": share.share_code if share else None,
            "can_approve": await workflow_engine.can_user_approve(db, request, viewer),
        }
    )
    return detail


async def list_history(db: AsyncSession, request_id: str) -> list[ApprovalHistory]:
    await workflow_engine.get_request(db, request_id)
    result = await db.execute(
        select(ApprovalHistory)
        .where(ApprovalHistory.request_id == request_id)
        .order_by(ApprovalHistory.timestamp, ApprovalHistory.id)
    )
    return list(result.scalars().all())


async def list_decisions(db: AsyncSession, request_id: str) -> list[ApprovalDecision]:
    await workflow_engine.get_request(db, request_id)
    result = await db.execute(
        select(ApprovalDecision)
        .where(ApprovalDecision.request_id == request_id)
        .order_by(ApprovalDecision.decided_at, ApprovalDecision.id)
    )
    return list(result.scalars().all())
