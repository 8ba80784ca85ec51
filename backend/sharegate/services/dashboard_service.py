from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.models.approval import ApprovalStatus, ShareApprovalRequest
from sharegate.schemas.approval import ApprovalStats
from sharegate.services import policy_service
from sharegate.utils.clock import as_utc, utcnow


async def get_approval_stats(db: AsyncSession, now: datetime | None = None) -> ApprovalStats:
    now = now or utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    result = await db.execute(
        select(ShareApprovalRequest).where(ShareApprovalRequest.is_deleted.is_(False))
    )
    requests = list(result.scalars().all())

    by_status: dict[str, int] = {s.value: 0 for s in ApprovalStatus}
    for r in requests:
        by_status[r.status] = by_status.get(r.status, 0) + 1

    pending = [r for r in requests if r.status == ApprovalStatus.PENDING.value]
    overdue = sum(1 for r in pending if as_utc(r.deadline) <= now)

    processed = [r for r in requests if r.processed_at is not None]
    processed_today = sum(1 for r in processed if start_of_day <= as_utc(r.processed_at) < start_of_day + timedelta(days=1))

    durations = [
        (as_utc(r.processed_at) - as_utc(r.created_at)).total_seconds() / 3600
        for r in processed
        if r.status in (ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value)
    ]
    durations = [d for d in durations if d >= 0]
    avg_hours = round(sum(durations) / len(durations), 2) if durations else None

    approved = by_status[ApprovalStatus.APPROVED.value]
    rejected = by_status[ApprovalStatus.REJECTED.value]
    decided = approved + rejected

    return ApprovalStats(
        total=len(requests),
        pending=len(pending),
        approved=approved,
        rejected=rejected,
        expired=by_status[ApprovalStatus.EXPIRED.value],
        overdue=overdue,
        processed_today=processed_today,
        average_processing_hours=avg_hours,
        approval_rate=round(approved / decided * 100, 1) if decided else 0.0,
        rejection_rate=round(rejected / decided * 100, 1) if decided else 0.0,
        active_policies=await policy_service.count_active_policies(db),
    )
