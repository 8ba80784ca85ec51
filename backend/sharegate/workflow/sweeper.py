"""Periodic expiry of overdue approval requests.

Each run pages through Pending requests whose deadline has passed and expires
them one at a time through ``workflow_engine.expire``, which commits per
request. A failure on one request is logged and the run moves on.
"""

from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.config import settings
from sharegate.core.exceptions import RequestNotPendingError
from sharegate.models.approval import ApprovalStatus, ShareApprovalRequest
from sharegate.services import settings_service
from sharegate.utils.clock import utcnow
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


class SweepReport(BaseModel):
    expired: int = 0
    skipped: int = 0  # already terminal when reached
    failed: int = 0

    @property
    def total(self) -> int:
        return self.expired + self.skipped + self.failed


class ExpirationSweeper:
    async def run(
        self,
        db: AsyncSession,
        now: datetime | None = None,
        batch_size: int | None = None,
    ) -> SweepReport:
        from sharegate.workflow.engine import workflow_engine

        now = now or utcnow()
        batch_size = batch_size or settings.approval_sweep_batch_size
        snapshot = await settings_service.get_snapshot(db)
        await db.commit()

        report = SweepReport()
        visited: set[str] = set()

        while True:
            stmt = (
                select(ShareApprovalRequest.id)
                .where(
                    ShareApprovalRequest.status == ApprovalStatus.PENDING.value,
                    ShareApprovalRequest.is_deleted.is_(False),
                    ShareApprovalRequest.deadline <= now,
                )
                .order_by(ShareApprovalRequest.deadline, ShareApprovalRequest.id)
                .limit(batch_size)
            )
            if visited:
                stmt = stmt.where(ShareApprovalRequest.id.not_in(sorted(visited)))
            batch = list((await db.execute(stmt)).scalars().all())
            if not batch:
                break

            for request_id in batch:
                visited.add(request_id)
                try:
                    await workflow_engine.expire(db, request_id, now=now, snapshot=snapshot)
                    report.expired += 1
                except RequestNotPendingError:
                    report.skipped += 1
                except Exception:
                    logger.exception("Failed to expire approval request %s", request_id)
                    report.failed += 1

        if report.total:
            logger.info(
                "Expiration sweep finished: expired=%d skipped=%d failed=%d",
                report.expired, report.skipped, report.failed,
            )
        return report


expiration_sweeper = ExpirationSweeper()
