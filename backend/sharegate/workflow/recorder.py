"""Records one approver's vote on a request.

The pre-check and the insert run inside the caller's transaction. The
``uq_approval_decision_request_approver`` constraint is the definitive guard
against two concurrent votes from the same approver.
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import DuplicateDecisionError
from sharegate.models.approval import (
    ApprovalDecision,
    ApprovalHistory,
    DecisionType,
    HistoryAction,
    ShareApprovalRequest,
)
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


class DecisionRecorder:
    async def record(
        self,
        db: AsyncSession,
        request: ShareApprovalRequest,
        approver_id: int,
        decision: DecisionType,
        comment: str | None,
        now: datetime,
    ) -> ApprovalDecision:
        existing = await db.execute(
            select(ApprovalDecision.id).where(
                ApprovalDecision.request_id == request.id,
                ApprovalDecision.approver_id == approver_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateDecisionError(f"User {approver_id} has already decided on request {request.id}")

        record = ApprovalDecision(
            request_id=request.id,
            approver_id=approver_id,
            decision=decision.value,
            comment=comment,
            decided_at=now,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError as exc:
            # the session now needs a rollback; the engine performs it
            raise DuplicateDecisionError(
                f"User {approver_id} has already decided on request {request.id}"
            ) from exc

        db.add(ApprovalHistory(
            request_id=request.id,
            action=HistoryAction.DECIDED.value,
            actor_id=approver_id,
            note=_history_note(decision, comment),
            timestamp=now,
        ))
        logger.info("Recorded %s from user %s on request %s", decision.value, approver_id, request.id)
        return record


def _history_note(decision: DecisionType, comment: str | None) -> str:
    if comment:
        return f"{decision.value}: {comment}"
    return decision.value


decision_recorder = DecisionRecorder()
