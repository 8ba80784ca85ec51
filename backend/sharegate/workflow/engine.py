"""Approval workflow engine: owns the share approval request state machine.

States:
  Pending -> Approved | Rejected | Expired   (all terminal)

Every read-modify-write on a request runs inside one transaction guarded by
the request's version stamp. A stale write rolls back and re-reads; if the
re-read finds a terminal request the caller gets ``RequestNotPendingError``,
otherwise the operation is retried up to
``settings.approval_decide_max_retries`` times.

``_close`` is the only code path that moves a request out of Pending.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from sharegate.core.config import settings as app_settings
from sharegate.core.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    RequestExpiredError,
    RequestNotPendingError,
)
from sharegate.core.rbac import Permission, has_permission
from sharegate.models.approval import (
    ApprovalDecision,
    ApprovalHistory,
    ApprovalPolicy,
    ApprovalStatus,
    DecisionType,
    HistoryAction,
    ShareApprovalRequest,
)
from sharegate.models.document import DocumentShare, ShareApprovalState
from sharegate.models.user import User
from sharegate.schemas.settings import SettingsSnapshot
from sharegate.services import notification_service, settings_service
from sharegate.services.notification_service import ApprovalEvent, NotificationPublisher
from sharegate.utils.clock import as_utc, utcnow
from sharegate.utils.logging import get_logger
from sharegate.workflow.recorder import DecisionRecorder, decision_recorder

logger = get_logger(__name__)

T = TypeVar("T")


class ApprovalWorkflowEngine:
    def __init__(
        self,
        recorder: DecisionRecorder | None = None,
        publisher: NotificationPublisher | None = None,
    ):
        self.recorder = recorder or decision_recorder
        self.publisher = publisher

    # ── Opening ───────────────────────────────────────────────────

    async def open(
        self,
        db: AsyncSession,
        share: DocumentShare,
        policy: ApprovalPolicy,
        snapshot: SettingsSnapshot,
        requested_by: int,
        requested_via_credential_id: int | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> ShareApprovalRequest:
        """Open a Pending request for ``share`` under ``policy`` and commit."""
        now = now or utcnow()
        await db.flush()  # assigns share.id for shares created in this transaction

        required = policy.required_approval_count or snapshot.default_required_approvals
        if policy.approval_timeout_hours:
            deadline = now + timedelta(hours=policy.approval_timeout_hours)
        else:
            deadline = now + timedelta(days=snapshot.default_expiration_days)

        request = ShareApprovalRequest(
            share_id=share.id,
            policy_id=policy.id,
            policy=policy,
            status=ApprovalStatus.PENDING.value,
            request_reason=reason,
            requested_by=requested_by,
            requested_via_credential_id=requested_via_credential_id,
            required_approval_count=required,
            current_approval_count=0,
            assigned_approver_ids=list(policy.approver_ids or []),
            priority=policy.priority,
            deadline=deadline,
        )
        db.add(request)

        share.is_active = False
        share.requires_approval = True
        share.approval_status = ShareApprovalState.PENDING
        await db.flush()

        db.add(ApprovalHistory(
            request_id=request.id,
            action=HistoryAction.REQUESTED.value,
            actor_id=requested_by,
            note=reason or f"Matched policy '{policy.name}'",
            timestamp=now,
        ))
        await db.commit()

        logger.info(
            "Opened approval request %s for share %s (policy=%s, required=%d, deadline=%s)",
            request.id, share.id, policy.id, required, deadline.isoformat(),
        )
        if snapshot.notifications_enabled:
            await self._publish(notification_service.build_opened_event(request, share))
        return request

    # ── Deciding ──────────────────────────────────────────────────

    async def decide(
        self,
        db: AsyncSession,
        request_id: str,
        approver: User,
        decision: DecisionType,
        comment: str | None = None,
        now: datetime | None = None,
        snapshot: SettingsSnapshot | None = None,
    ) -> ShareApprovalRequest:
        # a rollback expires every loaded instance, so read the identity up front
        approver_id, approver_role = approver.id, approver.role
        snapshot = snapshot or await settings_service.get_snapshot(db)

        async def attempt() -> tuple[ShareApprovalRequest, ApprovalEvent | None, bool]:
            return await self._decide_once(
                db, request_id, approver_id, approver_role, decision, comment, now or utcnow(),
            )

        request, event, expired = await self._with_retries(db, request_id, "decide", attempt)

        if event is not None and snapshot.notifications_enabled:
            await self._publish(event)
        if expired:
            raise RequestExpiredError(f"Request {request_id} passed its deadline and has expired")
        return request

    async def _decide_once(
        self,
        db: AsyncSession,
        request_id: str,
        approver_id: int,
        approver_role: str,
        decision: DecisionType,
        comment: str | None,
        now: datetime,
    ) -> tuple[ShareApprovalRequest, ApprovalEvent | None, bool]:
        request = await self.get_request(db, request_id)
        if request.is_terminal:
            raise RequestNotPendingError(f"Request {request_id} is already {request.status}")

        if not self.is_eligible(request, approver_id, approver_role):
            raise AuthorizationError(f"User {approver_id} is not an eligible approver for request {request_id}")

        if as_utc(request.deadline) <= now:
            event = await self._close(
                db, request, ApprovalStatus.EXPIRED, None, "Deadline passed before a decision was recorded", now,
            )
            await db.flush()
            return request, event, True

        await self.recorder.record(db, request, approver_id, decision, comment, now)

        event = None
        if decision == DecisionType.REJECT:
            # a single rejection vetoes regardless of prior approvals
            event = await self._close(db, request, ApprovalStatus.REJECTED, approver_id, comment, now)
        else:
            request.current_approval_count += 1
            if request.current_approval_count >= request.required_approval_count:
                event = await self._close(db, request, ApprovalStatus.APPROVED, approver_id, comment, now)

        await db.flush()
        return request, event, False

    # ── Expiry ────────────────────────────────────────────────────

    async def expire(
        self,
        db: AsyncSession,
        request_id: str,
        now: datetime | None = None,
        snapshot: SettingsSnapshot | None = None,
    ) -> ShareApprovalRequest:
        """Expire one overdue Pending request and commit.

        Raises ``RequestNotPendingError`` when the request already reached a
        terminal state, including when a concurrent decision wins the race.
        """
        now = now or utcnow()
        snapshot = snapshot or await settings_service.get_snapshot(db)

        async def attempt() -> tuple[ShareApprovalRequest, ApprovalEvent]:
            request = await self.get_request(db, request_id)
            if request.is_terminal:
                raise RequestNotPendingError(f"Request {request_id} is already {request.status}")
            if as_utc(request.deadline) > now:
                raise ConflictError(f"Request {request_id} has not reached its deadline")
            event = await self._close(db, request, ApprovalStatus.EXPIRED, None, "Approval deadline passed", now)
            await db.flush()
            return request, event

        request, event = await self._with_retries(db, request_id, "expire", attempt)
        if snapshot.notifications_enabled:
            await self._publish(event)
        return request

    async def process_expired(self, db: AsyncSession, now: datetime | None = None, batch_size: int | None = None):
        from sharegate.workflow.sweeper import expiration_sweeper

        return await expiration_sweeper.run(db, now=now, batch_size=batch_size)

    # ── Terminal transition ───────────────────────────────────────

    async def _close(
        self,
        db: AsyncSession,
        request: ShareApprovalRequest,
        status: ApprovalStatus,
        actor_id: int | None,
        note: str | None,
        now: datetime,
    ) -> ApprovalEvent:
        if request.is_terminal:
            raise RequestNotPendingError(f"Request {request.id} is already {request.status}")

        request.status = status.value
        request.processed_at = now
        request.final_comment = note

        db.add(ApprovalHistory(
            request_id=request.id,
            action=HistoryAction(status.value).value,
            actor_id=actor_id,
            note=note,
            timestamp=now,
        ))

        share = (
            await db.execute(
                select(DocumentShare)
                .where(DocumentShare.id == request.share_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if share is not None:
            share.approval_status = status.value
            share.is_active = status == ApprovalStatus.APPROVED

        logger.info("Request %s -> %s (actor=%s)", request.id, status.value, actor_id or "system")
        return notification_service.build_decision_event(request, share, actor_id)

    # ── Helpers ───────────────────────────────────────────────────

    async def get_request(self, db: AsyncSession, request_id: str) -> ShareApprovalRequest:
        result = await db.execute(
            select(ShareApprovalRequest)
            .where(
                ShareApprovalRequest.id == request_id,
                ShareApprovalRequest.is_deleted.is_(False),
            )
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundError(f"Approval request {request_id} not found")
        return request

    def is_eligible(self, request: ShareApprovalRequest, user_id: int, role: str) -> bool:
        """Explicit approver list when present, otherwise anyone with Approval.Process."""
        if request.assigned_approver_ids:
            return user_id in request.assigned_approver_ids
        return has_permission(role, Permission.APPROVAL_PROCESS)

    async def can_user_approve(
        self,
        db: AsyncSession,
        request: ShareApprovalRequest,
        user: User,
        now: datetime | None = None,
    ) -> bool:
        now = now or utcnow()
        if request.is_terminal or as_utc(request.deadline) <= now:
            return False
        if not self.is_eligible(request, user.id, user.role):
            return False
        voted = await db.execute(
            select(ApprovalDecision.id).where(
                ApprovalDecision.request_id == request.id,
                ApprovalDecision.approver_id == user.id,
            )
        )
        return voted.scalar_one_or_none() is None

    async def _with_retries(
        self,
        db: AsyncSession,
        request_id: str,
        operation: str,
        attempt: Callable[[], Awaitable[T]],
    ) -> T:
        max_attempts = max(1, app_settings.approval_decide_max_retries)
        for attempt_no in range(1, max_attempts + 1):
            try:
                result = await attempt()
                await db.commit()
                return result
            except StaleDataError:
                await db.rollback()
                logger.warning(
                    "Stale version on request %s during %s (attempt %d/%d)",
                    request_id, operation, attempt_no, max_attempts,
                )
                current = await self.get_request(db, request_id)
                if current.is_terminal:
                    raise RequestNotPendingError(
                        f"Request {request_id} was concurrently moved to {current.status}"
                    ) from None
            except Exception:
                await db.rollback()
                raise
        raise ConcurrencyConflictError(f"Request {request_id} kept changing during {operation}; retry later")

    async def _publish(self, event: ApprovalEvent) -> None:
        publisher = self.publisher or notification_service.get_publisher()
        try:
            await publisher.publish(event)
        except Exception:
            # the transition is already committed; delivery is best effort
            logger.exception("Failed to publish %s for request %s", event.event_type, event.request_id)


workflow_engine = ApprovalWorkflowEngine()
