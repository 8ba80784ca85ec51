"""Approval notification events and their hand-off to the delivery collaborator.

Delivery itself (email, chat, ...) happens elsewhere. The publisher either logs
the event or enqueues it as a Celery task named by
``settings.notification_task_name``.
"""

from datetime import datetime

from pydantic import BaseModel

from sharegate.core.config import settings
from sharegate.models.approval import ShareApprovalRequest
from sharegate.models.document import DocumentShare
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)


class ShareApprovalRequestOpened(BaseModel):
    event_type: str = "share_approval_request_opened"
    request_id: str
    share_id: str
    document_id: str | None = None
    document_name: str | None = None
    requested_by: int
    policy_id: int
    required_approvals: int
    assigned_approver_ids: list[int] = []
    reason: str | None = None
    expires_at: datetime
    share_url: str | None = None


class ApprovalDecisionMade(BaseModel):
    event_type: str = "approval_decision_made"
    request_id: str
    share_id: str
    document_id: str | None = None
    document_name: str | None = None
    requested_by: int
    status: str
    decided_by: int | None = None  # None = system (expiry)
    comment: str | None = None
    processed_at: datetime
    expires_at: datetime
    share_url: str | None = None


ApprovalEvent = ShareApprovalRequestOpened | ApprovalDecisionMade


def share_url(share: DocumentShare | None) -> str | None:
    if share is None:
        return None
    return f"{settings.public_viewer_base_url.rstrip('/')}/share/{share.share_code}"


def build_opened_event(request: ShareApprovalRequest, share: DocumentShare) -> ShareApprovalRequestOpened:
    document = share.document
    return ShareApprovalRequestOpened(
        request_id=request.id,
        share_id=share.id,
        document_id=document.id if document else None,
        document_name=document.name if document else None,
        requested_by=request.requested_by,
        policy_id=request.policy_id,
        required_approvals=request.required_approval_count,
        assigned_approver_ids=list(request.assigned_approver_ids or []),
        reason=request.request_reason,
        expires_at=request.deadline,
        share_url=share_url(share),
    )


def build_decision_event(
    request: ShareApprovalRequest,
    share: DocumentShare | None,
    decided_by: int | None,
) -> ApprovalDecisionMade:
    document = share.document if share else None
    return ApprovalDecisionMade(
        request_id=request.id,
        share_id=request.share_id,
        document_id=document.id if document else None,
        document_name=document.name if document else None,
        requested_by=request.requested_by,
        status=request.status,
        decided_by=decided_by,
        comment=request.final_comment,
        processed_at=request.processed_at,
        expires_at=request.deadline,
        share_url=share_url(share),
    )


# ── Publishers ────────────────────────────────────────────────────

class NotificationPublisher:
    async def publish(self, event: ApprovalEvent) -> None:
        raise NotImplementedError


class LoggingNotificationPublisher(NotificationPublisher):
    async def publish(self, event: ApprovalEvent) -> None:
        logger.info("Notification %s for request %s: %s", event.event_type, event.request_id, event.model_dump_json())


class CeleryNotificationPublisher(NotificationPublisher):
    def __init__(self, task_name: str | None = None):
        self.task_name = task_name or settings.notification_task_name

    async def publish(self, event: ApprovalEvent) -> None:
        from sharegate.worker import celery_app

        celery_app.send_task(self.task_name, kwargs={"event": event.model_dump(mode="json")})
        logger.debug("Enqueued %s for request %s", event.event_type, event.request_id)


def get_publisher() -> NotificationPublisher:
    if settings.notification_backend == "celery":
        return CeleryNotificationPublisher()
    return LoggingNotificationPublisher()
