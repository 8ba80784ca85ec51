from datetime import datetime

from pydantic import BaseModel, Field

from sharegate.models.approval import DecisionType


class ApprovalRequestRead(BaseModel):
    id: str
    share_id: str
    policy_id: int
    status: str
    request_reason: str | None
    final_comment: str | None
    requested_by: int
    requested_via_credential_id: int | None
    required_approval_count: int
    current_approval_count: int
    assigned_approver_ids: list[int]
    priority: int
    deadline: datetime
    processed_at: datetime | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ApprovalRequestDetail(ApprovalRequestRead):
    policy_name: str | None = None
    document_id: str | None = None
    document_name: str | None = None
    share_code: str | None = None
    can_approve: bool = False


class DecisionCreate(BaseModel):
    decision: DecisionType
    comment: str | None = Field(default=None, max_length=2000)


class DecisionRead(BaseModel):
    id: int
    request_id: str
    approver_id: int
    decision: str
    comment: str | None
    decided_at: datetime

    model_config = {"from_attributes": True}


class HistoryRead(BaseModel):
    id: int
    request_id: str
    action: str
    actor_id: int | None
    note: str | None
    timestamp: datetime

    model_config = {"from_attributes": True}


class ApprovalStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    expired: int
    overdue: int
    processed_today: int
    average_processing_hours: float | None
    approval_rate: float
    rejection_rate: float
    active_policies: int


class SweepResult(BaseModel):
    expired: int
    skipped: int
    failed: int
