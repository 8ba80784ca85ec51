import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharegate.models.base import Base, SoftDeleteMixin, TimestampMixin
from sharegate.utils.clock import utcnow

FALLBACK_POLICY_NAME = "Global System Policy"


class ApprovalStatus(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class DecisionType(StrEnum):
    APPROVE = "Approve"
    REJECT = "Reject"


class HistoryAction(StrEnum):
    REQUESTED = "Requested"
    DECIDED = "Decided"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


def _uuid() -> str:
    return str(uuid.uuid4())


class ApprovalPolicy(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "approval_policies"
    __table_args__ = (
        # at most one fallback row; the service layer guarantees at least one
        Index(
            "uq_approval_policies_single_system",
            "is_system",
            unique=True,
            postgresql_where=text("is_system"),
            sqlite_where=text("is_system = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=1)
    require_approval: Mapped[bool] = mapped_column(Boolean, default=True)
    approval_timeout_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    required_approval_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    category_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    provider_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    user_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    credential_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    max_file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    approver_ids: Mapped[list[int]] = mapped_column(JSON, default=list)

    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}


class ApprovalSettings(Base):
    """One immutable settings snapshot. Exactly one row has ``is_current``."""

    __tablename__ = "approval_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    version: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    force_approval_for_all: Mapped[bool] = mapped_column(Boolean, default=False)
    force_all_enabled_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    force_all_enabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    force_all_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    force_approval_for_large_files: Mapped[bool] = mapped_column(Boolean, default=True)
    large_file_threshold_bytes: Mapped[int] = mapped_column(BigInteger, default=100 * 1024 * 1024)

    default_expiration_days: Mapped[int] = mapped_column(Integer, default=7)
    default_required_approvals: Mapped[int] = mapped_column(Integer, default=1)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    retired_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class ShareApprovalRequest(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "share_approval_requests"
    __table_args__ = (
        Index("ix_share_approval_requests_status_deadline", "status", "deadline"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    share_id: Mapped[str] = mapped_column(String(36), ForeignKey("document_shares.id", ondelete="CASCADE"), nullable=False)
    policy_id: Mapped[int] = mapped_column(ForeignKey("approval_policies.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=ApprovalStatus.PENDING, nullable=False)
    request_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    requested_via_credential_id: Mapped[int | None] = mapped_column(ForeignKey("credentials.id"), nullable=True)
    required_approval_count: Mapped[int] = mapped_column(Integer, nullable=False)
    current_approval_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    assigned_approver_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    priority: Mapped[int] = mapped_column(Integer, default=1)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    policy: Mapped["ApprovalPolicy"] = relationship(lazy="joined")

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status != ApprovalStatus.PENDING


class ApprovalDecision(Base):
    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("request_id", "approver_id", name="uq_approval_decision_request_approver"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("share_approval_requests.id", ondelete="CASCADE"), nullable=False
    )
    approver_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    decision: Mapped[str] = mapped_column(String(16), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ApprovalHistory(Base):
    """Append-only audit trail; rows are never updated or deleted."""

    __tablename__ = "approval_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("share_approval_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)  # None = system
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
