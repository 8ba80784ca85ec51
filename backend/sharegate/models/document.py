import uuid

from sqlalchemy import BigInteger, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharegate.models.base import Base, TimestampMixin


def _uuid() -> str:
    return str(uuid.uuid4())


class ShareApprovalState:
    NOT_REQUIRED = "NotRequired"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class Document(TimestampMixin, Base):
    """Document metadata; the bytes live in the storage backend."""

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    bucket_id: Mapped[int] = mapped_column(ForeignKey("storage_buckets.id"), nullable=False)
    storage_provider_id: Mapped[int] = mapped_column(ForeignKey("storage_providers.id"), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)


class DocumentShare(TimestampMixin, Base):
    __tablename__ = "document_shares"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    document_id: Mapped[str] = mapped_column(String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    share_code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_via_credential_id: Mapped[int | None] = mapped_column(ForeignKey("credentials.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    approval_status: Mapped[str] = mapped_column(String(16), default=ShareApprovalState.NOT_REQUIRED)

    document: Mapped["Document"] = relationship(lazy="joined")
