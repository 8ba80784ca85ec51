from enum import IntEnum, StrEnum

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlalchemy.orm import Mapped, mapped_column

from sharegate.models.base import Base, TimestampMixin


class PermissionLevel(IntEnum):
    NONE = 0
    READ = 1
    READ_WRITE = 2
    ADMIN = 3


class SubjectType(StrEnum):
    USER = "user"
    GROUP = "group"


class PermissionLevelType(TypeDecorator):
    """Stores a PermissionLevel as its integer rank."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PermissionLevel(value)


class BucketPermission(TimestampMixin, Base):
    __tablename__ = "bucket_permissions"
    __table_args__ = (
        UniqueConstraint("bucket_id", "subject_type", "subject_id", name="uq_bucket_permission_subject"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    bucket_id: Mapped[int] = mapped_column(ForeignKey("storage_buckets.id", ondelete="CASCADE"), nullable=False)
    subject_type: Mapped[str] = mapped_column(String(16), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(128), nullable=False)  # user id or group name
    permission: Mapped[PermissionLevel] = mapped_column(PermissionLevelType(), nullable=False)
    granted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)


class CredentialBucketPermission(TimestampMixin, Base):
    __tablename__ = "credential_bucket_permissions"
    __table_args__ = (
        UniqueConstraint("credential_id", "bucket_id", name="uq_credential_bucket_permission"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    credential_id: Mapped[int] = mapped_column(ForeignKey("credentials.id", ondelete="CASCADE"), nullable=False)
    bucket_id: Mapped[int] = mapped_column(ForeignKey("storage_buckets.id", ondelete="CASCADE"), nullable=False)
    permission: Mapped[PermissionLevel] = mapped_column(PermissionLevelType(), nullable=False)
    granted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
