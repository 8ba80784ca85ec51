from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from sharegate.models.base import Base, TimestampMixin


class StorageProvider(TimestampMixin, Base):
    __tablename__ = "storage_providers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider_type: Mapped[str] = mapped_column(String(32), nullable=False)  # filesystem | minio | ftp | sftp
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class StorageBucket(TimestampMixin, Base):
    __tablename__ = "storage_buckets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(500), default="")
    provider_id: Mapped[int] = mapped_column(ForeignKey("storage_providers.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
