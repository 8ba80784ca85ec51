from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from sharegate.models.base import Base, TimestampMixin
from sharegate.models.permission import PermissionLevel, PermissionLevelType


class Credential(TimestampMixin, Base):
    """Machine credential (API key) owned by a user."""

    __tablename__ = "credentials"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_permission: Mapped[PermissionLevel] = mapped_column(PermissionLevelType(), default=PermissionLevel.READ)
    # empty list = every provider allowed
    allowed_provider_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
