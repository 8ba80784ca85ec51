from datetime import datetime

from pydantic import BaseModel, Field


class SettingsSnapshot(BaseModel):
    """Immutable view of one settings version, passed into matcher and engine calls."""

    version: int
    force_approval_for_all: bool
    force_all_enabled_by: int | None = None
    force_all_enabled_at: datetime | None = None
    force_all_reason: str | None = None
    force_approval_for_large_files: bool
    large_file_threshold_bytes: int
    default_expiration_days: int
    default_required_approvals: int
    notifications_enabled: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True, "frozen": True}


class SettingsUpdate(BaseModel):
    force_approval_for_large_files: bool | None = None
    large_file_threshold_bytes: int | None = Field(default=None, gt=0)
    default_expiration_days: int | None = Field(default=None, ge=1, le=365)
    default_required_approvals: int | None = Field(default=None, ge=1, le=50)
    notifications_enabled: bool | None = None


class ForceApprovalRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class SettingsRead(SettingsSnapshot):
    id: int
    created_by: int | None = None
