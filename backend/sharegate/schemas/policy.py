from datetime import datetime

from pydantic import BaseModel, Field


class PolicyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    is_active: bool = True
    priority: int = 1
    require_approval: bool = True
    approval_timeout_hours: int | None = None
    required_approval_count: int | None = None
    category_ids: list[int] = []
    provider_ids: list[int] = []
    user_ids: list[int] = []
    credential_ids: list[int] = []
    max_file_size_bytes: int | None = None
    file_types: list[str] = []
    approver_ids: list[int] = []


class PolicyUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    is_active: bool | None = None
    priority: int | None = None
    require_approval: bool | None = None
    approval_timeout_hours: int | None = None
    required_approval_count: int | None = None
    category_ids: list[int] | None = None
    provider_ids: list[int] | None = None
    user_ids: list[int] | None = None
    credential_ids: list[int] | None = None
    max_file_size_bytes: int | None = None
    file_types: list[str] | None = None
    approver_ids: list[int] | None = None
    # optimistic check against the version the client last read
    version: int | None = None


class PolicyRead(BaseModel):
    id: int
    name: str
    description: str
    is_active: bool
    is_system: bool
    priority: int
    require_approval: bool
    approval_timeout_hours: int | None
    required_approval_count: int | None
    category_ids: list[int]
    provider_ids: list[int]
    user_ids: list[int]
    credential_ids: list[int]
    max_file_size_bytes: int | None
    file_types: list[str]
    approver_ids: list[int]
    created_by: int | None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PolicyTestRequest(BaseModel):
    category_id: int | None = None
    provider_id: int | None = None
    user_id: int | None = None
    credential_id: int | None = None
    file_size: int = Field(default=0, ge=0)
    file_type: str | None = None


class PolicyTestResponse(BaseModel):
    requires_approval: bool
    policy_id: int
    policy_name: str
    reason: str
    forced: bool
