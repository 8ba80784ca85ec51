from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from sharegate.models.permission import PermissionLevel, SubjectType


class DenialReason(StrEnum):
    NO_GRANT = "no_grant"
    INSUFFICIENT_LEVEL = "insufficient_level"
    PROVIDER_NOT_ALLOWED = "provider_not_allowed"
    CREDENTIAL_INACTIVE = "credential_inactive"
    CREDENTIAL_EXPIRED = "credential_expired"
    BUCKET_NOT_FOUND = "bucket_not_found"


class PermissionCheckResult(BaseModel):
    allowed: bool
    reason: DenialReason | None = None
    required: PermissionLevel
    held: PermissionLevel


class BucketPermissionCreate(BaseModel):
    bucket_id: int
    subject_type: SubjectType
    subject_id: str = Field(min_length=1, max_length=128)
    permission: PermissionLevel


class BucketPermissionRead(BaseModel):
    id: int
    bucket_id: int
    subject_type: SubjectType
    subject_id: str
    permission: PermissionLevel
    granted_by: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class CredentialPermissionCreate(BaseModel):
    credential_id: int
    bucket_id: int
    permission: PermissionLevel


class CredentialPermissionRead(BaseModel):
    id: int
    credential_id: int
    bucket_id: int
    permission: PermissionLevel
    granted_by: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class GroupMembershipCreate(BaseModel):
    user_id: int
    group_name: str = Field(min_length=1, max_length=128)
