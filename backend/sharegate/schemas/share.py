from pydantic import BaseModel, Field


class ShareCreate(BaseModel):
    document_id: str
    reason: str | None = Field(default=None, max_length=1000)


class ShareRead(BaseModel):
    id: str
    document_id: str
    share_code: str
    is_active: bool
    requires_approval: bool
    approval_status: str
    created_by: int
    created_via_credential_id: int | None

    model_config = {"from_attributes": True}


class ShareSubmissionResult(BaseModel):
    share: ShareRead
    requires_approval: bool
    policy_id: int
    policy_name: str
    reason: str
    approval_request_id: str | None = None
    share_url: str | None = None
