from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.database import get_db
from sharegate.core.exceptions import AuthorizationError
from sharegate.core.rbac import Permission, require_permission
from sharegate.core.security import get_current_credential
from sharegate.models.credential import Credential
from sharegate.models.user import User
from sharegate.schemas.share import ShareCreate, ShareRead, ShareSubmissionResult
from sharegate.services import notification_service, share_service

router = APIRouter(tags=["shares"])


def _submission(share, result, request) -> ShareSubmissionResult:
    return ShareSubmissionResult(
        share=ShareRead.model_validate(share),
        requires_approval=result.requires_approval,
        policy_id=result.policy.id,
        policy_name=result.policy.name,
        reason=result.reason,
        approval_request_id=request.id if request else None,
        share_url=notification_service.share_url(share) if share.is_active else None,
    )


@router.post("/shares", response_model=ShareSubmissionResult, status_code=201)
async def create_share(
    body: ShareCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_permission(Permission.SHARE_CREATE)),
):
    share, result, request = await share_service.submit_share(db, body.document_id, user, reason=body.reason)
    return _submission(share, result, request)


@router.post("/credential/shares", response_model=ShareSubmissionResult, status_code=201)
async def create_share_with_credential(
    body: ShareCreate,
    db: AsyncSession = Depends(get_db),
    credential: Credential = Depends(get_current_credential),
):
    owner = await db.get(User, credential.user_id)
    if owner is None or not owner.is_active:
        raise AuthorizationError(f"Credential {credential.id} has no active owner")
    share, result, request = await share_service.submit_share(
        db, body.document_id, owner, credential=credential, reason=body.reason,
    )
    return _submission(share, result, request)


@router.get("/shares/{share_id}", response_model=ShareRead)
async def get_share(
    share_id: str,
    db: AsyncSession = Depends(get_db),
    _user: User = Depends(require_permission(Permission.APPROVAL_READ)),
):
    return await share_service.get_share(db, share_id)
