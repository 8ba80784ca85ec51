"""Document share submission: gate every new share through the policy matcher."""

import secrets
from pathlib import PurePosixPath

from sqlalchemy.ext.asyncio import AsyncSession

from sharegate.core.exceptions import AuthorizationError, NotFoundError
from sharegate.models.approval import ShareApprovalRequest
from sharegate.models.credential import Credential
from sharegate.models.document import Document, DocumentShare, ShareApprovalState
from sharegate.models.permission import PermissionLevel
from sharegate.models.user import User
from sharegate.permissions.resolver import permission_resolver
from sharegate.services import policy_service, settings_service
from sharegate.utils.logging import get_logger
from sharegate.workflow import matcher
from sharegate.workflow.engine import workflow_engine
from sharegate.workflow.matcher import MatchResult, ShareAttributes

logger = get_logger(__name__)


def file_extension(file_name: str | None) -> str | None:
    if not file_name:
        return None
    suffix = PurePosixPath(file_name).suffix
    return suffix.lstrip(".").lower() or None


def share_attributes(document: Document, user: User, credential: Credential | None = None) -> ShareAttributes:
    return ShareAttributes(
        category_id=document.category_id,
        provider_id=document.storage_provider_id,
        user_id=user.id,
        credential_id=credential.id if credential else None,
        file_size=document.file_size_bytes or 0,
        file_type=file_extension(document.file_name),
    )


async def get_document(db: AsyncSession, document_id: str) -> Document:
    document = await db.get(Document, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")
    return document


async def submit_share(
    db: AsyncSession,
    document_id: str,
    user: User,
    credential: Credential | None = None,
    reason: str | None = None,
) -> tuple[DocumentShare, MatchResult, ShareApprovalRequest | None]:
    """Create a share and either activate it or open an approval request."""
    document = await get_document(db, document_id)

    if credential is not None:
        check = await permission_resolver.check_credential(db, credential, document.bucket_id, PermissionLevel.READ)
    else:
        check = await permission_resolver.check_user(db, user, document.bucket_id, PermissionLevel.READ)
    if not check.allowed:
        raise AuthorizationError(f"Cannot share document {document_id}: {check.reason}")

    share = DocumentShare(
        document=document,
        share_code=secrets.token_urlsafe(16),
        created_by=user.id,
        created_via_credential_id=credential.id if credential else None,
        is_active=False,
    )
    db.add(share)

    snapshot = await settings_service.get_snapshot(db)
    policies = await policy_service.list_matchable_policies(db)
    result = matcher.match(snapshot, policies, share_attributes(document, user, credential))

    if not result.requires_approval:
        share.is_active = True
        share.requires_approval = False
        share.approval_status = ShareApprovalState.NOT_REQUIRED
        await db.flush()
        logger.info("Share %s for document %s activated without approval (%s)", share.id, document.id, result.reason)
        return share, result, None

    request = await workflow_engine.open(
        db,
        share,
        result.policy,
        snapshot,
        requested_by=user.id,
        requested_via_credential_id=credential.id if credential else None,
        reason=reason,
    )
    return share, result, request


async def get_share(db: AsyncSession, share_id: str) -> DocumentShare:
    share = await db.get(DocumentShare, share_id)
    if share is None:
        raise NotFoundError(f"Share {share_id} not found")
    return share
