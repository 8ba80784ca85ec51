from sharegate.models.base import Base, SoftDeleteMixin, TimestampMixin
from sharegate.models.user import GroupMembership, User
from sharegate.models.storage import StorageBucket, StorageProvider
from sharegate.models.permission import (
    BucketPermission,
    CredentialBucketPermission,
    PermissionLevel,
    SubjectType,
)
from sharegate.models.credential import Credential
from sharegate.models.category import Category
from sharegate.models.document import Document, DocumentShare, ShareApprovalState
from sharegate.models.approval import (
    ApprovalDecision,
    ApprovalHistory,
    ApprovalPolicy,
    ApprovalSettings,
    ApprovalStatus,
    DecisionType,
    HistoryAction,
    ShareApprovalRequest,
)

__all__ = [
    "Base", "TimestampMixin", "SoftDeleteMixin",
    "User", "GroupMembership",
    "StorageProvider", "StorageBucket",
    "BucketPermission", "CredentialBucketPermission", "PermissionLevel", "SubjectType",
    "Credential", "Category",
    "Document", "DocumentShare", "ShareApprovalState",
    "ApprovalPolicy", "ApprovalSettings", "ShareApprovalRequest",
    "ApprovalDecision", "ApprovalHistory",
    "ApprovalStatus", "DecisionType", "HistoryAction",
]
