"""Approval policy selection for a candidate document share.

Selection order:
  1. force-all, or force-large-files with ``file_size >= threshold``
     -> fallback policy, approval required
  2. active, non-deleted policies by (priority, name, id); first policy whose
     every non-empty filter contains the share attribute wins
  3. nothing matched -> fallback policy

The matcher is pure: it reads only its arguments and performs no I/O.
"""

from collections.abc import Iterable

from pydantic import BaseModel

from sharegate.core.exceptions import FallbackPolicyMissingError
from sharegate.models.approval import ApprovalPolicy
from sharegate.schemas.settings import SettingsSnapshot


class ShareAttributes(BaseModel):
    category_id: int | None = None
    provider_id: int | None = None
    user_id: int | None = None
    credential_id: int | None = None
    file_size: int = 0
    file_type: str | None = None

    model_config = {"frozen": True}


class MatchResult(BaseModel):
    requires_approval: bool
    policy: ApprovalPolicy
    reason: str
    forced: bool = False

    model_config = {"arbitrary_types_allowed": True, "frozen": True}


def normalize_file_type(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lstrip(".").lower()


def find_fallback(policies: Iterable[ApprovalPolicy]) -> ApprovalPolicy:
    for policy in policies:
        if policy.is_system and not policy.is_deleted:
            return policy
    raise FallbackPolicyMissingError("No fallback approval policy is configured")


def policy_matches(policy: ApprovalPolicy, attributes: ShareAttributes) -> bool:
    """Every non-empty filter on the policy must contain the share attribute."""
    if policy.category_ids and attributes.category_id not in policy.category_ids:
        return False
    if policy.provider_ids and attributes.provider_id not in policy.provider_ids:
        return False
    if policy.user_ids and attributes.user_id not in policy.user_ids:
        return False
    # a share without an originating credential never satisfies a credential filter
    if policy.credential_ids and (
        attributes.credential_id is None or attributes.credential_id not in policy.credential_ids
    ):
        return False
    if policy.max_file_size_bytes is not None and attributes.file_size > policy.max_file_size_bytes:
        return False
    if policy.file_types:
        allowed = {normalize_file_type(t) for t in policy.file_types}
        if normalize_file_type(attributes.file_type) not in allowed:
            return False
    return True


def ordered_candidates(policies: Iterable[ApprovalPolicy]) -> list[ApprovalPolicy]:
    candidates = [
        p for p in policies
        if p.is_active and not p.is_deleted and not p.is_system
    ]
    return sorted(candidates, key=lambda p: (p.priority, p.name, p.id))


def match(
    settings: SettingsSnapshot,
    policies: Iterable[ApprovalPolicy],
    attributes: ShareAttributes,
) -> MatchResult:
    policies = list(policies)
    fallback = find_fallback(policies)

    if settings.force_approval_for_all:
        return MatchResult(
            requires_approval=True,
            policy=fallback,
            reason="Approval forced for all shares",
            forced=True,
        )

    if settings.force_approval_for_large_files and attributes.file_size >= settings.large_file_threshold_bytes:
        return MatchResult(
            requires_approval=True,
            policy=fallback,
            reason=(
                f"File size {attributes.file_size} bytes reaches the large-file threshold "
                f"of {settings.large_file_threshold_bytes} bytes"
            ),
            forced=True,
        )

    for policy in ordered_candidates(policies):
        if policy_matches(policy, attributes):
            return MatchResult(
                requires_approval=bool(policy.require_approval),
                policy=policy,
                reason=f"Matched policy '{policy.name}' (priority {policy.priority})",
            )

    return MatchResult(
        requires_approval=True,
        policy=fallback,
        reason="No policy matched; using fallback policy",
    )
