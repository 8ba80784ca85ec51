"""Tests for approval policy administration and the fallback policy."""

import pytest

from sharegate.core.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    NotFoundError,
    ProtectedPolicyError,
    ValidationError,
)
from sharegate.models import ApprovalPolicy, DocumentShare
from sharegate.models.approval import FALLBACK_POLICY_NAME
from sharegate.schemas.policy import PolicyCreate, PolicyUpdate
from sharegate.services import policy_service, settings_service
from sharegate.workflow.engine import workflow_engine
from sharegate.workflow.matcher import ShareAttributes


def _create(**kwargs) -> PolicyCreate:
    values = dict(name="Finance", priority=1, category_ids=[1])
    values.update(kwargs)
    return PolicyCreate(**values)


# ── Validation ─────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "kwargs",
    [
        {"category_ids": [0]},
        {"provider_ids": [2, 2]},
        {"file_types": ["pdf", ".PDF"]},
        {"file_types": ["  "]},
        {"max_file_size_bytes": -1},
        {"required_approval_count": 0},
        {"approval_timeout_hours": 0},
        {"priority": 0},
        {"priority": 999},
    ],
)
@pytest.mark.asyncio
async def test_invalid_policies_are_rejected(db, kwargs) -> None:
    with pytest.raises(ValidationError):
        await policy_service.create_policy(db, _create(**kwargs), user_id=None)


@pytest.mark.asyncio
async def test_file_types_are_normalized(db) -> None:
    policy = await policy_service.create_policy(db, _create(file_types=[".PDF", "Docx"]), user_id=None)
    assert policy.file_types == ["pdf", "docx"]
    assert policy.is_system is False


# ── Fallback policy ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fallback_is_created_once(db) -> None:
    first = await policy_service.ensure_fallback_policy(db)
    second = await policy_service.ensure_fallback_policy(db)
    assert first.id == second.id
    assert first.name == FALLBACK_POLICY_NAME
    assert first.priority == 999
    assert first.require_approval is True
    assert first.required_approval_count == 1
    assert first.approval_timeout_hours == 72


@pytest.mark.asyncio
async def test_fallback_is_restored_when_tampered(db) -> None:
    fallback = await policy_service.ensure_fallback_policy(db)
    fallback.is_active = False
    fallback.is_deleted = True
    await db.flush()

    restored = await policy_service.ensure_fallback_policy(db)
    assert restored.id == fallback.id
    assert restored.is_active is True
    assert restored.is_deleted is False


@pytest.mark.asyncio
async def test_fallback_cannot_be_deleted_or_deactivated(db, world) -> None:
    with pytest.raises(ProtectedPolicyError):
        await policy_service.delete_policy(db, world.fallback.id)
    with pytest.raises(ProtectedPolicyError):
        await policy_service.toggle_policy(db, world.fallback.id)
    with pytest.raises(ProtectedPolicyError):
        await policy_service.update_policy(db, world.fallback.id, PolicyUpdate(require_approval=False))
    with pytest.raises(ProtectedPolicyError):
        await policy_service.update_policy(db, world.fallback.id, PolicyUpdate(category_ids=[world.finance.id]))
    with pytest.raises(ProtectedPolicyError):
        await policy_service.update_policy(db, world.fallback.id, PolicyUpdate(priority=5))


@pytest.mark.asyncio
async def test_fallback_vote_count_is_locked_to_one(db, world) -> None:
    with pytest.raises(ProtectedPolicyError):
        await policy_service.update_policy(db, world.fallback.id, PolicyUpdate(required_approval_count=5))
    with pytest.raises(ProtectedPolicyError):
        await policy_service.update_policy(db, world.fallback.id, PolicyUpdate(required_approval_count=None))

    unmatched = await policy_service.test_policy_match(db, ShareAttributes(category_id=world.legal.id))
    assert unmatched.policy.id == world.fallback.id
    assert unmatched.policy.required_approval_count == 1


@pytest.mark.asyncio
async def test_fallback_timeout_is_editable(db, world) -> None:
    updated = await policy_service.update_policy(
        db, world.fallback.id, PolicyUpdate(approval_timeout_hours=24, required_approval_count=1),
    )
    assert updated.approval_timeout_hours == 24
    assert updated.required_approval_count == 1
    assert updated.priority == 999


@pytest.mark.asyncio
async def test_fallback_vote_count_is_restored(db) -> None:
    fallback = await policy_service.ensure_fallback_policy(db)
    fallback.required_approval_count = 4
    await db.flush()

    restored = await policy_service.ensure_fallback_policy(db)
    assert restored.required_approval_count == 1


# ── Lifecycle ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_update_bumps_version_and_checks_expected_version(db, world) -> None:
    policy = await policy_service.create_policy(db, _create(category_ids=[world.finance.id]), user_id=None)
    assert policy.version == 1

    updated = await policy_service.update_policy(db, policy.id, PolicyUpdate(name="Finance v2", version=1))
    assert updated.version == 2

    with pytest.raises(ConcurrencyConflictError):
        await policy_service.update_policy(db, policy.id, PolicyUpdate(name="stale", version=1))


@pytest.mark.asyncio
async def test_clearing_a_filter_with_null(db, world) -> None:
    policy = await policy_service.create_policy(db, _create(category_ids=[world.finance.id]), user_id=None)
    updated = await policy_service.update_policy(db, policy.id, PolicyUpdate(category_ids=None))
    assert updated.category_ids == []


@pytest.mark.asyncio
async def test_toggle_flips_active_flag(db, world) -> None:
    policy = await policy_service.create_policy(db, _create(), user_id=None)
    assert (await policy_service.toggle_policy(db, policy.id)).is_active is False
    assert (await policy_service.toggle_policy(db, policy.id)).is_active is True


@pytest.mark.asyncio
async def test_soft_delete_hides_policy(db, world) -> None:
    policy = await policy_service.create_policy(db, _create(), user_id=None)
    policy_id = policy.id
    await policy_service.delete_policy(db, policy_id)

    with pytest.raises(NotFoundError):
        await policy_service.get_policy(db, policy_id)
    deleted = await db.get(ApprovalPolicy, policy_id)
    assert deleted.is_deleted is True
    assert deleted.deleted_at is not None


@pytest.mark.asyncio
async def test_delete_with_pending_requests_conflicts(db, world) -> None:
    policy = await policy_service.create_policy(db, _create(category_ids=[world.finance.id]), user_id=None)
    share = DocumentShare(document=world.document, share_code="pending-share", created_by=world.requester.id)
    db.add(share)
    snapshot = await settings_service.get_snapshot(db)
    await workflow_engine.open(db, share, policy, snapshot, world.requester.id)

    with pytest.raises(ConflictError):
        await policy_service.delete_policy(db, policy.id)
    assert await policy_service.count_pending_requests(db, policy.id) == 1


@pytest.mark.asyncio
async def test_list_filters_and_pages(db, world) -> None:
    for i in range(5):
        await policy_service.create_policy(db, _create(name=f"Rule {i}", priority=i + 1), user_id=None)
    inactive = await policy_service.create_policy(db, _create(name="Dormant", is_active=False), user_id=None)

    items, total = await policy_service.list_policies(db, name="rule", page=2, page_size=2)
    assert total == 5
    assert [p.name for p in items] == ["Rule 2", "Rule 3"]

    items, total = await policy_service.list_policies(db, is_active=False)
    assert [p.id for p in items] == [inactive.id]
    assert await policy_service.count_active_policies(db) == 6  # five rules plus the fallback


# ── Dry run ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_dry_run_uses_stored_policies_and_settings(db, world) -> None:
    relaxed = await policy_service.create_policy(
        db, _create(name="Legal relaxed", category_ids=[world.legal.id], require_approval=False), user_id=None,
    )

    legal = await policy_service.test_policy_match(db, ShareAttributes(category_id=world.legal.id, file_size=10))
    finance = await policy_service.test_policy_match(db, ShareAttributes(category_id=world.finance.id))
    assert legal.policy.id == relaxed.id
    assert legal.requires_approval is False
    assert finance.policy.id == world.fallback.id
