"""Tests for the approval workflow engine and decision recorder."""

import os
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from sharegate.core.exceptions import (
    AuthorizationError,
    ConcurrencyConflictError,
    DuplicateDecisionError,
    NotFoundError,
    RequestExpiredError,
    RequestNotPendingError,
)
from sharegate.models import (
    ApprovalDecision,
    ApprovalHistory,
    ApprovalPolicy,
    DocumentShare,
    ShareApprovalRequest,
)
from sharegate.models.approval import ApprovalStatus, DecisionType
from sharegate.services import settings_service
from sharegate.services.notification_service import ApprovalDecisionMade, ShareApprovalRequestOpened
from sharegate.workflow.engine import ApprovalWorkflowEngine, workflow_engine
from sharegate.workflow.recorder import DecisionRecorder

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)

# A failed decision rolls the session back, which expires every loaded
# instance; tests capture plain ids before triggering one.


async def _finance_policy(db, world, **kwargs) -> ApprovalPolicy:
    values = dict(
        name="Finance two-person rule",
        description="",
        is_active=True,
        priority=1,
        require_approval=True,
        approval_timeout_hours=24,
        required_approval_count=2,
        category_ids=[world.finance.id],
        provider_ids=[],
        user_ids=[],
        credential_ids=[],
        file_types=[],
        approver_ids=[],
    )
    values.update(kwargs)
    policy = ApprovalPolicy(**values)
    db.add(policy)
    await db.flush()
    return policy


async def _open(db, world, policy, now=NOW) -> ShareApprovalRequest:
    share = DocumentShare(
        document=world.document,
        share_code=f"code-{policy.id}-{now.timestamp()}",
        created_by=world.requester.id,
    )
    db.add(share)
    await db.flush()
    snapshot = await settings_service.get_snapshot(db)
    return await workflow_engine.open(db, share, policy, snapshot, world.requester.id, now=now)


async def _history_actions(db, request_id: str) -> list[str]:
    result = await db.execute(
        select(ApprovalHistory.action)
        .where(ApprovalHistory.request_id == request_id)
        .order_by(ApprovalHistory.timestamp, ApprovalHistory.id)
    )
    return list(result.scalars().all())


async def _decision_count(db, request_id: str) -> int:
    result = await db.execute(
        select(func.count(ApprovalDecision.id)).where(ApprovalDecision.request_id == request_id)
    )
    return result.scalar_one()


# ── Opening ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_open_uses_policy_count_and_timeout(db, world, publisher) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)

    assert request.status == ApprovalStatus.PENDING
    assert request.required_approval_count == 2
    assert request.current_approval_count == 0
    assert request.deadline == NOW + timedelta(hours=24)
    assert await _history_actions(db, request.id) == ["Requested"]

    share = await db.get(DocumentShare, request.share_id)
    assert share.is_active is False
    assert share.approval_status == "Pending"

    assert len(publisher.events) == 1
    event = publisher.events[0]
    assert isinstance(event, ShareApprovalRequestOpened)
    assert event.request_id == request.id
    assert event.document_name == "Q3 report"
    assert event.share_url.endswith(f"/share/{share.share_code}")


@pytest.mark.asyncio
async def test_open_falls_back_to_settings_defaults(db, world) -> None:
    policy = await _finance_policy(db, world, approval_timeout_hours=None, required_approval_count=None)
    request = await _open(db, world, policy)
    assert request.required_approval_count == 1
    assert request.deadline == NOW + timedelta(days=7)


@pytest.mark.asyncio
async def test_open_copies_explicit_approvers(db, world) -> None:
    policy = await _finance_policy(db, world, approver_ids=[world.approver_a.id])
    request = await _open(db, world, policy)
    assert request.assigned_approver_ids == [world.approver_a.id]
    assert request.priority == 1


# ── Scenarios ──────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_two_approvals_reach_threshold(db, world, publisher) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)

    after_first = await workflow_engine.decide(
        db, request.id, world.approver_a, DecisionType.APPROVE, now=NOW + timedelta(hours=1),
    )
    assert after_first.status == ApprovalStatus.PENDING
    assert after_first.current_approval_count == 1

    after_second = await workflow_engine.decide(
        db, request.id, world.approver_b, DecisionType.APPROVE, "ok", now=NOW + timedelta(hours=2),
    )
    assert after_second.status == ApprovalStatus.APPROVED
    assert after_second.current_approval_count == 2
    assert after_second.processed_at is not None

    assert await _history_actions(db, request.id) == ["Requested", "Decided", "Decided", "Approved"]

    share = await db.get(DocumentShare, request.share_id)
    assert share.is_active is True
    assert share.approval_status == "Approved"

    terminal = [e for e in publisher.events if isinstance(e, ApprovalDecisionMade)]
    assert len(terminal) == 1
    assert terminal[0].status == "Approved"
    assert terminal[0].decided_by == world.approver_b.id


@pytest.mark.asyncio
async def test_single_reject_vetoes(db, world, publisher) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)

    result = await workflow_engine.decide(
        db, request.id, world.approver_a, DecisionType.REJECT, "missing sign-off", now=NOW + timedelta(hours=1),
    )
    assert result.status == ApprovalStatus.REJECTED
    assert result.current_approval_count == 0
    assert result.final_comment == "missing sign-off"
    assert await _history_actions(db, request.id) == ["Requested", "Decided", "Rejected"]

    share = await db.get(DocumentShare, request.share_id)
    assert share.is_active is False
    assert share.approval_status == "Rejected"
    assert publisher.events[-1].status == "Rejected"


@pytest.mark.asyncio
async def test_reject_after_approve_still_vetoes(db, world) -> None:
    policy = await _finance_policy(db, world, required_approval_count=3)
    request = await _open(db, world, policy)
    await workflow_engine.decide(db, request.id, world.approver_a, DecisionType.APPROVE, now=NOW)
    await workflow_engine.decide(db, request.id, world.manager, DecisionType.APPROVE, now=NOW)
    result = await workflow_engine.decide(db, request.id, world.approver_b, DecisionType.REJECT, now=NOW)
    assert result.status == ApprovalStatus.REJECTED
    assert result.current_approval_count == 2


@pytest.mark.asyncio
async def test_threshold_not_reached_early(db, world) -> None:
    policy = await _finance_policy(db, world, required_approval_count=3)
    request = await _open(db, world, policy)
    for approver in (world.approver_a, world.approver_b):
        result = await workflow_engine.decide(db, request.id, approver, DecisionType.APPROVE, now=NOW)
        assert result.status == ApprovalStatus.PENDING
    result = await workflow_engine.decide(db, request.id, world.manager, DecisionType.APPROVE, now=NOW)
    assert result.status == ApprovalStatus.APPROVED


# ── Conflicts and authorization ────────────────────────────────────────


@pytest.mark.asyncio
async def test_duplicate_vote_rejected_and_counter_unchanged(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id
    await workflow_engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)

    with pytest.raises(DuplicateDecisionError):
        await workflow_engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)

    current = await workflow_engine.get_request(db, request_id)
    assert current.current_approval_count == 1
    assert current.status == ApprovalStatus.PENDING
    assert await _decision_count(db, request_id) == 1


@pytest.mark.asyncio
async def test_unique_constraint_guards_when_precheck_is_bypassed(db, world) -> None:
    class NoPrecheckRecorder(DecisionRecorder):
        async def record(self, db, request, approver_id, decision, comment, now):
            db.add(ApprovalDecision(
                request_id=request.id, approver_id=approver_id, decision=decision.value, decided_at=now,
            ))
            # keep the first row pending so the pre-check cannot see it
            with db.no_autoflush:
                return await super().record(db, request, approver_id, decision, comment, now)

    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id
    engine = ApprovalWorkflowEngine(recorder=NoPrecheckRecorder())

    with pytest.raises(DuplicateDecisionError) as exc_info:
        await engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)
    assert exc_info.value.__cause__ is not None
    assert await _decision_count(db, request_id) == 0


@pytest.mark.asyncio
async def test_decide_on_terminal_request_conflicts(db, world) -> None:
    policy = await _finance_policy(db, world, required_approval_count=1)
    request = await _open(db, world, policy)
    request_id = request.id
    await workflow_engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)

    with pytest.raises(RequestNotPendingError):
        await workflow_engine.decide(db, request_id, world.approver_b, DecisionType.REJECT, now=NOW)
    current = await workflow_engine.get_request(db, request_id)
    assert current.status == ApprovalStatus.APPROVED


@pytest.mark.asyncio
async def test_approver_outside_explicit_list_is_denied(db, world) -> None:
    policy = await _finance_policy(db, world, approver_ids=[world.approver_a.id])
    request = await _open(db, world, policy)
    request_id = request.id

    with pytest.raises(AuthorizationError):
        await workflow_engine.decide(db, request_id, world.approver_b, DecisionType.APPROVE, now=NOW)
    assert await _decision_count(db, request_id) == 0


@pytest.mark.asyncio
async def test_explicit_list_admits_user_without_process_permission(db, world) -> None:
    policy = await _finance_policy(db, world, approver_ids=[world.viewer.id], required_approval_count=1)
    request = await _open(db, world, policy)
    result = await workflow_engine.decide(db, request.id, world.viewer, DecisionType.APPROVE, now=NOW)
    assert result.status == ApprovalStatus.APPROVED


@pytest.mark.asyncio
async def test_user_without_process_permission_is_denied(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    with pytest.raises(AuthorizationError):
        await workflow_engine.decide(db, request.id, world.requester, DecisionType.APPROVE, now=NOW)


@pytest.mark.asyncio
async def test_unknown_request(db, world) -> None:
    with pytest.raises(NotFoundError):
        await workflow_engine.decide(db, "missing", world.approver_a, DecisionType.APPROVE)


@pytest.mark.asyncio
async def test_decide_after_deadline_expires_request(db, world, publisher) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id

    with pytest.raises(RequestExpiredError):
        await workflow_engine.decide(
            db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW + timedelta(hours=25),
        )

    current = await workflow_engine.get_request(db, request_id)
    assert current.status == ApprovalStatus.EXPIRED
    assert current.current_approval_count == 0
    assert await _decision_count(db, request_id) == 0
    assert await _history_actions(db, request_id) == ["Requested", "Expired"]
    assert publisher.events[-1].status == "Expired"


@pytest.mark.asyncio
async def test_ineligible_caller_after_deadline_leaves_request_pending(db, world, publisher) -> None:
    policy = await _finance_policy(db, world, approver_ids=[world.approver_a.id])
    request = await _open(db, world, policy)
    request_id = request.id
    events_before = len(publisher.events)

    with pytest.raises(AuthorizationError):
        await workflow_engine.decide(
            db, request_id, world.approver_b, DecisionType.APPROVE, now=NOW + timedelta(hours=25),
        )

    current = await workflow_engine.get_request(db, request_id)
    assert current.status == ApprovalStatus.PENDING
    assert await _history_actions(db, request_id) == ["Requested"]
    assert len(publisher.events) == events_before


# ── Optimistic concurrency ─────────────────────────────────────────────


class BumpingRecorder(DecisionRecorder):
    """Simulates a concurrent writer by bumping the row version behind the session's back."""

    def __init__(self, bumps: int):
        self.bumps = bumps

    async def record(self, db, request, approver_id, decision, comment, now):
        if self.bumps > 0:
            self.bumps -= 1
            await db.execute(
                update(ShareApprovalRequest)
                .where(ShareApprovalRequest.id == request.id)
                .values(version=ShareApprovalRequest.version + 1)
                .execution_options(synchronize_session=False)
            )
        return await super().record(db, request, approver_id, decision, comment, now)


async def _close_in_other_session(request_id: str) -> None:
    """Commit an Expired transition from a separate connection."""
    other = create_async_engine(os.environ["DATABASE_URL"], poolclass=NullPool)
    table = ShareApprovalRequest.__table__
    try:
        async with other.begin() as conn:
            await conn.execute(
                table.update()
                .where(table.c.id == request_id)
                .values(status=ApprovalStatus.EXPIRED.value, version=table.c.version + 1)
            )
    finally:
        await other.dispose()


@pytest.mark.asyncio
async def test_stale_version_is_retried(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id
    engine = ApprovalWorkflowEngine(recorder=BumpingRecorder(bumps=1))

    result = await engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)
    assert result.current_approval_count == 1
    assert await _decision_count(db, request_id) == 1
    assert await _history_actions(db, request_id) == ["Requested", "Decided"]


@pytest.mark.asyncio
async def test_persistent_version_conflict_gives_up(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id
    engine = ApprovalWorkflowEngine(recorder=BumpingRecorder(bumps=100))

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)
    assert exc_info.value.retryable is True

    current = await workflow_engine.get_request(db, request_id)
    assert current.current_approval_count == 0
    assert await _decision_count(db, request_id) == 0


@pytest.mark.asyncio
async def test_loser_of_race_sees_terminal_state(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)
    request_id = request.id

    class RacingRecorder(DecisionRecorder):
        async def record(self, db, request, approver_id, decision, comment, now):
            await _close_in_other_session(request_id)
            return await super().record(db, request, approver_id, decision, comment, now)

    engine = ApprovalWorkflowEngine(recorder=RacingRecorder())
    with pytest.raises(RequestNotPendingError):
        await engine.decide(db, request_id, world.approver_a, DecisionType.APPROVE, now=NOW)

    current = await workflow_engine.get_request(db, request_id)
    assert current.status == ApprovalStatus.EXPIRED
    assert await _decision_count(db, request_id) == 0


@pytest.mark.asyncio
async def test_can_user_approve(db, world) -> None:
    policy = await _finance_policy(db, world)
    request = await _open(db, world, policy)

    assert await workflow_engine.can_user_approve(db, request, world.approver_a, now=NOW) is True
    assert await workflow_engine.can_user_approve(db, request, world.requester, now=NOW) is False
    assert await workflow_engine.can_user_approve(
        db, request, world.approver_a, now=NOW + timedelta(days=2),
    ) is False

    await workflow_engine.decide(db, request.id, world.approver_a, DecisionType.APPROVE, now=NOW)
    request = await workflow_engine.get_request(db, request.id)
    assert await workflow_engine.can_user_approve(db, request, world.approver_a, now=NOW) is False
    assert await workflow_engine.can_user_approve(db, request, world.approver_b, now=NOW) is True
