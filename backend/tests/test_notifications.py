"""Tests for notification publishers and the Celery wiring."""

from datetime import UTC, datetime

import pytest

from sharegate.core.config import settings
from sharegate.services import notification_service
from sharegate.services.notification_service import (
    ApprovalDecisionMade,
    CeleryNotificationPublisher,
    LoggingNotificationPublisher,
)
from sharegate.worker import celery_app
from sharegate.workflow.engine import ApprovalWorkflowEngine


def _event() -> ApprovalDecisionMade:
    now = datetime(2030, 1, 1, tzinfo=UTC)
    return ApprovalDecisionMade(
        request_id="r-1",
        share_id="s-1",
        requested_by=1,
        status="Approved",
        decided_by=2,
        processed_at=now,
        expires_at=now,
    )


def test_publisher_follows_configured_backend(monkeypatch) -> None:
    monkeypatch.setattr(settings, "notification_backend", "log")
    assert isinstance(notification_service.get_publisher(), LoggingNotificationPublisher)
    monkeypatch.setattr(settings, "notification_backend", "celery")
    assert isinstance(notification_service.get_publisher(), CeleryNotificationPublisher)


@pytest.mark.asyncio
async def test_celery_publisher_enqueues_named_task(monkeypatch) -> None:
    sent = []
    monkeypatch.setattr(celery_app, "send_task", lambda name, kwargs: sent.append((name, kwargs)))

    await CeleryNotificationPublisher(task_name="notifications.deliver").publish(_event())

    assert len(sent) == 1
    name, kwargs = sent[0]
    assert name == "notifications.deliver"
    assert kwargs["event"]["status"] == "Approved"
    assert kwargs["event"]["event_type"] == "approval_decision_made"


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(caplog) -> None:
    class BrokenPublisher(LoggingNotificationPublisher):
        async def publish(self, event) -> None:
            raise ConnectionError("broker down")

    engine = ApprovalWorkflowEngine(publisher=BrokenPublisher())
    await engine._publish(_event())
    assert "Failed to publish approval_decision_made" in caplog.text


def test_sweep_is_scheduled() -> None:
    entry = celery_app.conf.beat_schedule["process-expired-approvals"]
    assert entry["task"] == "sharegate.tasks.process_expired_approvals"
    assert entry["schedule"].total_seconds() == settings.approval_sweep_interval_minutes * 60
