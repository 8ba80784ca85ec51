import asyncio
from datetime import timedelta

from celery import Celery

from sharegate.core.config import settings

celery_app = Celery("sharegate", broker=settings.redis_url, backend=settings.redis_url)

celery_app.conf.beat_schedule = {
    "process-expired-approvals": {
        "task": "sharegate.tasks.process_expired_approvals",
        "schedule": timedelta(minutes=settings.approval_sweep_interval_minutes),
    },
}


def _run_async(coro):
    """Helper to run async code inside sync Celery tasks."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="sharegate.tasks.health")
def health_task() -> str:
    return "worker-ok"


@celery_app.task(name="sharegate.tasks.process_expired_approvals")
def task_process_expired_approvals() -> dict:
    """Expire every overdue Pending approval request."""

    async def _do():
        from sharegate.core.database import AsyncSessionLocal, engine
        from sharegate.utils.logging import configure_logging
        from sharegate.workflow.sweeper import expiration_sweeper

        configure_logging()
        try:
            async with AsyncSessionLocal() as db:
                report = await expiration_sweeper.run(db)
            return report.model_dump()
        finally:
            # pooled connections are bound to this task's event loop
            await engine.dispose()

    return _run_async(_do())
