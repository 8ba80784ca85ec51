"""Shared fixtures for sharegate backend tests."""

import os
from types import SimpleNamespace
from typing import AsyncGenerator

TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from sharegate.core.database import get_db
from sharegate.core.security import create_access_token
from sharegate.main import app
from sharegate.models import (
    Category,
    Document,
    StorageBucket,
    StorageProvider,
    User,
)
from sharegate.models.base import Base
from sharegate.permissions.resolver import permission_resolver
from sharegate.services import policy_service, settings_service
from sharegate.services.notification_service import NotificationPublisher
from sharegate.workflow.engine import workflow_engine

engine_test = create_async_engine(TEST_DB_URL, echo=False, poolclass=NullPool)
TestSession = async_sessionmaker(engine_test, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    permission_resolver.cache.clear()
    yield
    permission_resolver.cache.clear()
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = _override_get_db


class RecordingPublisher(NotificationPublisher):
    def __init__(self):
        self.events = []

    async def publish(self, event) -> None:
        self.events.append(event)


@pytest.fixture(autouse=True)
def publisher():
    recording = RecordingPublisher()
    workflow_engine.publisher = recording
    yield recording
    workflow_engine.publisher = None


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        yield session


def make_token(email: str = "admin@sharegate.io", role: str = "Admin") -> str:
    return create_access_token(subject=email, role=role)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user.email, user.role)}"}


@pytest.fixture
def headers():
    return auth


def _user(email: str, role: str) -> User:
    return User(email=email, full_name=email.split("@")[0], role=role, is_active=True, memberships=[])


@pytest_asyncio.fixture
async def world(db: AsyncSession) -> SimpleNamespace:
    """Users, one provider/bucket, a Finance category, a 500 KB PDF and the fallback policy."""
    admin = _user("admin@sharegate.io", "Admin")
    manager = _user("manager@sharegate.io", "Manager")
    approver_a = _user("alice@sharegate.io", "Approver")
    approver_b = _user("bob@sharegate.io", "Approver")
    requester = _user("rita@sharegate.io", "User")
    viewer = _user("victor@sharegate.io", "Viewer")
    provider = StorageProvider(name="Local disk", provider_type="filesystem", is_active=True)
    other_provider = StorageProvider(name="MinIO", provider_type="minio", is_active=True)
    finance = Category(name="Finance", description="")
    legal = Category(name="Legal", description="")
    db.add_all([admin, manager, approver_a, approver_b, requester, viewer, provider, other_provider, finance, legal])
    await db.flush()

    bucket = StorageBucket(path="finance", description="", provider_id=provider.id, is_active=True)
    other_bucket = StorageBucket(path="archive", description="", provider_id=other_provider.id, is_active=True)
    db.add_all([bucket, other_bucket])
    await db.flush()

    document = Document(
        name="Q3 report",
        file_name="q3-report.pdf",
        file_size_bytes=500 * 1024,
        category_id=finance.id,
        bucket_id=bucket.id,
        storage_provider_id=provider.id,
        created_by=requester.id,
    )
    db.add(document)
    fallback = await policy_service.ensure_fallback_policy(db)
    await settings_service.ensure_default_settings(db)
    await db.commit()

    return SimpleNamespace(
        admin=admin,
        manager=manager,
        approver_a=approver_a,
        approver_b=approver_b,
        requester=requester,
        viewer=viewer,
        provider=provider,
        other_provider=other_provider,
        bucket=bucket,
        other_bucket=other_bucket,
        finance=finance,
        legal=legal,
        document=document,
        fallback=fallback,
    )
