"""
Pytest fixtures for FieldGate tests.
"""

import asyncio
import os
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Ensure test config is set before importing fieldgate modules.
os.environ.setdefault("FIELDGATE_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("FIELDGATE_ENV", "development")
os.environ.setdefault("FIELDGATE_DATABASE_URL", "sqlite+aiosqlite://")

from fieldgate.db.base import Base, create_engine
from fieldgate.db.repositories import EventRepository, TaskRepository
from fieldgate.engine.errors import UpstreamFailure
from fieldgate.integrations.identity import Identity
from fieldgate.integrations.storage import Storage
from fieldgate.models import (
    AttachmentRef,
    EventAction,
    GeoLocation,
    Task,
    TaskStatus,
    UploadedFile,
    Worker,
)
import fieldgate.db.tables  # noqa: F401

pytest_plugins = ("pytest_asyncio",)

# Reference point used by most tests (District 1, Ho Chi Minh City)
SITE = GeoLocation(lat=10.7769, lng=106.7009, name="Site A")


class FakeStorage(Storage):
    """In-memory storage; can fail on demand or run a hook before storing."""

    def __init__(self) -> None:
        self.uploaded: list[AttachmentRef] = []
        self.fail = False
        self.before_upload: Optional[Callable[[], Awaitable[None]]] = None

    async def upload(self, files: Sequence[UploadedFile]) -> list[AttachmentRef]:
        if self.before_upload is not None:
            hook, self.before_upload = self.before_upload, None
            await hook()
        if self.fail:
            raise UpstreamFailure("storage unavailable", "STORAGE_UPLOAD_FAILED")
        await asyncio.sleep(0)
        refs = [
            AttachmentRef(
                ref_id=f"obj-{len(self.uploaded) + i}",
                filename=f.filename,
                mime_type=f.content_type,
                size_bytes=f.size,
            )
            for i, f in enumerate(files)
        ]
        self.uploaded.extend(refs)
        return refs


class FakeIdentity(Identity):
    """Fixed worker list; counts calls."""

    def __init__(self, workers: Sequence[Worker] = ()) -> None:
        self.workers = list(workers)
        self.calls = 0

    async def list_active_workers(self) -> list[Worker]:
        self.calls += 1
        return list(self.workers)


def photo(name: str = "site.jpg") -> UploadedFile:
    return UploadedFile(filename=name, content_type="image/jpeg", data=b"\xff\xd8\xff\xe0jpeg")


@pytest.fixture
async def engine(tmp_path):
    """Test engine on a throwaway SQLite file (or FIELDGATE_TEST_DATABASE_URL)."""
    database_url = os.getenv(
        "FIELDGATE_TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'fieldgate.db'}"
    )
    engine = create_engine(database_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    """Provide a database session per test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity(
        [
            Worker(id="w1", first_name="An", last_name="Nguyen"),
            Worker(id="w2", first_name="Binh", last_name="Tran"),
            Worker(id="w3", first_name="Chi", last_name="Le"),
        ]
    )


@pytest.fixture
def make_task(session_factory) -> Callable[..., Awaitable[Task]]:
    """Create and commit a task in its own session."""

    async def _make_task(
        assignee_ids: Sequence[str] = ("w1",),
        expected_revenue: Optional[Decimal] = None,
        geo_location: Optional[GeoLocation] = SITE,
        status: TaskStatus = TaskStatus.READY,
        completed_at: Optional[datetime] = None,
        title: str = "Fix air conditioner",
    ) -> Task:
        async with session_factory() as s:
            task = await TaskRepository(s).create(
                title=title,
                assignee_ids=assignee_ids,
                expected_revenue=expected_revenue,
                geo_location=geo_location,
                status=status,
                completed_at=completed_at,
            )
            await s.commit()
            return task

    return _make_task


@pytest.fixture
def record_check_in(session_factory) -> Callable[..., Awaitable[None]]:
    """Write a raw check-in event at a given instant."""

    async def _record(task_id: int, worker_id: str, at: datetime) -> None:
        async with session_factory() as s:
            await EventRepository(s).append(
                f"TASK_{task_id}",
                EventAction.CHECKED_IN,
                worker_id,
                {"location": {"lat": SITE.lat, "lng": SITE.lng}},
                created_at=at,
            )
            await s.commit()

    return _record


@pytest.fixture
async def client(session_factory, storage, identity):
    """Async test client with overridden dependencies."""
    from fieldgate.api.deps import get_db_session, get_identity, get_storage
    from fieldgate.main import app

    async def override_get_db_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_get_db_session
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_identity] = lambda: identity

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def worker_headers(worker_id: str = "w1") -> dict[str, str]:
    return {"X-Actor-ID": worker_id, "X-Actor-Role": "worker"}


def admin_headers(admin_id: str = "admin-1") -> dict[str, str]:
    return {"X-Actor-ID": admin_id, "X-Actor-Role": "admin"}
