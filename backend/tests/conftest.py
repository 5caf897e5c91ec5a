"""Pytest configuration: in-memory SQLite database, temp bucket, ASGI client."""

from __future__ import annotations

import os
import tempfile
import uuid
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Override env BEFORE importing app modules so Settings picks up test values.
os.environ.update(
    {
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-for-pytest",
        "OPENAI_API_KEY": "",
        "STORAGE_DIR": tempfile.mkdtemp(prefix="chatbot-platform-"),
        "LOG_LEVEL": "WARNING",
    }
)

from app.core import Base, get_db, create_access_token, get_password_hash  # noqa: E402
from app.main import app  # noqa: E402
from app.models import Chat, Project, User  # noqa: E402
from app.services.completion_client import Completion, get_completion_client  # noqa: E402
from app.services.file_mirror import get_file_mirror  # noqa: E402
from app.services.storage import StorageService, get_storage  # noqa: E402

ORIGIN = "http://localhost:5173"


def _set_sqlite_pragma(dbapi_connection, connection_record):
    # SQLite doesn't enforce FK (and ON DELETE CASCADE) by default
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class FakeCompletionClient:
    """Stands in for the OpenAI chat completion API."""

    def __init__(self, content: str = "Hello from the assistant", usage: dict | None = None):
        self.content = content
        self.usage = usage if usage is not None else {
            "prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17,
        }
        self.error: Exception | None = None
        self.calls: list[dict] = []

    async def create(self, messages, *, temperature, max_tokens):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return Completion(content=self.content, usage=self.usage)


class FakeMirror:
    """Stands in for the OpenAI Files API mirror."""

    def __init__(self, file_id: str | None = "file-abc123"):
        self.file_id = file_id
        self.calls: list[tuple[str, bytes, str]] = []

    async def mirror(self, filename: str, content: bytes, content_type: str) -> str | None:
        self.calls.append((filename, content, content_type))
        return self.file_id


@pytest.fixture()
async def engine():
    test_engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    event.listen(test_engine.sync_engine, "connect", _set_sqlite_pragma)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting rows directly."""
    async with session_maker() as session:
        yield session


@pytest.fixture()
def storage(tmp_path) -> StorageService:
    return StorageService(root=tmp_path / "buckets")


@pytest.fixture()
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


@pytest.fixture()
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture()
async def client(session_maker, storage, completion_client) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client wired to the in-memory DB, temp bucket and fake OpenAI.

    File mirroring is disabled unless a test overrides ``get_file_mirror``.
    """

    async def _override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_completion_client] = lambda: completion_client
    app.dependency_overrides[get_file_mirror] = lambda: None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers={"Origin": ORIGIN}) as ac:
        yield ac

    app.dependency_overrides.clear()


async def create_user(db: AsyncSession, email: str | None = None, password: str = "secret123") -> User:
    user = User(
        email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
        name=None,
        hashed_password=get_password_hash(password),
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user.id)})}"}


@pytest.fixture()
async def user(db) -> User:
    return await create_user(db, "owner@example.com")


@pytest.fixture()
async def other_user(db) -> User:
    return await create_user(db, "intruder@example.com")


@pytest.fixture()
async def project(db, user) -> Project:
    record = Project(
        user_id=user.id,
        name="Support bot",
        description="Answers support questions",
        system_prompt="You are terse.",
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


@pytest.fixture()
async def chat(db, project) -> Chat:
    record = Chat(project_id=project.id)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record
