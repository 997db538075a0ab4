"""
Pytest configuration and fixtures for BrainBase tests.
"""

import os

# Settings are read at import time; point them at in-memory SQLite first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"

from collections.abc import AsyncGenerator  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from brainbase.db.base import Base  # noqa: E402
from brainbase.db.session import get_db  # noqa: E402
from brainbase.main import app  # noqa: E402
from brainbase.schemas.database import DatabaseCreate, PropertyCreate  # noqa: E402
from brainbase.services import DatabaseService, RecordService  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh in-memory database per test function."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        # Rollback any uncommitted changes
        await session.rollback()


@pytest_asyncio.fixture
async def other_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """A second session on the same database, standing in for a concurrent writer."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def database_service() -> DatabaseService:
    return DatabaseService()


@pytest.fixture
def record_service() -> RecordService:
    return RecordService()


@pytest_asyncio.fixture
async def projects_and_tasks(
    db_session: AsyncSession, database_service: DatabaseService
) -> dict[str, Any]:
    """
    Two databases linked by a relation.

    Projects: Name (text), Budget (number)
    Tasks: Title (text), Status (select), Hours (number), Project
    (relation to Projects, many_to_one); the paired property on
    Projects is named "Tasks".
    """
    projects = await database_service.create_database(
        db_session,
        "owner-1",
        DatabaseCreate(
            name="Projects",
            properties=[
                PropertyCreate(name="Name", type="text"),
                PropertyCreate(name="Budget", type="number"),
            ],
        ),
    )
    tasks = await database_service.create_database(
        db_session,
        "owner-1",
        DatabaseCreate(
            name="Tasks",
            properties=[
                PropertyCreate(name="Title", type="text"),
                PropertyCreate(
                    name="Status",
                    type="select",
                    config={
                        "options": [
                            {"id": "todo", "name": "Todo"},
                            {"id": "doing", "name": "Doing"},
                            {"id": "done", "name": "Done"},
                        ]
                    },
                ),
                PropertyCreate(name="Hours", type="number"),
            ],
        ),
    )
    project_rel = await database_service.define_property(
        db_session,
        tasks.id,
        PropertyCreate(
            name="Project",
            type="relation",
            config={"target_database_id": projects.id, "relation_type": "many_to_one"},
            inverse_name="Tasks",
        ),
    )
    await db_session.refresh(projects)
    await db_session.refresh(tasks)

    return {
        "projects": projects,
        "tasks": tasks,
        "project_rel": project_rel,
        "tasks_rel": projects.find_property("Tasks"),
    }
