"""
Pytest configuration and fixtures for the Sprintboard test suite.

Provides:
- an in-memory aiosqlite database per test
- an httpx client bound to the FastAPI app with get_db overridden
- principals, bearer headers and a seeded project
"""

import os

# Set test environment before imports
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"

from typing import Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sprintboard.main import app
from sprintboard.database import engine_options, get_db
from sprintboard.models import Base
from sprintboard.core.auth import Principal, create_access_token
from sprintboard.services.project_service import ProjectService
from sprintboard.services.workflow_service import WorkflowService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============== Database Fixtures ==============

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(TEST_DATABASE_URL, **engine_options(TEST_DATABASE_URL))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============== Principal Fixtures ==============

@pytest.fixture
def lead() -> Principal:
    return Principal(id="user-lead", organization_id="org-1", role="lead")


@pytest.fixture
def member() -> Principal:
    return Principal(id="user-member", organization_id="org-1", role="member")


@pytest.fixture
def viewer() -> Principal:
    return Principal(id="user-viewer", organization_id="org-1", role="viewer")


@pytest.fixture
def outsider() -> Principal:
    return Principal(id="user-outsider", organization_id="org-2", role="admin")


def auth_headers(principal: Principal) -> Dict[str, str]:
    token = create_access_token(
        {"sub": principal.id, "org": principal.organization_id, "role": principal.role}
    )
    return {"Authorization": f"Bearer {token}"}


# ============== Project Fixtures ==============

@pytest_asyncio.fixture
async def project_id(db, lead) -> int:
    """Scrum project: backlog, ready, in-progress, in-review, done"""
    project = await ProjectService(db).create_project(lead, key="PRJ", name="Project")
    return project.id


@pytest_asyncio.fixture
async def three_status_project_id(db, lead) -> int:
    """Project trimmed to backlog (todo), in-progress (in_progress), done (done)"""
    project = await ProjectService(db).create_project(lead, key="TRI", name="Three statuses")
    workflow = WorkflowService(db)
    await workflow.delete_status(project.id, "ready")
    await workflow.delete_status(project.id, "in-review")
    return project.id
