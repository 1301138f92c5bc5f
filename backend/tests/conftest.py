from __future__ import annotations

import os
import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from benefits.db import engine_options, get_session
from benefits.main import app
from benefits.models import SQLModel
from benefits.services.documents import InMemoryDocumentStore, set_document_store
from benefits.services.employee import EmployeeInfo, InMemoryEmployeeService, set_employee_service
from benefits.services.notifications import InMemoryNotificationService, set_notification_service

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

# In-memory SQLite unless TEST_DATABASE_URL points at a real database.
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

EMPLOYEE_ID = uuid.UUID("00000000-0000-0000-0000-00000000a001")
NEW_HIRE_ID = uuid.UUID("00000000-0000-0000-0000-00000000a002")
OTHER_EMPLOYEE_ID = uuid.UUID("00000000-0000-0000-0000-00000000a003")


def make_employee(employee_id: uuid.UUID | None = None, **overrides: object) -> EmployeeInfo:
    data: dict[str, object] = {
        "id": employee_id or uuid.uuid4(),
        "name": "Test Employee",
        "team": "Engineering",
        "position": "Engineer",
        "start_date": date(2020, 1, 6),
    }
    data.update(overrides)
    return EmployeeInfo.model_validate(data)


def build_engine(url: str = TEST_DATABASE_URL) -> AsyncEngine:
    if url in ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:"):
        # One shared connection, or every checkout would see an empty database.
        return create_async_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_async_engine(url, **engine_options(url))


ALICE = make_employee(EMPLOYEE_ID, name="Alice Tan", budgets={"training": Decimal("10000")})
NEW_HIRE = make_employee(NEW_HIRE_ID, name="Nok Dee", start_date=date.today() - timedelta(days=30))
BO = make_employee(OTHER_EMPLOYEE_ID, name="Bo Lin")


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Fresh schema for every test."""
    _engine = build_engine()
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await _engine.dispose()


@pytest.fixture
async def file_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """A file database, so each session gets its own connection."""
    _engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/benefits.db")
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def employees() -> Iterator[InMemoryEmployeeService]:
    """HR directory with a long-tenured employee, a new hire and a colleague."""
    svc = InMemoryEmployeeService()
    for info in (ALICE, NEW_HIRE, BO):
        svc.seed(info)
    set_employee_service(svc)
    yield svc
    set_employee_service(InMemoryEmployeeService())


@pytest.fixture(autouse=True)
def notifications() -> Iterator[InMemoryNotificationService]:
    svc = InMemoryNotificationService()
    set_notification_service(svc)
    yield svc
    set_notification_service(InMemoryNotificationService())


@pytest.fixture(autouse=True)
def documents() -> Iterator[InMemoryDocumentStore]:
    store = InMemoryDocumentStore()
    set_document_store(store)
    yield store
    set_document_store(InMemoryDocumentStore())


@pytest.fixture
def employee() -> EmployeeInfo:
    """Long-tenured employee with a 10000 training entitlement."""
    return ALICE


@pytest.fixture
def new_hire() -> EmployeeInfo:
    return NEW_HIRE


@pytest.fixture
def other_employee() -> EmployeeInfo:
    return BO
