"""
Pytest configuration and fixtures for testing.

Provides:
- Database fixtures (in-memory SQLite through aiosqlite, one per test)
- Mock services (push gateway)
- Staff, customer and issue fixtures for lifecycle scenarios

Usage:
    pytest src/backend/tests -v
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import db.models  # noqa: F401
from db.models import Customer, Employee, Project
from schemas.actor import Actor
from services.assignment_service import AssignmentService
from services.issue_service import IssueService
from services.notification_service import NotificationDispatcher, PushNotificationService
from tests.factories import (
    CustomerFactory,
    DeviceTokenFactory,
    EmployeeFactory,
    ProjectFactory,
    persist,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database with the full schema.

    StaticPool keeps the single connection alive so every session sees the
    same in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session configured like the application's session factory.

    Operations commit and roll back on their own, so after a failed call
    objects loaded earlier are expired; re-read them with ``reload``.
    """
    session_maker = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    session = session_maker()
    try:
        yield session
    finally:
        await NotificationDispatcher.drain()
        await session.close()


# ============================================================================
# Push Gateway Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def push_sender():
    """Replace the push gateway call; every test can inspect what was sent."""
    with patch.object(PushNotificationService, "send", new_callable=AsyncMock) as send:
        yield send


# ============================================================================
# Party Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> Customer:
    return await persist(db_session, CustomerFactory.create(name="Delta Foods"))


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, customer: Customer) -> Project:
    return await persist(db_session, ProjectFactory.create(customer.id))


@pytest_asyncio.fixture
async def manager(db_session: AsyncSession) -> Employee:
    return await persist(db_session, EmployeeFactory.create_manager(name="Mona Manager"))


@pytest_asyncio.fixture
async def head(db_session: AsyncSession) -> Employee:
    """Head of a non-service department."""
    return await persist(
        db_session, EmployeeFactory.create_head(department="ELECTRICAL", name="Hany Head")
    )


@pytest_asyncio.fixture
async def other_head(db_session: AsyncSession) -> Employee:
    return await persist(
        db_session, EmployeeFactory.create_head(department="MECHANICAL", name="Omar Other")
    )


@pytest_asyncio.fixture
async def service_head(db_session: AsyncSession) -> Employee:
    return await persist(
        db_session, EmployeeFactory.create_head(department="SERVICE", name="Samy Service")
    )


@pytest_asyncio.fixture
async def engineer(db_session: AsyncSession) -> Employee:
    return await persist(
        db_session,
        EmployeeFactory.create_engineer(name="Essam Engineer", mobile_no="01000000001"),
    )


@pytest_asyncio.fixture
async def device_tokens(
    db_session: AsyncSession,
    customer: Customer,
    manager: Employee,
    head: Employee,
    service_head: Employee,
) -> dict:
    """Registered devices for the customer and staff fixtures, keyed by user id."""
    tokens = {
        str(customer.id): "token-customer",
        str(manager.id): "token-manager",
        str(head.id): "token-head",
        str(service_head.id): "token-service-head",
    }
    await persist(
        db_session,
        *[DeviceTokenFactory.create(user_id, token) for user_id, token in tokens.items()],
    )
    return tokens


# ============================================================================
# Actor Fixtures
# ============================================================================


@pytest.fixture
def customer_actor(customer: Customer) -> Actor:
    return Actor.customer(customer.id)


@pytest.fixture
def manager_actor(manager: Employee) -> Actor:
    return Actor.manager(manager.id)


@pytest.fixture
def head_actor(head: Employee) -> Actor:
    return Actor.head(head.id, head.department)


@pytest.fixture
def other_head_actor(other_head: Employee) -> Actor:
    return Actor.head(other_head.id, other_head.department)


@pytest.fixture
def service_head_actor(service_head: Employee) -> Actor:
    return Actor.head(service_head.id, service_head.department)


# ============================================================================
# Issue Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def new_issue_id(
    db_session: AsyncSession, customer_actor: Actor, project: Project, manager: Employee
) -> UUID:
    """A NEW issue filed by the customer fixture."""
    result = await IssueService.create(
        db_session, customer_actor, project.id, "Conveyor motor trips after ten minutes"
    )
    assert result.status, result.message
    return result.data.id


@pytest_asyncio.fixture
async def assigned_issue_id(
    db_session: AsyncSession, manager_actor: Actor, head: Employee, new_issue_id: UUID
) -> UUID:
    """The NEW issue assigned to the ELECTRICAL head."""
    result = await AssignmentService.assign_to_department(
        db_session, manager_actor, new_issue_id, head.id
    )
    assert result.status, result.message
    return new_issue_id


@pytest_asyncio.fixture
async def started_issue_id(
    db_session: AsyncSession, head_actor: Actor, assigned_issue_id: UUID
) -> UUID:
    """The assigned issue with work started by its head."""
    result = await IssueService.start_working(db_session, head_actor, assigned_issue_id)
    assert result.status, result.message
    return assigned_issue_id
