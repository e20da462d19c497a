"""
Pytest configuration and fixtures.
"""
import os

# Settings are read at import time; point them at the test store first
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests-only-0123456789")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from dataclasses import dataclass
from datetime import date
from typing import AsyncGenerator, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from poolroute.core.database import Base, get_db
from poolroute.core.security import Identity, Role, create_access_token
from poolroute.main import app
from poolroute.models import Client, DayOfWeek, RouteStop, Technician
from poolroute.services.materializer import RouteMaterializer
from poolroute.services.schedule_store import ScheduleStore


# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 2026-10-19 is a Monday
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
NEXT_MONDAY = date(2026, 10, 26)


@pytest_asyncio.fixture(scope="function")
async def async_engine():
    """Create async engine for tests."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async_session = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden dependencies."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ============================================================
# Directory data
# ============================================================


@dataclass
class Company:
    """Ids of one seeded tenant. Only ids are kept so rollbacks in tests never
    leave fixtures pointing at expired ORM state."""
    id: UUID
    alice: UUID
    bob: UUID
    pool_a: UUID
    pool_b: UUID
    pool_c: UUID
    pool_d: UUID


async def add_technician(
    db: AsyncSession,
    company_id: UUID,
    first_name: str,
    is_active: bool = True,
) -> UUID:
    technician = Technician(
        id=uuid4(),
        company_id=company_id,
        first_name=first_name,
        last_name="Tech",
        is_active=is_active,
    )
    db.add(technician)
    await db.commit()
    return technician.id


async def add_client(
    db: AsyncSession,
    company_id: UUID,
    first_name: str,
    service_day: Optional[DayOfWeek] = None,
    is_active: bool = True,
) -> UUID:
    client = Client(
        id=uuid4(),
        company_id=company_id,
        first_name=first_name,
        last_name="Pool",
        address=f"{first_name} Street 1",
        city="Miami",
        phone="+13055550100",
        gate_code="1234",
        service_day=service_day,
        is_active=is_active,
    )
    db.add(client)
    await db.commit()
    return client.id


@pytest.fixture
def make_client(db_session: AsyncSession):
    """Factory for extra clients: ``await make_client(company_id, name, day)``."""

    async def _make(company_id: UUID, first_name: str, service_day: Optional[DayOfWeek] = None, is_active: bool = True) -> UUID:
        return await add_client(db_session, company_id, first_name, service_day, is_active)

    return _make


@pytest.fixture
def make_technician(db_session: AsyncSession):
    """Factory for extra technicians: ``await make_technician(company_id, name)``."""

    async def _make(company_id: UUID, first_name: str, is_active: bool = True) -> UUID:
        return await add_technician(db_session, company_id, first_name, is_active)

    return _make


@pytest_asyncio.fixture
async def company(db_session: AsyncSession) -> Company:
    """A tenant with two technicians and four Monday clients."""
    company_id = uuid4()
    return Company(
        id=company_id,
        alice=await add_technician(db_session, company_id, "Alice"),
        bob=await add_technician(db_session, company_id, "Bob"),
        pool_a=await add_client(db_session, company_id, "Anna", DayOfWeek.MONDAY),
        pool_b=await add_client(db_session, company_id, "Boris", DayOfWeek.MONDAY),
        pool_c=await add_client(db_session, company_id, "Carla", DayOfWeek.MONDAY),
        pool_d=await add_client(db_session, company_id, "Dmitri", DayOfWeek.MONDAY),
    )


@pytest_asyncio.fixture
async def other_company(db_session: AsyncSession) -> Company:
    """A second tenant used to check isolation."""
    company_id = uuid4()
    return Company(
        id=company_id,
        alice=await add_technician(db_session, company_id, "Olga"),
        bob=await add_technician(db_session, company_id, "Oscar"),
        pool_a=await add_client(db_session, company_id, "Omar", DayOfWeek.MONDAY),
        pool_b=await add_client(db_session, company_id, "Otto", DayOfWeek.MONDAY),
        pool_c=await add_client(db_session, company_id, "Oona", DayOfWeek.TUESDAY),
        pool_d=await add_client(db_session, company_id, "Orla", DayOfWeek.TUESDAY),
    )


# ============================================================
# Identities
# ============================================================


@pytest.fixture
def admin(company: Company) -> Identity:
    return Identity(company_id=company.id, user_id=uuid4(), role=Role.ADMIN)


@pytest.fixture
def alice(company: Company) -> Identity:
    return Identity(
        company_id=company.id,
        user_id=uuid4(),
        role=Role.TECHNICIAN,
        technician_id=company.alice,
    )


@pytest.fixture
def bob(company: Company) -> Identity:
    return Identity(
        company_id=company.id,
        user_id=uuid4(),
        role=Role.TECHNICIAN,
        technician_id=company.bob,
    )


@pytest.fixture
def other_admin(other_company: Company) -> Identity:
    return Identity(company_id=other_company.id, user_id=uuid4(), role=Role.OWNER)


def auth_headers(identity: Identity) -> dict:
    return {"Authorization": f"Bearer {create_access_token(identity)}"}


@pytest.fixture
def admin_headers(admin: Identity) -> dict:
    return auth_headers(admin)


@pytest.fixture
def alice_headers(alice: Identity) -> dict:
    return auth_headers(alice)


@pytest.fixture
def bob_headers(bob: Identity) -> dict:
    return auth_headers(bob)


# ============================================================
# Generated routes
# ============================================================


@dataclass
class GeneratedRoute:
    id: UUID
    stop_ids: list[UUID]
    client_ids: list[UUID]


@pytest_asyncio.fixture
async def monday_route(db_session: AsyncSession, company: Company, admin: Identity) -> GeneratedRoute:
    """Alice's Monday route: pool_a, pool_b, pool_c in that order."""
    store = ScheduleStore(db_session)
    for client_id in (company.pool_a, company.pool_b, company.pool_c):
        await store.add_assignment(admin, company.alice, client_id, DayOfWeek.MONDAY)

    report = await RouteMaterializer(db_session).generate(admin, MONDAY, MONDAY)
    instance_id = report.created_instance_ids[0]

    rows = (
        await db_session.execute(
            select(RouteStop.id, RouteStop.client_id)
            .where(RouteStop.route_instance_id == instance_id)
            .order_by(RouteStop.sequence_order)
        )
    ).all()
    return GeneratedRoute(
        id=instance_id,
        stop_ids=[row.id for row in rows],
        client_ids=[row.client_id for row in rows],
    )
