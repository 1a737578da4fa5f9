"""Pytest configuration and fixtures for Memoria tests.

Tests run against a throwaway SQLite file per test (aiosqlite), so no
Postgres or Redis is needed.  The policy cache is disabled unless a test
patches Redis in explicitly.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("POLICY_CACHE_ENABLED", "false")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

from datetime import date, timedelta  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.auth.jwt import create_access_token  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.client import Client  # noqa: E402
from app.models.lot import Lot  # noqa: E402
from app.models.payment import Payment  # noqa: E402
from app.models.pending_action import PendingAction  # noqa: E402
from app.models.site_content import SiteContent  # noqa: E402
from app.models.staff_user import StaffRole, StaffUser  # noqa: E402
from app.utils.clock import utcnow  # noqa: E402


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'memoria.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def service_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Separate session for the service under test.

    Services commit and roll back on their own; keeping them off
    `db_session` leaves fixture objects untouched.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def fetch(session_factory):
    """Read a row's current state in a fresh session."""

    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, one DB session per request."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

async def _make_user(db: AsyncSession, username: str, role: StaffRole) -> StaffUser:
    user = StaffUser(
        username=username,
        full_name=username.replace("_", " ").title(),
        email=f"{username}@memoria.test",
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> StaffUser:
    return await _make_user(db_session, "admin_ana", StaffRole.ADMIN)


@pytest_asyncio.fixture
async def second_admin(db_session: AsyncSession) -> StaffUser:
    return await _make_user(db_session, "admin_ben", StaffRole.ADMIN)


@pytest_asyncio.fixture
async def employee(db_session: AsyncSession) -> StaffUser:
    return await _make_user(db_session, "emp_carla", StaffRole.EMPLOYEE)


@pytest_asyncio.fixture
async def other_employee(db_session: AsyncSession) -> StaffUser:
    return await _make_user(db_session, "emp_dan", StaffRole.EMPLOYEE)


@pytest_asyncio.fixture
async def entities(db_session: AsyncSession) -> dict:
    """One client, an available lot, an occupied lot and a pending payment."""
    client_row = Client(
        id="C1",
        name="Maria Santos",
        email="maria@example.com",
        phone="555-0101",
        status="Active",
    )
    available = Lot(
        id="L1", lot_number="A-001", section="A", lot_type="Standard",
        status="Available", price=75000, owner_id="C1",
    )
    occupied = Lot(
        id="L2", lot_number="A-002", section="A", lot_type="Premium",
        status="Occupied", price=120000, occupant_name="Jose Reyes",
        date_occupied=date(2020, 5, 1),
    )
    payment = Payment(
        id="P1", client_id="C1", lot_id="L1", amount=15000,
        payment_type="Installment", status="Pending",
    )
    hero = SiteContent(section="hero", content={"title": "Peaceful Rest", "subtitle": "Since 1950"})
    db_session.add_all([client_row, available, occupied, payment, hero])
    await db_session.commit()
    return {"client": client_row, "lot": available, "occupied_lot": occupied, "payment": payment}


@pytest.fixture
def make_action(db_session: AsyncSession):
    """Insert a PendingAction row directly (bypassing submission)."""

    async def _make(requester: StaffUser, **overrides) -> PendingAction:
        now = utcnow()
        fields = dict(
            action_type="payment_update",
            target_entity="payment",
            target_id="P1",
            change_data={"status": "Completed"},
            previous_data={"status": "Pending"},
            requested_by_id=requester.id,
            requested_by_username=requester.username,
            requested_by_name=requester.full_name,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(days=7),
        )
        fields.update(overrides)
        action = PendingAction(**fields)
        db_session.add(action)
        await db_session.commit()
        return action

    return _make


def auth_headers_for(user: StaffUser) -> dict:
    token = create_access_token(user_id=user.id, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin: StaffUser) -> dict:
    return auth_headers_for(admin)


@pytest.fixture
def employee_headers(employee: StaffUser) -> dict:
    return auth_headers_for(employee)


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "concurrency: Concurrent reviewer tests")
