"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so the direct-write
store path runs without Docker / PostgreSQL / Redis.  The server-side
procedures only exist in Postgres; tests of the primary path use the
emulated store in ``test_gateway.py``.
"""

from datetime import date, time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from ridepilot.infrastructure.database import Base
from ridepilot.infrastructure.models import (
    CarTypeModel,
    CompanyModel,
    DriverModel,
    ProjectModel,
)
from tests.factories import FakeGateway, RecordingSleep, make_trip


TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh schema per test; yields a session factory bound to it."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(session_factory) -> async_sessionmaker:
    """Two drivers with a handful of projects.

    driver-a: P1 pending (10:00), P2 accepted (08:00), P3 started (12:00),
              P4 pending clone of P1 (10:00)
    driver-b: P9 pending
    """
    async with session_factory() as session:
        session.add_all(
            [
                DriverModel(id="driver-a", name="Claire Martin", license="DRV-1002"),
                DriverModel(id="driver-b", name="Marco Bianchi", license="DRV-1003"),
                CompanyModel(id="c1", name="Riviera Travel"),
                CompanyModel(id="c2", name="Azur Events"),
                CarTypeModel(id="ct1", name="Business Sedan", capacity=3),
            ]
        )
        await session.flush()

        common = dict(
            company_id="c1",
            car_type_id="ct1",
            client_name="Mr. Laurent",
            pickup_location="Nice Airport T2",
            dropoff_location="Monaco",
            date=date(2026, 3, 2),
            price=120.0,
        )
        session.add_all(
            [
                ProjectModel(id="P1", driver_id="driver-a", time=time(10, 0), **common),
                ProjectModel(
                    id="P2",
                    driver_id="driver-a",
                    time=time(8, 0),
                    acceptance_status="accepted",
                    **common,
                ),
                ProjectModel(
                    id="P3",
                    driver_id="driver-a",
                    time=time(12, 0),
                    acceptance_status="started",
                    **common,
                ),
                ProjectModel(id="P4", driver_id="driver-a", time=time(10, 0), **common),
                ProjectModel(id="P9", driver_id="driver-b", time=time(9, 0), **common),
            ]
        )
        await session.commit()
    return session_factory


# ── Session doubles ───────────────────────────────────────────────────


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(
        trips=[
            make_trip("T1", "driver-a"),
            make_trip("T2", "driver-b"),
        ]
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
