"""
Shared test fixtures.

Each test gets a fresh file-backed SQLite database (via aiosqlite) so
tests run without Docker / PostgreSQL / Redis.  A file rather than
``:memory:`` lets concurrent sessions use separate connections, which is
what the concurrency tests need.  Locks use the in-process provider.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from carpool.domain.enums import UserRole
from carpool.infrastructure.database import Base, make_session_factory
from carpool.infrastructure.locks import LocalLockProvider
from carpool.infrastructure.models import UserModel
from carpool.services.registry import build_services


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'carpool.db'}", echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def services(session_factory):
    return build_services(session_factory, LocalLockProvider())


# ── Data helpers ──────────────────────────────────────────────────────


@pytest.fixture
def make_user(session_factory):
    counter = itertools.count(1)

    async def _make(role: UserRole = UserRole.PASSENGER) -> UserModel:
        n = next(counter)
        async with session_factory() as session:
            async with session.begin():
                user = UserModel(
                    name=f"User {n}",
                    email=f"user{n}@example.com",
                    role=role,
                    rating=0.0,
                    total_reviews=0,
                )
                session.add(user)
        return user

    return _make


@pytest_asyncio.fixture
async def driver(make_user):
    return await make_user(UserRole.DRIVER)


@pytest_asyncio.fixture
async def passengers(make_user):
    return [await make_user(UserRole.PASSENGER) for _ in range(4)]


@pytest.fixture
def make_trip(services, driver):
    async def _make(total_seats: int = 4, price_per_seat: float = 10.0, departure_at=None):
        return await services.trips.publish(
            driver_id=driver.id,
            origin="Berlin",
            destination="Leipzig",
            departure_at=departure_at or datetime.now(timezone.utc) + timedelta(days=1),
            price_per_seat=price_per_seat,
            total_seats=total_seats,
        )

    return _make
