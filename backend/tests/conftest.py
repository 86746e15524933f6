"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app, init_realtime
from backend.app.db.session import get_db, Base
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.models.route import Route
from backend.app.models.bus_stop import BusStop
from backend.app.models.bus import Bus
from backend.app.services.fanout_hub import FanoutHub
from backend.app.services.live_position_store import LivePositionStore

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Fresh database per test; the engine lives on the test's own event loop
@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub():
    return FanoutHub(send_timeout=1.0)


@pytest.fixture
def store(hub):
    return LivePositionStore(hub)


@pytest.fixture
def apply_overrides(session_factory):
    """Point the app at the test database and give it a fresh hub and store.

    ASGITransport does not run the lifespan, so app.state is set up here.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    init_realtime(app)
    yield app

    app.dependency_overrides = {}


@pytest.fixture
async def client(apply_overrides):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def campus(db_session):
    """
    Users of every role, route R1 with stops S1@(0,0) and S2@(0,0.01),
    bus B1 driven by ``driver`` and bus B2 driven by ``other_driver``.
    """
    admin = User(email="admin@college.edu", username="admin", role=UserRole.ADMIN)
    driver = User(email="driver@college.edu", username="driver", role=UserRole.DRIVER)
    other_driver = User(email="driver2@college.edu", username="driver2", role=UserRole.DRIVER)
    passenger = User(email="student@college.edu", username="student", role=UserRole.PASSENGER)
    db_session.add_all([admin, driver, other_driver, passenger])
    await db_session.flush()

    route = Route(name="R1", description="Main gate - Library")
    db_session.add(route)
    await db_session.flush()

    s1 = BusStop(route_id=route.id, name="S1", latitude=0.0, longitude=0.0, stop_order=1)
    s2 = BusStop(route_id=route.id, name="S2", latitude=0.0, longitude=0.01, stop_order=2)
    db_session.add_all([s1, s2])

    b1 = Bus(bus_number="B1", bus_name="Shuttle 1", capacity=40, driver_id=driver.id, current_route_id=route.id)
    b2 = Bus(bus_number="B2", bus_name="Shuttle 2", capacity=40, driver_id=other_driver.id, current_route_id=route.id)
    db_session.add_all([b1, b2])

    await db_session.commit()

    return {
        "admin": admin,
        "driver": driver,
        "other_driver": other_driver,
        "passenger": passenger,
        "route": route,
        "s1": s1,
        "s2": s2,
        "bus": b1,
        "other_bus": b2,
    }

