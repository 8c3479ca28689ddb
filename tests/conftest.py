'''
Pytest configuration for the FastAPI application.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any code is imported.
2. Providing a fresh, seeded SQLite database file for each test.
3. Providing an httpx AsyncClient bound to the app for endpoint testing.
4. Providing instances of all service classes, pre-injected with a test db session.
'''

import os

# Settings are read at import time, so the environment must be ready first.
os.environ["TEST_MODE"] = "True"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-booking-suite")

import pytest
from typing import AsyncGenerator, Callable
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# --- Constant Imports ----
from tests.constants import TEST_ADMIN_ID, TEST_CUSTOMER_ID
from tests.database import factories
from tests.database.seed_test_db import reset_schema, seed_data

# --- Application Imports ---
from workspace_booking.main import app
from workspace_booking.common.config import settings
from workspace_booking.database import engine as engine_module
from workspace_booking.database.engine import create_db_engine_and_session_factory, dispose_db_engine
from workspace_booking.services.asset_service import AssetService
from workspace_booking.services.availability_service import AvailabilityService
from workspace_booking.services.schedule_service import ScheduleService
from workspace_booking.services.booking_service import BookingService
from workspace_booking.services.locks import AssetLockRegistry
from tests.tokens import create_test_token


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio' (solves 'trio' error).
    2. Promotes the scope to 'session' (solves 'ScopeMismatch').
    """
    return "asyncio"


# --- 1. Database Fixtures ---

@pytest.fixture(scope="function")
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Creates the app's global engine on a throwaway SQLite file, builds the
    schema and seeds the deterministic test data.
    """
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    create_db_engine_and_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'workspace_booking_test.db'}")
    await reset_schema(engine_module.engine)
    async with engine_module.AsyncSessionLocal() as session:
        await seed_data(session, verbose=False)

    yield engine_module.engine

    factories.test_db_session = None
    await dispose_db_engine()


@pytest.fixture(scope="function")
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """The app's session factory, for tests that need several independent sessions."""
    return engine_module.AsyncSessionLocal


@pytest.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    factories.test_db_session = session
    try:
        yield session
    finally:
        await session.close()


# --- 2. Service Fixtures ---

@pytest.fixture(scope="function")
def lock_registry() -> AssetLockRegistry:
    """A registry private to the test, shared by every service built in it."""
    return AssetLockRegistry()

@pytest.fixture(scope="function")
def asset_service(db_session: AsyncSession) -> AssetService:
    return AssetService(db=db_session)

@pytest.fixture(scope="function")
def row_lock_calls(mocker, asset_service: AssetService, lock_registry: AssetLockRegistry) -> list[tuple[UUID, bool]]:
    """
    Records every asset row lock taken through `asset_service` as
    (asset_id, whether the in-process asset lock was held at that moment).
    """
    calls = []
    lock_asset_row = asset_service.lock_asset_row

    async def recording_lock_asset_row(asset_id: UUID):
        calls.append((asset_id, lock_registry.lock_for(asset_id).locked()))
        return await lock_asset_row(asset_id)

    mocker.patch.object(asset_service, "lock_asset_row", side_effect=recording_lock_asset_row)
    return calls

@pytest.fixture(scope="function")
def availability_service(db_session: AsyncSession, asset_service: AssetService) -> AvailabilityService:
    return AvailabilityService(db=db_session, asset_service=asset_service)

@pytest.fixture(scope="function")
def schedule_service(
    db_session: AsyncSession, asset_service: AssetService, lock_registry: AssetLockRegistry
) -> ScheduleService:
    return ScheduleService(db=db_session, asset_service=asset_service, locks=lock_registry)

@pytest.fixture(scope="function")
def booking_service(
    db_session: AsyncSession,
    asset_service: AssetService,
    availability_service: AvailabilityService,
    lock_registry: AssetLockRegistry
) -> BookingService:
    return BookingService(
        db=db_session,
        asset_service=asset_service,
        availability_service=availability_service,
        locks=lock_registry
    )

@pytest.fixture(scope="function")
def booking_service_for(lock_registry: AssetLockRegistry) -> Callable[[AsyncSession], BookingService]:
    """
    Builds a BookingService on a caller-owned session. Used to simulate
    concurrent requests, each with its own session, sharing one lock registry.
    """
    def build(session: AsyncSession) -> BookingService:
        asset_service = AssetService(db=session)
        return BookingService(
            db=session,
            asset_service=asset_service,
            availability_service=AvailabilityService(db=session, asset_service=asset_service),
            locks=lock_registry
        )
    return build


# --- 3. API Fixtures ---

@pytest.fixture(scope="function")
async def client(db_engine: AsyncEngine) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    An AsyncClient talking to the app in-process. The engine was already
    created by `db_engine`, so the app's own session dependency is used as is.
    """
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


def auth_headers_for(actor_id: UUID) -> dict:
    """Creates a JWT for the given actor and returns auth headers."""
    token = create_test_token(subject=actor_id)
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture(scope="function")
def admin_headers() -> dict:
    return auth_headers_for(TEST_ADMIN_ID)

@pytest.fixture(scope="function")
def customer_headers() -> dict:
    return auth_headers_for(TEST_CUSTOMER_ID)
