"""Global test configuration and fixtures for the membership metrics API."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.database.models import Base
from src.modules.billing.constants import PricingConfig
from src.utils.settings.app import AppSettings
from tests.factories import MemberSnapshotFactory, PlanEventFactory
from tests.utils.pricing import ANNUAL_PLAN_PRICE_ID, ANNUAL_PRICE_ID, TRIAL_PRICE_ID


@pytest.fixture
def member_factory():
    return MemberSnapshotFactory


@pytest.fixture
def plan_event_factory():
    return PlanEventFactory


@pytest.fixture
def pricing() -> PricingConfig:
    """Pricing with one annual Stripe price and one trial plan price."""
    return PricingConfig(
        annual_price_ids=frozenset({ANNUAL_PRICE_ID}),
        annual_plan_price_ids=frozenset({ANNUAL_PLAN_PRICE_ID}),
        trial_price_ids=frozenset({TRIAL_PRICE_ID}),
        settlement_currency="gbp",
    )


@pytest.fixture(scope="session")
def test_database_uri() -> str:
    """SQLite in memory unless TEST_DATABASE_URL points at PostgreSQL."""
    return os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture
async def async_engine(test_database_uri):
    """Create async engine with a fresh schema for each test."""
    if test_database_uri.startswith("sqlite"):
        engine = create_async_engine(
            test_database_uri,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(test_database_uri, pool_pre_ping=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_connection(async_engine) -> AsyncGenerator[AsyncConnection, None]:
    """Connection with an outer transaction rolled back after the test."""
    connection = await async_engine.connect()
    transaction = await connection.begin()
    try:
        yield connection
    finally:
        await transaction.rollback()
        await connection.close()


@pytest.fixture
def session_factory(db_connection) -> async_sessionmaker[AsyncSession]:
    """Session factory whose sessions all join the test transaction."""
    return async_sessionmaker(bind=db_connection, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session with proper transaction isolation."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def app(session_factory) -> AsyncGenerator[FastAPI, None]:
    """FastAPI application with lifespan, wired to the test database."""
    from src.main import app

    async with LifespanManager(app):
        app.state.session_factory = session_factory
        yield app


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": AppSettings().ADMIN_API_KEY.get_secret_value()}


# HTTP Client Fixtures
@pytest_asyncio.fixture
async def public_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client for testing public endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test-metrics-api",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def admin_client(
    app: FastAPI, admin_headers: dict[str, str]
) -> AsyncGenerator[AsyncClient, None]:
    """Create HTTP client carrying the admin key."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test-metrics-api",
        headers=admin_headers,
    ) as ac:
        yield ac
