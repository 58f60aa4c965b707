"""Pytest configuration and fixtures for the airdrop engine tests"""
import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

# Load environment variables, then pin what the suite relies on
load_dotenv()
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MOCK_TRANSACTIONS"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"

from airdrop.main import app  # noqa: E402
from airdrop.models.database import Base, get_db  # noqa: E402
from airdrop.services.execution import MockBatchExecutor  # noqa: E402
from airdrop.services.price_gate import AlwaysOpenGate  # noqa: E402
from airdrop.services.runtime import AirdropRuntime  # noqa: E402
from airdrop.services.snapshots import SnapshotService  # noqa: E402

from tests.helpers import (  # noqa: E402
    CURRENT_BALANCES,
    CURRENT_PERIOD,
    PREVIOUS_BALANCES,
    PREVIOUS_PERIOD,
)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'airdrop.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def mock_executor() -> MockBatchExecutor:
    return MockBatchExecutor()


@pytest.fixture
def runtime(mock_executor) -> AirdropRuntime:
    """Mock executor, open fee gate, no cool-down"""
    return AirdropRuntime(executor=mock_executor, price_gate=AlwaysOpenGate(), cooldown_seconds=0)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, runtime: AirdropRuntime) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.state.runtime = runtime

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def reference_snapshots(db_session: AsyncSession):
    """Completed snapshots for both ends of CURRENT_PERIOD"""
    service = SnapshotService(db_session)
    previous = await service.store_snapshot(PREVIOUS_PERIOD, PREVIOUS_BALANCES)
    current = await service.store_snapshot(CURRENT_PERIOD, CURRENT_BALANCES)
    return previous, current
