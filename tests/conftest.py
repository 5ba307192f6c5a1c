"""
GroupLedger - Test Configuration

Pytest fixtures and configuration.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.config import Settings
from app.database import Base, get_async_session
from app.dependencies import get_settings_dep
from app.services.storage_service import SQLAlchemyStorage


TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for tests: in-memory database, reports under a temp dir, no API key."""
    return Settings(
        app_env="test",
        database_url_async=TEST_DATABASE_URL,
        report_output_dir=str(tmp_path / "reports"),
        openai_api_key="",
        ingest_chunk_size=2,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session
        await session.rollback()

    await engine.dispose()


@pytest.fixture
def storage(db_session: AsyncSession) -> SQLAlchemyStorage:
    return SQLAlchemyStorage(db_session)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """Test client bound to the per-test database session."""
    from main import create_app

    app = create_app(settings)

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_settings_dep] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
