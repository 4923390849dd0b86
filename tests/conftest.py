import os

# settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-at-least-32-bytes!!")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal")

import httpx
import pytest

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
from app.models import Base

from app.main import app
from app.core.db import get_db

from tests.fixtures_seed import seed_users, seed_listing  # noqa: F401,E402


def _test_db_url() -> str:
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite://")


@pytest.fixture
async def async_engine():
    """
    Fresh schema per test. The default in-memory sqlite database lives on a
    single shared connection; point DATABASE_URL_TEST at postgres to run the
    same suite against it.
    """
    url = _test_db_url()
    if url.startswith("sqlite"):
        engine = create_async_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(async_engine):
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession):
    """
    HTTP client that uses the test DB session via dependency override.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
