"""
Shared test configuration and fixtures for the identity store tests.

Tests run against a fresh SQLite database file per test function by default. When TEST_DB_HOST
is set, a throwaway PostgreSQL database is created for each test instead.
"""

import os
import uuid
from datetime import timedelta

import fakeredis.aioredis
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from thetc.auth.app.database import create_engine, create_schema, create_sessionmaker
from thetc.auth.store import IdentityStore
from thetc.auth.store.cache import TokenCache


# Test database configuration
TEST_DB_HOST = os.getenv("TEST_DB_HOST", "")
TEST_DB_PORT = os.getenv("TEST_DB_PORT", "5432")
TEST_DB_USER = os.getenv("TEST_DB_USER", "postgres")
TEST_DB_PASSWORD = os.getenv("TEST_DB_PASSWORD", "password")

# Admin URL for database creation/deletion (connects to postgres database)
ADMIN_DATABASE_URL = f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@{TEST_DB_HOST}:{TEST_DB_PORT}/postgres"


async def check_postgres_available():
    """Check if PostgreSQL is available for testing."""
    try:
        admin_engine = create_async_engine(ADMIN_DATABASE_URL, echo=False)
        async with admin_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        await admin_engine.dispose()
        return True
    except Exception:
        return False


@pytest_asyncio.fixture(scope="function")
async def test_database(tmp_path):
    """Create and clean up a test database for each test function."""
    if not TEST_DB_HOST:
        yield f"sqlite+aiosqlite:///{tmp_path / 'thetc_auth_test.db'}"
        return

    if not await check_postgres_available():
        pytest.skip("PostgreSQL database not available for testing")

    # Use a unique database name for each test to avoid conflicts
    unique_db_name = f"thetc_auth_test_{uuid.uuid4().hex[:8]}"
    unique_db_url = (
        f"postgresql+asyncpg://{TEST_DB_USER}:{TEST_DB_PASSWORD}@"
        f"{TEST_DB_HOST}:{TEST_DB_PORT}/{unique_db_name}"
    )

    admin_engine = create_async_engine(
        ADMIN_DATABASE_URL, echo=False, isolation_level="AUTOCOMMIT"
    )

    try:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"CREATE DATABASE {unique_db_name}"))

        yield unique_db_url

    finally:
        async with admin_engine.connect() as conn:
            await conn.execute(text(f"DROP DATABASE IF EXISTS {unique_db_name} WITH (FORCE)"))
        await admin_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def engine(test_database):
    """Create the async engine with all tables in place."""
    engine = create_engine(test_database)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(engine):
    return create_sessionmaker(engine)


@pytest_asyncio.fixture(scope="function")
async def session(session_maker):
    """Create async database session for model level tests."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def store(engine):
    """Identity store without a token cache."""
    return IdentityStore(engine, session_ttl=timedelta(hours=1))


@pytest_asyncio.fixture
async def fake_redis_client():
    """Provide fake Redis client for unit tests."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=False)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def token_cache(fake_redis_client):
    return TokenCache(fake_redis_client, ttl=300)


@pytest_asyncio.fixture(scope="function")
async def cached_store(engine, token_cache):
    """Identity store with a fakeredis backed token cache."""
    return IdentityStore(engine, session_ttl=timedelta(hours=1), token_cache=token_cache)

