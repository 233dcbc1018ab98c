"""
Pytest configuration and shared fixtures.
"""

import os
from collections.abc import AsyncGenerator

# Configure settings BEFORE any imports that read them
os.environ["OTEL_EXPORTER_ENABLED"] = "false"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from prometheus_client import CollectorRegistry
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobqueue.api.main import create_app
from jobqueue.cache.backends import InMemoryStatusCache, get_status_cache
from jobqueue.cache.policy import StatusCachePolicy
from jobqueue.db import close_db, connection, create_schema, init_db
from jobqueue.observability.metrics import MetricsCollector
from jobqueue.services.queue import QueueService


@pytest.fixture
def database_url(tmp_path) -> str:
    """SQLite database file private to the test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'jobqueue_test.db'}"


@pytest_asyncio.fixture
async def session_factory(database_url: str) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Initialize the database with a fresh schema and expose the session factory."""
    await init_db(database_url)
    await create_schema()

    yield connection.AsyncSessionLocal

    await close_db()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    """Private Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry: CollectorRegistry) -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=metrics_registry)


@pytest.fixture
def status_cache() -> InMemoryStatusCache:
    """Empty in-memory status cache."""
    return InMemoryStatusCache(ttl_seconds=60, max_entries=1000)


@pytest.fixture
def cache_policy(status_cache: InMemoryStatusCache, metrics: MetricsCollector) -> StatusCachePolicy:
    """Write-through policy over the in-memory cache."""
    return StatusCachePolicy(status_cache, metrics=metrics)


@pytest.fixture
def queue(
    db_session: AsyncSession,
    cache_policy: StatusCachePolicy,
    metrics: MetricsCollector,
) -> QueueService:
    """Queue service over the test session."""
    return QueueService(db_session, cache_policy, metrics=metrics)


@pytest_asyncio.fixture
async def app(session_factory, status_cache: InMemoryStatusCache) -> FastAPI:
    """Create a FastAPI app for testing with initialized database."""
    app = create_app()
    app.dependency_overrides[get_status_cache] = lambda: status_cache
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
