"""
Pytest fixtures for all tests.

Provides:
- In-memory SQLite database, rebuilt for every test
- HTTP client bound to the test database and a default tenant
- Bootstrapped tenant and users holding the built-in roles
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SENTRY_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.features.rbac.bindings import BindingManager
from app.features.rbac.bootstrap import BootstrapResult, bootstrap_tenant
from app.main import create_application
from app.models import Tenant, User
from tests.factories import TenantFactory, UserFactory

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def test_db_engine():
    """
    Create test database engine.

    StaticPool keeps the single in-memory database alive across sessions.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for a test.

    Services commit their own writes, so isolation comes from rebuilding
    the schema per test rather than from an outer rollback.
    """
    factory = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def tenant(db_session: AsyncSession) -> Tenant:
    """Tenant 'acme' without roles or permissions."""
    return await TenantFactory.create(db_session, name="Acme Store", slug="acme", domain="shop.acme.com")


@pytest_asyncio.fixture
async def other_tenant(db_session: AsyncSession) -> Tenant:
    """Second tenant, used to check isolation."""
    return await TenantFactory.create(db_session, name="Globex Shop", slug="globex")


@pytest_asyncio.fixture
async def bootstrapped_tenant(db_session: AsyncSession, tenant: Tenant) -> BootstrapResult:
    """Tenant 'acme' with the default permission catalog and roles."""
    return await bootstrap_tenant(db_session, tenant.id)


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Active user without any tenant membership."""
    return await UserFactory.create(db_session, email="user@acme.com")


@pytest.fixture
def make_member(db_session: AsyncSession) -> Callable:
    """
    Build a user holding a role in a tenant.

    Usage:
        admin = await make_member(tenant.id, "admin")
    """

    async def _make(tenant_id: str, role_name: str, **kwargs) -> User:
        user = await UserFactory.create(db_session, **kwargs)
        await BindingManager.assign_role(db_session, user.id, role_name, tenant_id)
        return user

    return _make


@pytest_asyncio.fixture
async def app(db_session: AsyncSession):
    """
    Create FastAPI test application.

    Overrides the database dependency to use the test session.
    """
    application = create_application()

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db

    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for API tests.

    The base host has no subdomain, so requests identify their tenant
    through the header, like the storefront frontends do.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/tenants/current")
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Tenant-Slug": "acme"},
    ) as ac:
        yield ac
