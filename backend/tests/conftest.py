"""Pytest configuration and shared fixtures."""

from typing import AsyncGenerator
from unittest.mock import Mock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fedauth.config import Settings
from fedauth.core.database import Base, get_db
from fedauth.core.security import hash_password
from fedauth.main import create_app
from fedauth.models.account import Account, AccountStatus
from fedauth.services.omniauth.base import CALLBACK_PHASE, AuthPayload
from fedauth.services.omniauth.config import build_omniauth
from fedauth.services.omniauth.dispatcher import DispatchContext
from fedauth.services.omniauth.session import COOKIE_MODE, SessionHandle

# In-memory SQLite; StaticPool keeps every session on one connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, "execute"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    from fedauth import models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, SECRET_KEY="test-secret-key-for-the-suite-0123456789")


@pytest.fixture
def omniauth_config(test_settings):
    """Configuration with the developer strategy registered."""
    config = build_omniauth(test_settings)
    config.registry.register("developer")
    return config


@pytest.fixture
def app(omniauth_config, session_factory):
    application = create_app(omniauth=omniauth_config, session_factory=session_factory)

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async client sharing the test's event loop. Redirects are not followed."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def make_account(db_session: AsyncSession):
    """Factory fixture that commits an account."""

    async def _make_account(
        email: str,
        status: AccountStatus = AccountStatus.OPEN,
        password: str = None,
    ) -> Account:
        account = Account(
            email=email,
            status=status,
            password_hash=hash_password(password) if password else None,
        )
        db_session.add(account)
        await db_session.commit()
        await db_session.refresh(account)
        return account

    return _make_account


@pytest.fixture
def make_callback_context(omniauth_config):
    """Build a callback-phase DispatchContext for driving the resolver directly."""

    def _make_context(
        uid: str,
        email: str = None,
        session: dict = None,
        provider: str = "developer",
        info: dict = None,
        config=None,
    ) -> DispatchContext:
        config = config or omniauth_config
        config.finalize()
        if info is None:
            info = {"email": email} if email else {}
        return DispatchContext(
            registration=config.registry.get(provider),
            phase=CALLBACK_PHASE,
            request=Mock(),
            config=config,
            session_handle=SessionHandle(mode=COOKIE_MODE, data=session if session is not None else {}),
            payload=AuthPayload(provider=provider, uid=uid, info=info),
        )

    return _make_context
