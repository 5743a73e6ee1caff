"""
Shared fixtures: settings, telephony config, SQLite-backed sessions, users and tokens.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import callcenter.auth.models  # noqa: F401
import callcenter.calls.models  # noqa: F401
from callcenter.auth.jwt import JWTHandler
from callcenter.auth.models import User
from callcenter.calls.ledger import CallLedger
from callcenter.config import Settings
from callcenter.shared.database import Base
from callcenter.telephony.config import BackendKind, TelephonyConfig


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="dev",
        jwt_secret_key="test-secret-key-for-unit-tests",
        jwt_algorithm="HS256",
        jwt_access_token_expire_minutes=30,
        ledger_timezone="UTC",
        stats_default_days=7,
    )


@pytest.fixture
def telephony_config() -> TelephonyConfig:
    return TelephonyConfig(
        default_backend=BackendKind.MOCK,
        enabled_backends="mock",
        default_extension="1000",
        min_extension_length=3,
        click2call_base_url="https://pbx.example.test:3000",
        click2call_api_path="/api/v1/manager/call",
        click2call_verify_tls=False,
        click2call_timeout_seconds=60,
        twilio_account_sid="AC_TEST_ACCOUNT_SID",
        twilio_auth_token="test_auth_token_12345",
        twilio_from_number="+14155550000",
        retry_max_attempts=2,
        retry_backoff_seconds=5,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'callcenter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(session_factory: async_sessionmaker[AsyncSession]) -> CallLedger:
    return CallLedger(session_factory, "UTC")


async def _add_user(
    session_factory: async_sessionmaker[AsyncSession],
    email: str,
    name: str,
    role: str,
    extension: str | None,
) -> User:
    now = datetime.now(timezone.utc)
    user = User(
        id=uuid4(),
        email=email,
        name=name,
        role=role,
        extension=extension,
        created_at=now,
        updated_at=now,
    )
    async with session_factory() as session:
        session.add(user)
        await session.commit()
    return user


@pytest_asyncio.fixture
async def agent_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await _add_user(session_factory, "agent@example.com", "Ana Agent", "agent", "205")


@pytest_asyncio.fixture
async def admin_user(session_factory: async_sessionmaker[AsyncSession]) -> User:
    return await _add_user(session_factory, "admin@example.com", "Adam Admin", "admin", "100")


@pytest.fixture
def jwt_handler(settings: Settings) -> JWTHandler:
    return JWTHandler(settings)


@pytest.fixture
def agent_token(jwt_handler: JWTHandler, agent_user: User) -> str:
    return jwt_handler.create_access_token(
        user_id=agent_user.id,
        email=agent_user.email,
        role=agent_user.role,
        name=agent_user.name,
        extension=agent_user.extension,
    )


@pytest.fixture
def admin_token(jwt_handler: JWTHandler, admin_user: User) -> str:
    return jwt_handler.create_access_token(
        user_id=admin_user.id,
        email=admin_user.email,
        role=admin_user.role,
        name=admin_user.name,
        extension=admin_user.extension,
    )
