"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, SQLite in memory)
- Mock external services (HelloAsso, internal services, Redis)
- Test data factories
"""
# הגדרת מפתחות לפני ייבוא hobbyjobs: הולידטור דורש RGPD_ANONYMIZATION_KEY כש-DEBUG=False
import os
os.environ.setdefault("RGPD_ANONYMIZATION_KEY", "test-anonymization-key-do-not-use-in-production")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("HELLOASSO_WEBHOOK_SECRET", "")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from hobbyjobs.core.clock import fixed_clock
from hobbyjobs.db.database import Base, get_db
from hobbyjobs.db.models.payment import Payment, PaymentStatus
from hobbyjobs.db.models.user import User, UserStatus
from hobbyjobs.domain.services.event_publisher import PaymentEventPublisher
from hobbyjobs.main import app


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# רגע קבוע לכל הבדיקות: הרצות job ושאילתות ה-reader יחסיות אליו
NOW = datetime(2026, 3, 1, 8, 0, 0)


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def session_factory(async_engine):
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession):
    """Create test client with database override"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return fixed_clock(NOW)


# ============================================================================
# Mock External Services
# ============================================================================

@pytest.fixture
def mock_redis():
    """Redis client מדומה: publish/set/get/delete"""
    redis = AsyncMock()
    redis.publish = AsyncMock(return_value=1)
    redis.set = AsyncMock(return_value=True)
    redis.get = AsyncMock(return_value=None)
    redis.delete = AsyncMock(return_value=1)
    return redis


@pytest.fixture
def event_publisher(mock_redis) -> PaymentEventPublisher:
    async def _factory():
        return mock_redis

    return PaymentEventPublisher(redis_factory=_factory)


class RecordingTransport(httpx.MockTransport):
    """MockTransport ששומר את כל הבקשות שעברו דרכו"""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def _recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_recording_handler)


@pytest.fixture
def make_transport():
    return RecordingTransport


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def payment_factory(db_session: AsyncSession):
    """Factory for creating test payments"""
    async def _create_payment(
        status: PaymentStatus = PaymentStatus.PENDING,
        helloasso_checkout_id: str | None = "ck-1",
        created_at: datetime | None = None,
        amount: Decimal = Decimal("45.00"),
        family_id: int = 1,
        subscription_id: int = 1,
        id: int | None = None,
    ) -> Payment:
        created_at = created_at or NOW - timedelta(hours=48)
        payment = Payment(
            id=id,
            family_id=family_id,
            subscription_id=subscription_id,
            amount=amount,
            currency="EUR",
            status=status,
            helloasso_checkout_id=helloasso_checkout_id,
            created_at=created_at,
            updated_at=created_at,
        )
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _create_payment


@pytest.fixture
def user_factory(db_session: AsyncSession):
    """Factory for creating test users"""
    async def _create_user(
        email: str = "marie.dupont@example.fr",
        first_name: str = "Marie",
        last_name: str = "Dupont",
        phone: str | None = "+33612345678",
        status: UserStatus = UserStatus.DELETED,
        anonymized: bool = False,
        updated_at: datetime | None = None,
        id: int | None = None,
    ) -> User:
        updated_at = updated_at or NOW - timedelta(days=45)
        user = User(
            id=id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            password_hash="$2b$12$abcdefghijklmnopqrstuv",
            status=status,
            anonymized=anonymized,
            created_at=updated_at - timedelta(days=365),
            updated_at=updated_at,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create_user
