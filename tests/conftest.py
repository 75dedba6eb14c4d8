from collections.abc import AsyncGenerator
from datetime import date
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.core.auth import UserRole, create_access_token
from src.core.database.base import Base
from src.core.database import get_db
from src.main import app
from src.modules.bookings.models import Booking, BookingPaymentStatus, BookingStatus

# Test database URL (in-memory SQLite for speed, or use test PostgreSQL)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
test_async_session = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# pysqlite defers BEGIN until the first write, which breaks SAVEPOINT; emit it explicitly.
@event.listens_for(test_engine.sync_engine, "connect")
def _sqlite_autocommit_driver(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine.sync_engine, "begin")
def _sqlite_explicit_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test and drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    async with test_async_session() as session:
        yield session


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Get test HTTP client with overridden database dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Factory for bearer headers; tokens carry the tenant and role claims."""

    def _headers(
        tenant_id: int = 1, role: UserRole = UserRole.ACCOUNTANT, user_id: int = 1
    ) -> dict[str, str]:
        token = create_access_token(user_id, tenant_id, role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_booking(db_session: AsyncSession):
    """Factory for committed bookings; defaults describe a paid, confirmed sale."""

    async def _make(
        booking_number: str,
        total_amount: str | Decimal,
        booking_date: date | None,
        *,
        tenant_id: int = 1,
        customer_name: str | None = None,
        status: BookingStatus = BookingStatus.CONFIRMED,
        payment_status: BookingPaymentStatus = BookingPaymentStatus.PAID,
    ) -> Booking:
        booking = Booking(
            tenant_id=tenant_id,
            booking_number=booking_number,
            customer_name=customer_name,
            total_amount=Decimal(str(total_amount)),
            booking_date=booking_date,
            status=status.value,
            payment_status=payment_status.value,
        )
        db_session.add(booking)
        await db_session.commit()
        await db_session.refresh(booking)
        return booking

    return _make
