"""
Pytest configuration and shared fixtures for Order Desk tests.

Provides an in-memory SQLite session, an httpx client bound to the app with
get_db overridden, and sample order payloads.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
import pytest_asyncio
from typing import AsyncGenerator

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
import db_models  # noqa: F401  (registers tables on Base.metadata)


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def file_session_maker(tmp_path):
    """
    Session factory over a file-backed SQLite database.

    Each session gets its own connection, so concurrent tasks really do
    race on the region counter row.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client for the FastAPI app with the in-memory database.

    Overrides get_db and clears the rate limiter between tests.
    """
    from main import app
    from middleware.rate_limit import get_limiter

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    get_limiter().reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def sample_user_id() -> str:
    return "64f1c0ffee0000000000abcd"


@pytest.fixture
def sample_items() -> list[dict]:
    return [
        {"product_id": "p-100", "name": "Cotton Panjabi", "quantity": 2, "image": None, "price": 1200.0},
        {"product_id": "p-200", "name": "Leather Sandal", "quantity": 1, "image": None, "price": 850.0},
    ]


@pytest.fixture
def dhaka_address() -> dict:
    return {
        "name": "Rahim Uddin",
        "phone": "01700000000",
        "address": "House 12, Road 5",
        "upazilla": "Dhanmondi",
        "state": "Dhaka",
        "postal_code": "1205",
        "country": "Bangladesh",
    }


@pytest.fixture
def order_payload(sample_user_id) -> dict:
    """JSON body for POST /orders, in the storefront's camelCase."""
    return {
        "user": sample_user_id,
        "orderItems": [
            {"product": "p-100", "name": "Cotton Panjabi", "quantity": 2, "price": 1200.0},
        ],
        "shippingAddress": {"name": "Rahim Uddin", "state": "Dhaka", "Upazilla": "Dhanmondi"},
        "paymentMethod": "cash",
        "itemsPrice": 2400.0,
        "shippingPrice": 60.0,
        "totalPrice": 2460.0,
    }
