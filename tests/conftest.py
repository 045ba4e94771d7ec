"""
Pytest configuration and fixtures.

Every test gets its own SQLite file database under tmp_path, a mock gateway,
and an in-process event bus with the order status projector subscribed.
"""
import json
import os
from typing import Any, AsyncGenerator, Optional

os.environ["ENV_MODE"] = "development"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_orders.db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from order_api.core.config import get_settings

get_settings.cache_clear()

from order_api.database import build_engine, build_session_maker, get_db, init_db
from order_api.events import InProcessEventBus
from order_api.models import Order, Payment, User
from order_api.services.gateway import MockGatewayClient
from order_api.services.order_status import OrderStatusProjector
from order_api.services.payment import PaymentService, build_payment_service, get_payment_service


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, Any]:
    """Create a fresh database with all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, Any]:
    async with session_maker() as session:
        yield session


@pytest.fixture
def gateway() -> MockGatewayClient:
    return MockGatewayClient()


@pytest.fixture
def bus(session_maker) -> InProcessEventBus:
    bus = InProcessEventBus()
    OrderStatusProjector(session_maker).register(bus)
    return bus


@pytest.fixture
def service(gateway: MockGatewayClient, bus: InProcessEventBus) -> PaymentService:
    return build_payment_service(gateway, events=bus)


# =============================================================================
# SEED DATA
# =============================================================================

async def create_order(
    session_maker: async_sessionmaker[AsyncSession],
    slug: str,
    subtotal: float,
    owner_id: Optional[int] = None,
) -> Order:
    async with session_maker() as session:
        order = Order(
            slug=slug,
            owner_id=owner_id,
            items=json.dumps([{"name": "Iced Latte", "quantity": 1, "unit_price": subtotal}]),
            subtotal=subtotal,
        )
        session.add(order)
        await session.commit()
        return order


async def count_payments(session_maker: async_sessionmaker[AsyncSession]) -> int:
    async with session_maker() as session:
        result = await session.execute(select(func.count(Payment.id)))
        return result.scalar_one()


async def load_order(session_maker: async_sessionmaker[AsyncSession], slug: str) -> Order:
    async with session_maker() as session:
        result = await session.execute(select(Order).where(Order.slug == slug))
        return result.scalar_one()


async def load_user(session_maker: async_sessionmaker[AsyncSession], user_id: int) -> User:
    async with session_maker() as session:
        return await session.get(User, user_id)


def callback_payload(trace_number: Optional[str], status: str = "COMPLETED") -> dict[str, Any]:
    """Gateway callback body carrying one transaction."""
    return {
        "requestTrace": "5b1f8c0e-2f43-4d1a-9a57-0d8f3f0d7c11",
        "requestDateTime": "2026-10-19 09:30:00",
        "requestParameters": {
            "request": {
                "requestParams": {
                    "transactions": [
                        {
                            "transactionEntityAttribute": {"traceNumber": trace_number},
                            "transactionStatus": status,
                            "amount": 90000,
                        }
                    ]
                }
            }
        },
    }


@pytest_asyncio.fixture
async def owner(session_maker) -> User:
    """Owner with enough balance for one ORD3."""
    async with session_maker() as session:
        user = User(slug="linh", name="Linh Tran", phone="0900000001", balance=100000.0)
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def orders(session_maker, owner: User) -> dict[str, Order]:
    """ORD1 and ORD2 without owner, ORD3 owned by ``owner``."""
    return {
        "ORD1": await create_order(session_maker, "ORD1", 45000.0),
        "ORD2": await create_order(session_maker, "ORD2", 90000.0),
        "ORD3": await create_order(session_maker, "ORD3", 60000.0, owner_id=owner.id),
    }


# =============================================================================
# HTTP CLIENT
# =============================================================================

@pytest_asyncio.fixture
async def client(session_maker, service: PaymentService) -> AsyncGenerator[AsyncClient, Any]:
    """Create test HTTP client bound to the test database and service."""
    from order_api.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, Any]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
