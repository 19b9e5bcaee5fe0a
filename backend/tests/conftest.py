"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite file (via aiosqlite) with freshly created
tables. Set TEST_DATABASE_URL to run the same suite against PostgreSQL.
"""

import os

# Must be set before ticketing.core.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("GATEWAY_SERVER_KEY", "test-server-key")
os.environ.setdefault("SERVICE_TOKEN", "test-service-token")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date, time, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ticketing.main import app
from ticketing.core import timezone as tz
from ticketing.core.security import create_access_token
from ticketing.db.base import Base
from ticketing.db.session import get_db, get_session_factory
from ticketing.models import CapacitySlot, Order, OrderItem, ProductOrder, ProductOrderItem, ProductVariant
from ticketing.services.gateway import compute_signature, normalize_gross_amount, normalize_status_code
from ticketing.services.interfaces.memory_intent_storage import InMemoryIntentStorage
from ticketing.services.strategy_factory import get_intent_storage

SERVER_KEY = os.environ["GATEWAY_SERVER_KEY"]
SERVICE_TOKEN = os.environ["SERVICE_TOKEN"]


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def intent_storage() -> InMemoryIntentStorage:
    return InMemoryIntentStorage()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, intent_storage) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, job session factory and intent storage overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_intent_storage] = lambda: intent_storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """Bearer token for the owner of the orders created by make_order."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': 'user-1'})}"}


@pytest.fixture
def service_headers() -> dict:
    return {"X-Service-Token": SERVICE_TOKEN}


@pytest.fixture
def future_date() -> date:
    """A visit date far enough ahead that no session has ended."""
    return tz.today() + timedelta(days=30)


@pytest.fixture
def notification():
    """Build a correctly signed gateway notification."""

    def _build(
        order_id: str,
        transaction_status: str,
        gross_amount="50000.00",
        status_code="200",
        fraud_status: Optional[str] = None,
    ) -> dict:
        payload = {
            "order_id": order_id,
            "status_code": status_code,
            "gross_amount": gross_amount,
            "transaction_status": transaction_status,
            "signature_key": compute_signature(
                order_id,
                normalize_status_code(status_code),
                normalize_gross_amount(gross_amount),
                SERVER_KEY,
            ),
        }
        if fraud_status is not None:
            payload["fraud_status"] = fraud_status
        return payload

    return _build


@pytest_asyncio.fixture
async def make_slot(session_factory):
    """Insert a capacity slot with explicit counters."""

    async def _make(
        ticket_id: int,
        slot_date: date,
        time_slot: Optional[time] = time(9, 0),
        total: int = 100,
        sold: int = 0,
        reserved: int = 0,
        version: int = 0,
    ) -> int:
        async with session_factory() as session:
            slot = CapacitySlot(
                ticket_id=ticket_id,
                date=slot_date,
                time_slot=time_slot,
                total_capacity=total,
                sold_capacity=sold,
                reserved_capacity=reserved,
                version=version,
            )
            session.add(slot)
            await session.commit()
            return slot.id

    return _make


@pytest_asyncio.fixture
async def make_order(session_factory):
    """Insert a pending order with the given line items."""

    async def _make(
        order_number: str,
        items: list[dict],
        user_id: str = "user-1",
        total: int = 50000,
        status: str = "pending",
    ) -> int:
        async with session_factory() as session:
            order = Order(
                order_number=order_number,
                user_id=user_id,
                status=status,
                total=total,
                payment_data=[],
            )
            order.items = [OrderItem(**item) for item in items]
            session.add(order)
            await session.commit()
            return order.id

    return _make


@pytest_asyncio.fixture
async def two_item_order(make_order, make_slot, future_date):
    """
    ORD-1: two 09:00 tickets for ticket 1 and one all-day ticket for
    ticket 2, with both slots reserved for the checkout.
    """
    await make_slot(1, future_date, time(9, 0), total=100, reserved=2)
    await make_slot(2, future_date, None, total=50, reserved=1)
    await make_order(
        "ORD-1",
        [
            {"ticket_id": 1, "selected_date": future_date, "time_slot": time(9, 0), "quantity": 2, "unit_price": 20000},
            {"ticket_id": 2, "selected_date": future_date, "time_slot": None, "quantity": 1, "unit_price": 10000},
        ],
    )
    return "ORD-1"


@pytest_asyncio.fixture
async def make_variant(session_factory):
    """Insert a product variant with explicit stock counters."""

    async def _make(stock: int = 10, reserved: int = 0, product_id: int = 1, name: str = "Tote bag") -> int:
        async with session_factory() as session:
            variant = ProductVariant(product_id=product_id, name=name, stock=stock, reserved_stock=reserved)
            session.add(variant)
            await session.commit()
            return variant.id

    return _make


@pytest_asyncio.fixture
async def make_product_order(session_factory):
    """Insert a product order awaiting payment; items are (variant_id, quantity) pairs."""

    async def _make(
        order_number: str,
        items: list[tuple[int, int]],
        user_id: str = "user-1",
        total: int = 50000,
        payment_status: str = "pending",
        status: str = "awaiting_payment",
    ) -> int:
        async with session_factory() as session:
            order = ProductOrder(
                order_number=order_number,
                user_id=user_id,
                status=status,
                payment_status=payment_status,
                total=total,
                payment_data=[],
            )
            order.items = [
                ProductOrderItem(product_variant_id=variant_id, quantity=quantity) for variant_id, quantity in items
            ]
            session.add(order)
            await session.commit()
            return order.id

    return _make
