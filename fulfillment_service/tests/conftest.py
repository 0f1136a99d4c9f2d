"""
Pytest configuration and fixtures for Fulfillment Service tests.
"""

import os
import uuid
from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient

# Set up test environment before the settings singleton is created
os.environ["ENVIRONMENT"] = "test"
os.environ["FULFILLMENT_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EVENTS_ENABLED"] = "false"
os.environ["LIST_QUERY_RETRY_DELAY_SECONDS"] = "0"

from fulfillment_service.app.api.deps import get_async_session
from fulfillment_service.app.core.database import FulfillmentDatabaseManager
from fulfillment_service.app.main import app
from fulfillment_service.app.models import Order, OrderStatus, PaymentStatus, Product
from fulfillment_service.app.repository.order_repository import OrderRepository
from fulfillment_service.app.repository.product_repository import ProductRepository


@pytest.fixture
async def db_manager() -> AsyncGenerator[FulfillmentDatabaseManager, None]:
    """Fresh in-memory database per test."""
    manager = FulfillmentDatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
async def db_session(db_manager) -> AsyncGenerator[Any, None]:
    async with db_manager.async_session_maker() as session:
        yield session


@pytest.fixture
async def client(db_manager) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, bound to the per-test database."""

    async def override_session():
        async with db_manager.async_session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def product_factory(db_session):
    async def create_product(**overrides: Any) -> Product:
        data: Dict[str, Any] = {
            "name": "Paracetamol 500mg",
            "sku": f"PARA-{uuid.uuid4().hex[:8]}",
            "price": 10.0,
            "units": 5,
            "stock_quantity": 5,
        }
        data.update(overrides)
        product = Product(**data)
        db_session.add(product)
        await db_session.commit()
        await db_session.refresh(product)
        return product

    return create_product


def line_item(product: Product, quantity: int, price: Optional[float] = None):
    return {
        "product_id": product.id,
        "product_name": product.name,
        "sku": product.sku,
        "quantity": quantity,
        "price": product.price if price is None else price,
    }


@pytest.fixture
def order_factory(db_session):
    async def create_order(
        items: List[Dict[str, Any]],
        status: str = OrderStatus.PENDING,
        **overrides: Any,
    ) -> Order:
        subtotal = round(sum(i["price"] * i["quantity"] for i in items), 2)
        data: Dict[str, Any] = {
            "order_number": f"ORD-TEST-{uuid.uuid4().hex[:10]}",
            "customer_id": "cust-1",
            "customer_name": "Jane Doe",
            "customer_email": "jane@example.com",
            "items": items,
            "subtotal": subtotal,
            "total_amount": subtotal,
            "status": status,
            "payment_status": PaymentStatus.PAID,
            "shipping_address": {"street": "1 Main St", "city": "Springfield"},
            "billing_address": {"street": "1 Main St", "city": "Springfield"},
        }
        data.update(overrides)
        return await OrderRepository(db_session).create_order(**data)

    return create_order


@pytest.fixture
def stock_of(db_manager):
    """Read a product's stock through a separate session."""

    async def read(product_id: int) -> Dict[str, Optional[int]]:
        async with db_manager.async_session_maker() as session:
            product = await ProductRepository(session).get_product_by_id(product_id)
            assert product is not None
            return {"units": product.units, "stockQuantity": product.stock_quantity}

    return read


@pytest.fixture
def make_line():
    return line_item
