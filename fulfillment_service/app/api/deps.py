"""
FastAPI dependency injection for Fulfillment Service

Provides database sessions, the event producer, the order and inventory
services, and correlation ID extraction.
"""

from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db_session
from ..core.events import get_event_producer
from ..events.producers import FulfillmentEventProducer
from ..middleware.request_context import CORRELATION_HEADER
from ..services.inventory_ledger import InventoryLedger
from ..services.order_service import OrderService
from ..services.stock_service import StockService

# =====================================================
# DATABASE DEPENDENCIES
# =====================================================


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide async database session"""
    async for session in get_db_session():
        yield session


# =====================================================
# EVENT PUBLISHER DEPENDENCIES
# =====================================================


def get_fulfillment_event_producer() -> Optional[FulfillmentEventProducer]:
    """Provide FulfillmentEventProducer instance, None when events are off"""
    return get_event_producer()


# =====================================================
# SERVICE DEPENDENCIES
# =====================================================


def get_order_service(
    session: AsyncSession = Depends(get_async_session),
    event_producer: Optional[FulfillmentEventProducer] = Depends(
        get_fulfillment_event_producer
    ),
) -> OrderService:
    """Provide OrderService instance with database and event publishing"""
    return OrderService(session, event_producer)


def get_inventory_ledger(
    session: AsyncSession = Depends(get_async_session),
    event_producer: Optional[FulfillmentEventProducer] = Depends(
        get_fulfillment_event_producer
    ),
) -> InventoryLedger:
    return InventoryLedger(session, event_producer)


def get_stock_service(
    session: AsyncSession = Depends(get_async_session),
    ledger: InventoryLedger = Depends(get_inventory_ledger),
) -> StockService:
    return StockService(session, ledger)


# =====================================================
# REQUEST CONTEXT DEPENDENCIES
# =====================================================


def get_correlation_id(request: Request) -> Optional[str]:
    """Correlation ID set by the middleware, or the raw header"""
    return getattr(request.state, "correlation_id", None) or request.headers.get(
        CORRELATION_HEADER
    )


# =====================================================
# COMMON DEPENDENCY ALIASES
# =====================================================

# Core dependencies
CorrelationIdDep = Depends(get_correlation_id)
DatabaseDep = Depends(get_async_session)

# Service dependencies aliases
OrderServiceDep = Depends(get_order_service)
InventoryLedgerDep = Depends(get_inventory_ledger)
StockServiceDep = Depends(get_stock_service)
FulfillmentEventProducerDep = Depends(get_fulfillment_event_producer)
