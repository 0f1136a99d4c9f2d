"""
Order status transitions and their inventory side effects.

    delivered  -> stock reduced once per line item (sale movements)
    cancelled  -> units taken by the sale go back, once per line item
    returned   -> as cancelled, less the units earlier returns handled

Inventory failures never block the status change; they are logged and
reported back in the result.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import FulfillmentError, InvalidStatusTransitionError
from ..events.producers import FulfillmentEventProducer
from ..models.base import utcnow
from ..models.order import FulfillmentStatus, Order, OrderStatus
from ..repository.order_repository import OrderRepository
from ..repository.return_repository import OrderReturnRepository
from ..schemas.inventory import InventoryOperationResult, MovementContext
from ..schemas.order import OrderItemData
from ..utils.codec import decode_items
from ..utils.logging import setup_fulfillment_logging as setup_logging
from .return_calculator import returned_by_line
from .stock_service import StockLine, StockService

logger = setup_logging("fulfillment_service.order_state_machine")

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING: frozenset(
        {
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
        }
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.SHIPPED: frozenset(
        {
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
            OrderStatus.RETURNED,
            OrderStatus.PARTIALLY_RETURNED,
        }
    ),
    OrderStatus.DELIVERED: frozenset(
        {
            OrderStatus.CANCELLED,
            OrderStatus.RETURNED,
            OrderStatus.PARTIALLY_RETURNED,
        }
    ),
    OrderStatus.PARTIALLY_RETURNED: frozenset(
        {OrderStatus.RETURNED, OrderStatus.PARTIALLY_RETURNED}
    ),
    # Terminal
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

CANCELLATION_REASON = "Order cancelled by admin"
RETURN_REASON = "Order returned"


def ensure_transition_allowed(current_status: str, new_status: str) -> None:
    """Raise unless ``new_status`` may follow ``current_status``.

    Re-applying the current status is always allowed.
    """
    if new_status not in OrderStatus.ALL:
        raise FulfillmentError(
            f"Invalid status: {new_status}",
            {"status": new_status, "allowed": list(OrderStatus.ALL)},
        )
    if new_status == current_status:
        return
    if new_status not in ALLOWED_TRANSITIONS.get(current_status, frozenset()):
        raise InvalidStatusTransitionError(current_status, new_status)


@dataclass
class StatusChangeResult:
    order: Order
    previous_status: str
    inventory: Optional[InventoryOperationResult] = None

    @property
    def status_changed(self) -> bool:
        return self.order.status != self.previous_status


class OrderStateMachine:
    def __init__(
        self,
        session: AsyncSession,
        stock_service: StockService,
        event_producer: Optional[FulfillmentEventProducer] = None,
    ):
        self.session = session
        self.stock_service = stock_service
        self.event_producer = event_producer
        self.order_repository = OrderRepository(session)
        self.return_repository = OrderReturnRepository(session)

    def _status_updates(self, new_status: str) -> Dict[str, Any]:
        now = utcnow()
        updates: Dict[str, Any] = {"status": new_status}
        if new_status == OrderStatus.SHIPPED:
            updates["shipped_at"] = now
        elif new_status == OrderStatus.DELIVERED:
            updates["delivered_at"] = now
            updates["fulfillment_status"] = FulfillmentStatus.FULFILLED
        elif new_status == OrderStatus.CANCELLED:
            updates["cancelled_at"] = now
            updates["fulfillment_status"] = FulfillmentStatus.CANCELLED
        elif new_status == OrderStatus.RETURNED:
            updates["fulfillment_status"] = FulfillmentStatus.RETURNED
        return updates

    async def apply_status_change(
        self,
        order: Order,
        new_status: str,
        extra_updates: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ) -> StatusChangeResult:
        """Move an order to ``new_status`` and run the matching stock effect.

        Explicit values in ``extra_updates`` win over the stamps this method
        would otherwise set. The order row is written before any stock is
        touched.
        """
        previous_status = order.status
        ensure_transition_allowed(previous_status, new_status)

        # Decode up front so a corrupt order fails before anything is written
        items = decode_items(order.items)
        order_id = order.id
        order_number = order.order_number

        updates: Dict[str, Any] = {}
        if new_status != previous_status:
            updates.update(self._status_updates(new_status))
        updates.update(extra_updates or {})
        if updates:
            order = await self.order_repository.update_order(order, updates)

        logger.info(
            "Order status updated",
            extra={
                "order_id": order_id,
                "order_number": order_number,
                "old_status": previous_status,
                "new_status": new_status,
            },
        )

        inventory = await self._apply_inventory_effect(
            order_id, order_number, new_status, items
        )
        if inventory is not None:
            # Stock retries roll the session back, which expires the order
            await self.session.refresh(order)
            if inventory.has_failures:
                logger.warning(
                    "Inventory update incomplete for order status change",
                    extra={
                        "order_id": order_id,
                        "new_status": new_status,
                        "failed_items": [
                            outcome.model_dump() for outcome in inventory.failed
                        ],
                    },
                )

        if self.event_producer and new_status != previous_status:
            await self.event_producer.publish_order_status_updated(
                order_id=order_id,
                order_number=order_number,
                old_status=previous_status,
                new_status=new_status,
                inventory_failures=len(inventory.failed) if inventory else 0,
                correlation_id=correlation_id,
            )

        return StatusChangeResult(
            order=order, previous_status=previous_status, inventory=inventory
        )

    async def _apply_inventory_effect(
        self,
        order_id: int,
        order_number: str,
        new_status: str,
        items: List[OrderItemData],
    ) -> Optional[InventoryOperationResult]:
        if new_status == OrderStatus.DELIVERED:
            return await self.stock_service.reduce_for_items(
                items,
                MovementContext(
                    reason=f"Sale via order {order_number}", order_id=order_id
                ),
            )
        if new_status == OrderStatus.CANCELLED:
            return await self.stock_service.restore_for_items(
                items, MovementContext(reason=CANCELLATION_REASON, order_id=order_id)
            )
        if new_status == OrderStatus.RETURNED:
            remaining = await self._unreturned_lines(order_id, items)
            return await self.stock_service.restore_for_items(
                remaining, MovementContext(reason=RETURN_REASON, order_id=order_id)
            )
        return None

    async def _unreturned_lines(
        self, order_id: int, items: List[OrderItemData]
    ) -> List[StockLine]:
        """Ordered units per line minus units already handled by returns"""
        returned = await self.return_repository.get_returned_quantities(order_id)
        taken = returned_by_line(items, returned)
        return [
            StockLine(item.product_id, item.quantity - taken.get(index, 0), index)
            for index, item in enumerate(items)
            if item.quantity > taken.get(index, 0)
        ]
