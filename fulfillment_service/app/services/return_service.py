"""
Processing of customer returns against a delivered or shipped order.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import OrderNotFoundError
from ..events.producers import FulfillmentEventProducer
from ..models.base import utcnow
from ..models.order import FulfillmentStatus, OrderReturn, OrderStatus, ReturnStatus
from ..repository.order_repository import OrderRepository
from ..repository.return_repository import OrderReturnRepository
from ..schemas.inventory import MovementContext
from ..schemas.returns import (
    OrderReturnResponse,
    ProcessReturnRequest,
    ProcessReturnResponse,
)
from ..utils.codec import decode_items, to_order_response
from ..utils.logging import setup_fulfillment_logging as setup_logging
from ..utils.numbering import generate_return_number
from ..utils.retry import retry_on_collision
from .order_state_machine import ensure_transition_allowed
from .return_calculator import (
    allocate_to_lines,
    classify_return,
    compute_refund,
    is_restorable,
    units_to_restock,
    validate_return_items,
)
from .stock_service import StockLine, StockService

logger = setup_logging("fulfillment_service.return_service")

RETURN_NUMBER_ATTEMPTS = 3


class ReturnService:
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

    async def process_return(
        self,
        order_id: int,
        request: ProcessReturnRequest,
        correlation_id: Optional[str] = None,
    ) -> ProcessReturnResponse:
        """Record a return, put sellable units back and refund the order.

        Steps, in order: validate against what was ordered and already
        returned, create the return as ``processing``, restore stock for
        ``new``/``used`` items, complete the return, then update the order
        status, payment status, refunded total and notes.

        Restocking is per order line and never exceeds what the line's sale
        took out of stock, so returns against an undelivered order refund
        without restocking.
        """
        order = await self.order_repository.get_order_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        items = decode_items(order.items)
        previously_returned = await self.return_repository.get_returned_quantities(
            order_id
        )
        records = validate_return_items(items, previously_returned, request.items)

        refund = compute_refund(records)
        ordered_total = sum(item.quantity for item in items)
        returned_total = sum(previously_returned.values()) + sum(
            record.quantity for record in records
        )
        new_status, payment_status = classify_return(ordered_total, returned_total)
        ensure_transition_allowed(order.status, new_status)

        order_number = order.order_number
        now = utcnow()

        async def insert(number: str) -> OrderReturn:
            return await self.return_repository.create_return(
                order_id=order_id,
                return_number=number,
                return_reason=request.return_reason,
                return_method=request.return_method,
                return_status=ReturnStatus.PROCESSING,
                items=[record.model_dump() for record in records],
                total_refund_amount=refund,
                shipping_refund=request.shipping_refund,
                processing_fee=request.processing_fee,
                notes=request.notes,
                requested_at=now,
                processed_at=now,
            )

        order_return = await retry_on_collision(
            insert,
            generate_return_number,
            self.session.rollback,
            max_attempts=RETURN_NUMBER_ATTEMPTS,
            label="Return number",
        )
        return_id = order_return.id
        return_number = order_return.return_number

        allocations = allocate_to_lines(items, previously_returned, records)
        restock = units_to_restock(records, allocations)
        inventory = await self.stock_service.restore_for_items(
            [
                StockLine(items[index].product_id, units, index)
                for index, units in restock.items()
            ],
            MovementContext(
                reason=f"Return from order {order_number}: {request.return_reason}",
                order_id=order_id,
                return_id=return_id,
            ),
        )
        if inventory.has_failures:
            logger.warning(
                "Some returned items could not be restored to inventory",
                extra={
                    "order_id": order_id,
                    "return_id": return_id,
                    "failed_items": [o.model_dump() for o in inventory.failed],
                },
            )

        restored_lines = {
            outcome.line_index
            for outcome in inventory.successful
            if not outcome.skipped
        }
        for record, allocation in zip(records, allocations):
            record.returned_to_inventory = is_restorable(record.condition) and any(
                index in restored_lines for index in allocation
            )

        # Stock retries may have rolled the session back
        await self.session.refresh(order_return)
        await self.session.refresh(order)

        order_return = await self.return_repository.update_return(
            order_return,
            {
                "items": [record.model_dump() for record in records],
                "return_status": ReturnStatus.COMPLETED,
                "completed_at": utcnow(),
            },
        )

        note = (
            f"[{now:%Y-%m-%d}] Return {return_number}: "
            f"{sum(record.quantity for record in records)} unit(s), "
            f"refund {refund:.2f}. Reason: {request.return_reason}"
        )
        order_updates = {
            "status": new_status,
            "payment_status": payment_status,
            "total_returned_amount": round(
                (order.total_returned_amount or 0) + refund, 2
            ),
            "notes": f"{order.notes}\n{note}" if order.notes else note,
        }
        if new_status == OrderStatus.RETURNED:
            order_updates["fulfillment_status"] = FulfillmentStatus.RETURNED
        order = await self.order_repository.update_order(order, order_updates)

        logger.info(
            "Return processed",
            extra={
                "order_id": order_id,
                "return_id": return_id,
                "return_number": return_number,
                "refund": refund,
                "order_status": new_status,
                "restored_lines": sorted(restored_lines),
            },
        )

        if self.event_producer:
            await self.event_producer.publish_return_processed(
                order_id=order_id,
                order_number=order_number,
                return_id=return_id,
                return_number=return_number,
                total_refund_amount=refund,
                shipping_refund=request.shipping_refund,
                processing_fee=request.processing_fee,
                order_status=new_status,
                correlation_id=correlation_id,
            )

        return ProcessReturnResponse(
            order_return=OrderReturnResponse.model_validate(order_return),
            order=to_order_response(order),
            inventory_movements=inventory.movements,
        )
