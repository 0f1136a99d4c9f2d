"""
Inventory ledger: append-only record of every stock change.

Writing to the ledger is best effort. A failed write is logged and the
stock change it describes stands.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..events.producers import FulfillmentEventProducer
from ..models.inventory import InventoryMovement, MovementType
from ..repository.inventory_repository import InventoryMovementRepository
from ..schemas.inventory import MovementContext, MovementFilters, MovementSummary
from ..utils.logging import setup_fulfillment_logging as setup_logging

logger = setup_logging("fulfillment_service.inventory_ledger")


class InventoryLedger:
    def __init__(
        self,
        session: AsyncSession,
        event_producer: Optional[FulfillmentEventProducer] = None,
    ):
        self.session = session
        self.event_producer = event_producer
        self.movement_repository = InventoryMovementRepository(session)

    async def log_movement(
        self,
        product_id: int,
        sku: Optional[str],
        movement_type: str,
        quantity_change: int,
        context: MovementContext,
        *,
        product_name: str = "",
        quantity_before: int = 0,
        quantity_after: int = 0,
    ) -> Optional[InventoryMovement]:
        """Append one movement. Returns None when the write failed."""
        if movement_type not in MovementType.ALL:
            logger.error(
                "Refusing to log unknown movement type",
                extra={"product_id": product_id, "movement_type": movement_type},
            )
            return None

        try:
            movement = await self.movement_repository.create_movement(
                product_id=product_id,
                product_name=product_name or "",
                sku=sku or "",
                movement_type=movement_type,
                quantity_change=quantity_change,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
                reason=context.reason,
                order_id=context.order_id,
                return_id=context.return_id,
                created_by=context.created_by,
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                f"Failed to log inventory movement: {e}",
                extra={
                    "product_id": product_id,
                    "movement_type": movement_type,
                    "quantity_change": quantity_change,
                    "order_id": context.order_id,
                },
            )
            return None

        logger.info(
            "Inventory movement logged",
            extra={
                "movement_id": movement.id,
                "product_id": product_id,
                "movement_type": movement_type,
                "quantity_change": quantity_change,
                "quantity_after": quantity_after,
            },
        )

        if self.event_producer:
            await self.event_producer.publish_inventory_movement(
                movement_id=movement.id,
                product_id=product_id,
                movement_type=movement_type,
                quantity_change=quantity_change,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
                order_id=context.order_id,
                return_id=context.return_id,
            )

        return movement

    async def list_movements(
        self, filters: MovementFilters, limit: int = 50, offset: int = 0
    ) -> Tuple[List[InventoryMovement], int]:
        return await self.movement_repository.list_movements(
            filters, limit=limit, offset=offset
        )

    async def summarize(
        self,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> MovementSummary:
        """Units in, units out and movement counts per type over a window"""
        rows = await self.movement_repository.summarize(date_from, date_to)
        summary = MovementSummary()
        for movement_type, count, total_in, total_out in rows:
            summary.movements_by_type[movement_type] = count
            summary.total_in += total_in
            summary.total_out += total_out
        summary.net_change = summary.total_in - summary.total_out
        return summary
