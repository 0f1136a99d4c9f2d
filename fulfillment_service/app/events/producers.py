from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..utils.logging import setup_fulfillment_logging as setup_logging
from .base import BaseEvent, EventPublisher
from .schemas import (
    InventoryMovementRecordedEventData,
    OrderCreatedEventData,
    OrderReturnProcessedEventData,
    OrderStatusUpdatedEventData,
)

logger = setup_logging("fulfillment_service.events.producer")


class BaseEventPublisher:
    """Base class for event publishers with common functionality"""

    def __init__(
        self,
        event_publisher: EventPublisher,
        source_service: str = "fulfillment-service",
    ):
        self.event_publisher = event_publisher
        self.source_service = source_service

    async def _publish_event(
        self,
        event: BaseEvent,
        topic: str,
        event_name: str,
        log_data: Dict[str, Any],
    ) -> None:
        """Publish and log; a failed publish never fails the caller's request"""
        try:
            await self.event_publisher.publish(event, topic=topic)
            logger.info(f"Published {event_name} event.", extra=log_data)
        except Exception as e:
            logger.error(
                f"Failed to publish {event_name} event: {e}",
                extra={**log_data, "event_id": event.event_id},
            )


class FulfillmentEventProducer(BaseEventPublisher):
    """Handles order lifecycle and inventory ledger events"""

    async def publish_order_created(
        self,
        order_id: int,
        order_number: str,
        customer_id: str,
        total_amount: float,
        items: List[Dict[str, Any]],
        source: str = "admin",
        correlation_id: Optional[str] = None,
    ) -> None:
        event_data = OrderCreatedEventData(
            order_id=order_id,
            order_number=order_number,
            customer_id=customer_id,
            total_amount=total_amount,
            items=items,
            source=source,
            created_at=datetime.now(timezone.utc),
        )
        event = BaseEvent(
            event_type="order.created",
            source_service=self.source_service,
            correlation_id=correlation_id,
            data=event_data.to_dict(),
        )
        await self._publish_event(
            event=event,
            topic="order.events",
            event_name="order created",
            log_data={"order_id": order_id, "order_number": order_number},
        )

    async def publish_order_status_updated(
        self,
        order_id: int,
        order_number: str,
        old_status: str,
        new_status: str,
        inventory_failures: int = 0,
        correlation_id: Optional[str] = None,
    ) -> None:
        event_data = OrderStatusUpdatedEventData(
            order_id=order_id,
            order_number=order_number,
            old_status=old_status,
            new_status=new_status,
            inventory_failures=inventory_failures,
            updated_at=datetime.now(timezone.utc),
        )
        event = BaseEvent(
            event_type="order.status_updated",
            source_service=self.source_service,
            correlation_id=correlation_id,
            data=event_data.to_dict(),
        )
        await self._publish_event(
            event=event,
            topic="order.events",
            event_name="order status updated",
            log_data={
                "order_id": order_id,
                "old_status": old_status,
                "new_status": new_status,
            },
        )

    async def publish_return_processed(
        self,
        order_id: int,
        order_number: str,
        return_id: int,
        return_number: str,
        total_refund_amount: float,
        shipping_refund: float,
        processing_fee: float,
        order_status: str,
        correlation_id: Optional[str] = None,
    ) -> None:
        event_data = OrderReturnProcessedEventData(
            order_id=order_id,
            order_number=order_number,
            return_id=return_id,
            return_number=return_number,
            total_refund_amount=total_refund_amount,
            shipping_refund=shipping_refund,
            processing_fee=processing_fee,
            order_status=order_status,
            processed_at=datetime.now(timezone.utc),
        )
        event = BaseEvent(
            event_type="order.return_processed",
            source_service=self.source_service,
            correlation_id=correlation_id,
            data=event_data.to_dict(),
        )
        await self._publish_event(
            event=event,
            topic="order.events",
            event_name="order return processed",
            log_data={
                "order_id": order_id,
                "return_number": return_number,
                "total_refund_amount": total_refund_amount,
            },
        )

    async def publish_inventory_movement(
        self,
        movement_id: int,
        product_id: int,
        movement_type: str,
        quantity_change: int,
        quantity_before: int,
        quantity_after: int,
        order_id: Optional[int] = None,
        return_id: Optional[int] = None,
    ) -> None:
        event_data = InventoryMovementRecordedEventData(
            movement_id=movement_id,
            product_id=product_id,
            movement_type=movement_type,
            quantity_change=quantity_change,
            quantity_before=quantity_before,
            quantity_after=quantity_after,
            order_id=order_id,
            return_id=return_id,
            recorded_at=datetime.now(timezone.utc),
        )
        event = BaseEvent(
            event_type="inventory.movement_recorded",
            source_service=self.source_service,
            data=event_data.to_dict(),
        )
        await self._publish_event(
            event=event,
            topic="inventory.events",
            event_name="inventory movement recorded",
            log_data={
                "movement_id": movement_id,
                "product_id": product_id,
                "movement_type": movement_type,
            },
        )
