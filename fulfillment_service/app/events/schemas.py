"""
Fulfillment Service Event Schemas
=================================

Event data schemas specific to the fulfillment domain.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class OrderCreatedEventData(BaseModel):
    """Data schema for order creation events"""

    order_id: int
    order_number: str
    customer_id: str
    total_amount: float
    items: List[Dict[str, Any]]
    source: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class OrderStatusUpdatedEventData(BaseModel):
    """Data schema for order status update events"""

    order_id: int
    order_number: str
    old_status: str
    new_status: str
    inventory_failures: int = 0
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class OrderReturnProcessedEventData(BaseModel):
    """Data schema for processed return events"""

    order_id: int
    order_number: str
    return_id: int
    return_number: str
    total_refund_amount: float
    shipping_refund: float
    processing_fee: float
    order_status: str
    processed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class InventoryMovementRecordedEventData(BaseModel):
    """Data schema for ledger entries"""

    movement_id: int
    product_id: int
    movement_type: str
    quantity_change: int
    quantity_before: int
    quantity_after: int
    order_id: Optional[int] = None
    return_id: Optional[int] = None
    recorded_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
