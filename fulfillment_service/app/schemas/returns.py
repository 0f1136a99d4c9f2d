from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .inventory import InventoryMovementResponse
from .order import OrderResponse


class ReturnItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    condition: Literal["new", "used", "damaged"] = "new"
    reason: str = ""


class ProcessReturnRequest(BaseModel):
    return_reason: str = Field(..., min_length=1)
    return_method: Literal["pickup", "drop_off", "mail"] = "mail"
    items: List[ReturnItemRequest] = Field(..., min_length=1)
    shipping_refund: float = Field(0, ge=0)
    processing_fee: float = Field(0, ge=0)
    notes: str = ""


class ReturnItemRecord(BaseModel):
    """Returned line as stored on the return document"""

    product_id: int
    product_name: str = ""
    sku: str = ""
    quantity: int
    condition: str
    reason: str = ""
    price: float
    refund_amount: float
    returned_to_inventory: bool = False


class OrderReturnResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    return_number: str
    return_reason: str
    return_method: str
    return_status: str
    items: List[ReturnItemRecord]
    total_refund_amount: float
    shipping_refund: float
    processing_fee: float
    notes: str
    requested_at: datetime
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ProcessReturnResponse(BaseModel):
    # "return" is a keyword, so the field is aliased on the way out
    model_config = ConfigDict(populate_by_name=True)

    order_return: OrderReturnResponse = Field(..., alias="return")
    order: OrderResponse
    inventory_movements: List[InventoryMovementResponse]
