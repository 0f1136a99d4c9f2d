from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class InventoryMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    product_name: str
    sku: str
    movement_type: str
    quantity_change: int
    quantity_before: int
    quantity_after: int
    reason: str
    order_id: Optional[int] = None
    return_id: Optional[int] = None
    created_by: str
    created_at: datetime


class MovementContext(BaseModel):
    """Why a stock change happened and what it belongs to"""

    reason: str = ""
    order_id: Optional[int] = None
    return_id: Optional[int] = None
    created_by: str = "system"


class MovementFilters(BaseModel):
    product_id: Optional[int] = None
    movement_type: Optional[str] = None
    order_id: Optional[int] = None
    return_id: Optional[int] = None
    created_by: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


class MovementListResponse(BaseModel):
    movements: List[InventoryMovementResponse]
    total: int


class MovementSummary(BaseModel):
    total_in: int = 0
    total_out: int = 0
    net_change: int = 0
    movements_by_type: Dict[str, int] = Field(default_factory=dict)


class StockAdjustmentRequest(BaseModel):
    product_id: int
    quantity_change: int = Field(..., description="Positive to add, negative to remove")
    reason: str = Field(..., min_length=1, max_length=255)
    created_by: str = "admin"


class ItemOutcome(BaseModel):
    """Result of one line item's stock operation"""

    product_id: int
    line_index: Optional[int] = None
    quantity: int
    success: bool
    skipped: bool = False
    previous_stock: Optional[int] = None
    new_stock: Optional[int] = None
    error: Optional[str] = None


class InventoryOperationResult(BaseModel):
    """Per-item outcome of a batch of stock operations"""

    operation: Literal["reduce", "restore", "adjust"]
    outcomes: List[ItemOutcome] = Field(default_factory=list)
    movements: List[InventoryMovementResponse] = Field(default_factory=list)

    @property
    def successful(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ItemOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def has_failures(self) -> bool:
        return any(not o.success for o in self.outcomes)


class StockAvailability(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")
    name: str
    requested: Optional[int] = None
    available: int


class AvailabilityReport(BaseModel):
    out_of_stock: List[StockAvailability] = Field(default_factory=list)
    low_stock: List[StockAvailability] = Field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return not self.out_of_stock


class LowStockAlert(BaseModel):
    product_id: int
    product_name: str
    sku: Optional[str] = None
    current_stock: int
    minimum_stock: int
    alert_level: Literal["low", "critical", "out_of_stock"]
    last_movement: Optional[datetime] = None


class StockAdjustmentResponse(BaseModel):
    product_id: int
    previous_stock: int
    new_stock: int
    movement: Optional[InventoryMovementResponse] = None


class LowStockAlertList(BaseModel):
    alerts: List[LowStockAlert]
    total: int
