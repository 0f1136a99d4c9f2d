"""
Fulfillment schemas package
"""

from .inventory import (
    AvailabilityReport,
    InventoryMovementResponse,
    InventoryOperationResult,
    ItemOutcome,
    LowStockAlert,
    LowStockAlertList,
    MovementContext,
    MovementFilters,
    MovementListResponse,
    MovementSummary,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
    StockAvailability,
)
from .order import (
    AdminOrderCreate,
    CheckoutItem,
    CheckoutOrderSummary,
    CheckoutRequest,
    CheckoutResponse,
    DeleteOrderResponse,
    OrderEnvelope,
    OrderItemData,
    OrderListResponse,
    OrderResponse,
    OrderStats,
    OrderUpdate,
)
from .returns import (
    OrderReturnResponse,
    ProcessReturnRequest,
    ProcessReturnResponse,
    ReturnItemRecord,
    ReturnItemRequest,
)

__all__ = [
    "OrderItemData",
    "AdminOrderCreate",
    "OrderUpdate",
    "OrderResponse",
    "OrderStats",
    "OrderListResponse",
    "OrderEnvelope",
    "DeleteOrderResponse",
    # Checkout
    "CheckoutItem",
    "CheckoutRequest",
    "CheckoutOrderSummary",
    "CheckoutResponse",
    # Returns
    "ReturnItemRequest",
    "ProcessReturnRequest",
    "ReturnItemRecord",
    "OrderReturnResponse",
    "ProcessReturnResponse",
    # Inventory
    "InventoryMovementResponse",
    "MovementContext",
    "MovementFilters",
    "MovementListResponse",
    "MovementSummary",
    "StockAdjustmentRequest",
    "StockAdjustmentResponse",
    "ItemOutcome",
    "InventoryOperationResult",
    "StockAvailability",
    "AvailabilityReport",
    "LowStockAlert",
    "LowStockAlertList",
]
