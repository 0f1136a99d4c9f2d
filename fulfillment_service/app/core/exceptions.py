"""
Domain exceptions for the Fulfillment Service.

Services raise these; the error middleware maps them onto HTTP responses.
"""

from typing import Any, Dict, List, Optional


class FulfillmentError(Exception):
    """Base class for fulfillment domain errors."""

    status_code = 400
    error_type = "fulfillment_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class OrderNotFoundError(FulfillmentError):
    status_code = 404
    error_type = "order_not_found"

    def __init__(self, order_id: Any):
        super().__init__(f"Order {order_id} not found", {"order_id": order_id})


class ProductNotFoundError(FulfillmentError):
    status_code = 404
    error_type = "product_not_found"

    def __init__(self, product_id: Any):
        super().__init__(
            f"Product {product_id} not found", {"product_id": product_id}
        )


class InvalidStatusTransitionError(FulfillmentError):
    status_code = 409
    error_type = "invalid_status_transition"

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            f"Invalid status transition from {current_status} to {new_status}",
            {"current_status": current_status, "new_status": new_status},
        )


class ReturnValidationError(FulfillmentError):
    error_type = "return_validation_error"


class StockConflictError(FulfillmentError):
    """Raised when a product row kept changing under a stock update."""

    status_code = 409
    error_type = "stock_conflict"


class OrderDataError(FulfillmentError):
    """Raised when a stored order payload cannot be decoded."""

    status_code = 500
    error_type = "order_data_error"


class InsufficientStockError(FulfillmentError):
    """Raised by checkout when requested items cannot be served from stock."""

    error_type = "insufficient_stock"

    def __init__(
        self, out_of_stock: List[Dict[str, Any]], low_stock: List[Dict[str, Any]]
    ):
        super().__init__(
            "Some items are out of stock or insufficient quantity",
            {
                "outOfStockItems": out_of_stock,
                "lowStockItems": low_stock,
                "canProceed": False,
                "message": "Please adjust your order quantities or wait for restock",
            },
        )
