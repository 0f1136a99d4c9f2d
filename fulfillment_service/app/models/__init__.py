"""
Fulfillment Service Models

This module contains all database models for the Fulfillment Service.
All models inherit from FulfillmentServiceBaseModel which provides common fields.
"""

from .base import FulfillmentServiceBase, FulfillmentServiceBaseModel
from .inventory import InventoryMovement, MovementType, StockEffect
from .order import (
    FulfillmentStatus,
    Order,
    OrderReturn,
    OrderStatus,
    PaymentStatus,
    ReturnCondition,
    ReturnStatus,
)
from .product import Product

__all__ = [
    # Base classes
    "FulfillmentServiceBase",
    "FulfillmentServiceBaseModel",
    # Order models
    "Order",
    "OrderReturn",
    "OrderStatus",
    "PaymentStatus",
    "FulfillmentStatus",
    "ReturnStatus",
    "ReturnCondition",
    # Inventory models
    "Product",
    "InventoryMovement",
    "MovementType",
    "StockEffect",
]
