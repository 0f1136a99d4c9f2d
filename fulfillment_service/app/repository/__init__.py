from .inventory_repository import InventoryMovementRepository
from .order_repository import OrderRepository
from .product_repository import ProductRepository
from .return_repository import OrderReturnRepository

__all__ = [
    "OrderRepository",
    "OrderReturnRepository",
    "ProductRepository",
    "InventoryMovementRepository",
]
