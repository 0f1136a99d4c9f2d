from sqlalchemy import Integer, String, TEXT
from sqlalchemy.orm import Mapped, mapped_column

from .base import FulfillmentServiceBaseModel


class MovementType:
    """Inventory movement type constants"""

    SALE = "sale"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    RESTOCK = "restock"
    RESERVED = "reserved"
    UNRESERVED = "unreserved"

    ALL = (SALE, RETURN, ADJUSTMENT, RESTOCK, RESERVED, UNRESERVED)


class InventoryMovement(FulfillmentServiceBaseModel):
    """Append-only record of a single stock change."""

    __tablename__ = "inventory_movements"

    product_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    sku: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(TEXT, default="", nullable=False)

    order_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    return_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    created_by: Mapped[str] = mapped_column(
        String(100), default="system", nullable=False
    )


class StockEffect(FulfillmentServiceBaseModel):
    """Stock change applied for one order line, committed with the product row.

    ``effect_key`` is unique, so a line's sale (or a given return's restore)
    can only ever be applied once. ``quantity`` holds the units that actually
    left or re-entered stock.
    """

    __tablename__ = "stock_effects"

    effect_key: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    line_index: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    effect_type: Mapped[str] = mapped_column(String(20), nullable=False)
    return_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
