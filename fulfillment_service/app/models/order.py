from datetime import datetime
from typing import Any

from sqlalchemy import DECIMAL, JSON, TEXT, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import FulfillmentServiceBaseModel, utcnow


class OrderStatus:
    """Order status constants"""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    PARTIALLY_RETURNED = "partially_returned"

    ALL = (
        PENDING,
        PROCESSING,
        SHIPPED,
        DELIVERED,
        CANCELLED,
        RETURNED,
        PARTIALLY_RETURNED,
    )


class PaymentStatus:
    """Payment status constants"""

    PENDING = "pending"
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"

    ALL = (PENDING, UNPAID, PAID, FAILED, REFUNDED, PARTIALLY_REFUNDED)


class FulfillmentStatus:
    """Shipment progress, tracked separately from the order status"""

    UNFULFILLED = "unfulfilled"
    PARTIAL = "partial"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    RETURNED = "returned"

    ALL = (UNFULFILLED, PARTIAL, FULFILLED, CANCELLED, RETURNED)


class ReturnStatus:
    PROCESSING = "processing"
    COMPLETED = "completed"


class ReturnCondition:
    NEW = "new"
    USED = "used"
    DAMAGED = "damaged"

    RESTORABLE = (NEW, USED)


class Order(FulfillmentServiceBaseModel):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    # Public checkout code (ORD-yyyymmdd-XXXXXX), absent for admin-created orders
    order_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    customer_id: Mapped[str] = mapped_column(String(100), nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    customer_email: Mapped[str] = mapped_column(
        String(255), default="", nullable=False
    )
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)

    subtotal: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), nullable=False
    )
    shipping_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    tax_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    discount_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    total_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), nullable=False
    )
    total_returned_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    status: Mapped[str] = mapped_column(
        String(30), default=OrderStatus.PENDING, nullable=False, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        String(30), default=PaymentStatus.PENDING, nullable=False, index=True
    )
    fulfillment_status: Mapped[str] = mapped_column(
        String(30), default=FulfillmentStatus.UNFULFILLED, nullable=False
    )
    payment_method: Mapped[str] = mapped_column(String(50), default="", nullable=False)

    tracking_number: Mapped[str] = mapped_column(
        String(100), default="", nullable=False
    )
    carrier: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    billing_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    notes: Mapped[str] = mapped_column(TEXT, default="", nullable=False)

    shipped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class OrderReturn(FulfillmentServiceBaseModel):
    __tablename__ = "order_returns"

    # Non-owning back-reference; deleting an order leaves its returns in place
    order_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    return_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False
    )
    return_reason: Mapped[str] = mapped_column(TEXT, nullable=False)
    return_method: Mapped[str] = mapped_column(String(20), nullable=False)
    return_status: Mapped[str] = mapped_column(
        String(20), default=ReturnStatus.PROCESSING, nullable=False
    )

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    total_refund_amount: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), nullable=False
    )
    shipping_refund: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    processing_fee: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    notes: Mapped[str] = mapped_column(TEXT, default="", nullable=False)

    requested_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
