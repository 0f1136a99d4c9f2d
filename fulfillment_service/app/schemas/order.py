from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OrderItemData(BaseModel):
    """Line item embedded in an order document"""

    model_config = ConfigDict(extra="allow")

    product_id: int
    product_name: str = ""
    sku: str = ""
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    total: Optional[float] = None
    size: Optional[str] = None
    color: Optional[str] = None

    @model_validator(mode="after")
    def fill_line_total(self) -> "OrderItemData":
        if self.total is None:
            self.total = round(self.price * self.quantity, 2)
        return self


class AdminOrderCreate(BaseModel):
    """Admin order creation payload.

    Required fields are checked by the service so the 400 response can name
    the missing field.
    """

    customer_id: Optional[str] = None
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: Optional[str] = None
    items: Optional[List[OrderItemData]] = None
    total: Optional[float] = None
    subtotal: Optional[float] = None
    tax_amount: float = 0
    shipping_amount: float = 0
    discount_amount: float = 0
    currency: str = "USD"
    status: Optional[str] = None
    payment_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    payment_method: str = ""
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    notes: str = ""
    tracking_number: str = ""
    carrier: str = ""


class OrderUpdate(BaseModel):
    """Fields an admin may change on an existing order"""

    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    payment_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    order_code: Optional[str] = None
    customer_id: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    items: List[OrderItemData]
    subtotal: float
    shipping_amount: float
    tax_amount: float
    discount_amount: float
    total_amount: float
    total_returned_amount: float
    currency: str
    status: str
    payment_status: str
    fulfillment_status: str
    payment_method: str
    tracking_number: str
    carrier: str
    shipping_address: Dict[str, Any]
    billing_address: Dict[str, Any]
    notes: str
    created_at: datetime
    updated_at: datetime
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class OrderStats(BaseModel):
    """Aggregate figures shown above the admin order list"""

    total: int = 0
    pending: int = 0
    processing: int = 0
    shipped: int = 0
    delivered: int = 0
    cancelled: int = 0
    returned: int = 0
    partially_returned: int = 0
    totalRevenue: float = 0
    totalRefunded: float = 0
    averageOrderValue: float = 0


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    total: int
    stats: OrderStats


class OrderEnvelope(BaseModel):
    order: OrderResponse


class DeleteOrderResponse(BaseModel):
    success: bool = True


# Public checkout schemas


class CheckoutItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    product_id: int = Field(..., alias="productId")
    name: str = ""
    sku: str = ""
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)


class CheckoutRequest(BaseModel):
    """Guest or customer checkout payload from the storefront"""

    model_config = ConfigDict(populate_by_name=True)

    customer_id: Optional[str] = None
    email: str = ""
    customer_name: str = Field("", alias="customerName")
    phone: Optional[str] = None
    items: List[CheckoutItem] = Field(default_factory=list)
    shipping_address: Dict[str, Any] = Field(
        default_factory=dict, alias="shippingAddress"
    )
    billing_address: Optional[Dict[str, Any]] = Field(None, alias="billingAddress")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    shipping_cost: float = Field(0, ge=0, alias="shippingCost")
    tax_amount: float = Field(0, ge=0, alias="taxAmount")
    discount_amount: float = Field(0, ge=0, alias="discountAmount")
    subtotal: Optional[float] = None
    notes: str = ""


class CheckoutOrderSummary(BaseModel):
    id: int
    order_code: str
    order_number: str
    total_amount: float
    order_status: str
    payment_method: str


class CheckoutResponse(BaseModel):
    success: bool = True
    order: CheckoutOrderSummary
    warnings: Optional[Dict[str, Any]] = None
    message: str = "Order created successfully"
