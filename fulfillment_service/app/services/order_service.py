"""
Order gateway service: admin order management and public checkout.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import InsufficientStockError, OrderNotFoundError
from ..core.settings import get_settings
from ..events.producers import FulfillmentEventProducer
from ..models.order import (
    FulfillmentStatus,
    Order,
    OrderStatus,
    PaymentStatus,
)
from ..repository.order_repository import OrderRepository
from ..schemas.order import (
    AdminOrderCreate,
    CheckoutOrderSummary,
    CheckoutRequest,
    CheckoutResponse,
    OrderItemData,
    OrderListResponse,
    OrderResponse,
    OrderStats,
    OrderUpdate,
)
from ..schemas.returns import ProcessReturnRequest, ProcessReturnResponse
from ..utils.codec import encode_items, to_order_response
from ..utils.logging import setup_fulfillment_logging as setup_logging
from ..utils.numbering import generate_order_code, generate_order_number
from ..utils.retry import retry_on_collision, retry_on_timeout
from .inventory_ledger import InventoryLedger
from .order_state_machine import OrderStateMachine
from .return_service import ReturnService
from .stock_service import StockService

logger = setup_logging("fulfillment_service.order_service")

REQUIRED_ORDER_FIELDS = ("customer_id", "items", "total", "shipping_address")

DEFAULT_PAYMENT_METHOD = "cash_on_delivery"

PAYMENT_METHOD_ALIASES = {
    "cash_on_delivery": (
        "cash_on_delivery",
        "cod",
        "cash",
        "cashondelivery",
        "pay_on_delivery",
    ),
    "credit_card": (
        "credit_card",
        "creditcard",
        "credit",
        "card",
        "visa",
        "mastercard",
        "amex",
    ),
    "debit_card": ("debit_card", "debitcard", "debit"),
    "paypal": ("paypal", "pay_pal"),
    "bank_transfer": (
        "bank_transfer",
        "banktransfer",
        "bank",
        "wire",
        "wire_transfer",
        "transfer",
    ),
}

_PAYMENT_METHOD_LOOKUP = {
    alias: method
    for method, aliases in PAYMENT_METHOD_ALIASES.items()
    for alias in aliases
}

# Duplicate order numbers are possible within one millisecond
ORDER_NUMBER_ATTEMPTS = 3


def normalize_payment_method(value: Optional[str]) -> str:
    """Map storefront payment vocabulary onto the stored method names"""
    if not value:
        return DEFAULT_PAYMENT_METHOD
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    return _PAYMENT_METHOD_LOOKUP.get(key, DEFAULT_PAYMENT_METHOD)


def _filter_value(value: Optional[str]) -> Optional[str]:
    """Query filters treat ``all`` and empty values as no filter"""
    if not value or value == "all":
        return None
    return value


class OrderService:
    def __init__(
        self,
        session: AsyncSession,
        event_publisher: Optional[FulfillmentEventProducer] = None,
    ):
        self.session = session
        self.event_publisher = event_publisher
        self.settings = get_settings()
        self.order_repository = OrderRepository(session)
        self.ledger = InventoryLedger(session, event_publisher)
        self.stock_service = StockService(session, self.ledger)
        self.state_machine = OrderStateMachine(
            session, self.stock_service, event_publisher
        )
        self.return_service = ReturnService(
            session, self.stock_service, event_publisher
        )

    async def _get_order_or_404(self, order_id: int) -> Order:
        order = await self.order_repository.get_order_by_id(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def get_order(self, order_id: int) -> OrderResponse:
        order = await self._get_order_or_404(order_id)
        return to_order_response(order)

    async def get_stats(self) -> OrderStats:
        counts = await self.order_repository.get_status_counts()
        totals = await self.order_repository.get_revenue_totals()
        paid_count = totals["paid_count"]
        return OrderStats(
            total=sum(counts.values()),
            pending=counts.get(OrderStatus.PENDING, 0),
            processing=counts.get(OrderStatus.PROCESSING, 0),
            shipped=counts.get(OrderStatus.SHIPPED, 0),
            delivered=counts.get(OrderStatus.DELIVERED, 0),
            cancelled=counts.get(OrderStatus.CANCELLED, 0),
            returned=counts.get(OrderStatus.RETURNED, 0),
            partially_returned=counts.get(OrderStatus.PARTIALLY_RETURNED, 0),
            totalRevenue=round(totals["revenue"], 2),
            totalRefunded=round(totals["refunded"], 2),
            averageOrderValue=(
                round(totals["revenue"] / paid_count, 2) if paid_count else 0
            ),
        )

    async def list_orders(
        self,
        search: Optional[str] = None,
        status_filter: Optional[str] = None,
        payment_status: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> OrderListResponse:
        """List orders with stats; timeouts from the store are retried."""

        async def query() -> Tuple[List[Order], int, OrderStats]:
            orders, total = await self.order_repository.list_orders(
                search=search or None,
                status_filter=_filter_value(status_filter),
                payment_status=_filter_value(payment_status),
                fulfillment_status=_filter_value(fulfillment_status),
                limit=limit,
                offset=offset,
            )
            return orders, total, await self.get_stats()

        orders, total, stats = await retry_on_timeout(
            query,
            max_attempts=self.settings.LIST_QUERY_MAX_ATTEMPTS,
            delay_seconds=self.settings.LIST_QUERY_RETRY_DELAY_SECONDS,
            operation_name="list_orders",
        )
        return OrderListResponse(
            orders=[to_order_response(order) for order in orders],
            total=total,
            stats=stats,
        )

    @staticmethod
    def _validate_choice(field: str, value: Optional[str], allowed: Tuple[str, ...]):
        if value is not None and value not in allowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid {field}: {value}",
            )

    async def _insert_order(
        self,
        number_factory: Callable[[], str],
        public_code: bool = False,
        **fields: Any,
    ) -> Order:
        """Insert an order under a freshly generated number.

        Public orders use the same value as their ``order_code``.
        """

        async def insert(number: str) -> Order:
            if public_code:
                fields["order_code"] = number
            return await self.order_repository.create_order(
                order_number=number, **fields
            )

        return await retry_on_collision(
            insert,
            number_factory,
            self.session.rollback,
            max_attempts=ORDER_NUMBER_ATTEMPTS,
            label="Order number",
        )

    async def create_admin_order(
        self, data: AdminOrderCreate, correlation_id: Optional[str] = None
    ) -> OrderResponse:
        for field in REQUIRED_ORDER_FIELDS:
            if getattr(data, field) in (None, "", [], {}):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"{field} is required",
                )

        self._validate_choice("status", data.status, OrderStatus.ALL)
        self._validate_choice("payment_status", data.payment_status, PaymentStatus.ALL)
        self._validate_choice(
            "fulfillment_status", data.fulfillment_status, FulfillmentStatus.ALL
        )

        items: List[OrderItemData] = data.items or []
        subtotal = (
            data.subtotal
            if data.subtotal is not None
            else round(sum(item.total or 0 for item in items), 2)
        )

        order = await self._insert_order(
            generate_order_number,
            customer_id=data.customer_id,
            customer_name=data.customer_name,
            customer_email=data.customer_email,
            customer_phone=data.customer_phone,
            items=encode_items(items),
            subtotal=subtotal,
            shipping_amount=data.shipping_amount,
            tax_amount=data.tax_amount,
            discount_amount=data.discount_amount,
            total_amount=data.total,
            currency=data.currency,
            status=data.status or OrderStatus.PENDING,
            payment_status=data.payment_status or PaymentStatus.PENDING,
            fulfillment_status=data.fulfillment_status or FulfillmentStatus.UNFULFILLED,
            payment_method=data.payment_method,
            tracking_number=data.tracking_number,
            carrier=data.carrier,
            shipping_address=data.shipping_address,
            billing_address=data.billing_address or data.shipping_address,
            notes=data.notes,
        )

        logger.info(
            "Admin order created",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "customer_id": order.customer_id,
                "total_amount": order.total_amount,
            },
        )
        await self._publish_created(order, "admin", correlation_id)
        return to_order_response(order)

    async def update_order(
        self,
        order_id: int,
        data: OrderUpdate,
        correlation_id: Optional[str] = None,
    ) -> OrderResponse:
        """Apply an admin PATCH. Status changes go through the state machine."""
        order = await self._get_order_or_404(order_id)

        updates: Dict[str, Any] = data.model_dump(exclude_unset=True, exclude_none=True)
        new_status = updates.pop("status", None)
        self._validate_choice(
            "payment_status", updates.get("payment_status"), PaymentStatus.ALL
        )
        self._validate_choice(
            "fulfillment_status",
            updates.get("fulfillment_status"),
            FulfillmentStatus.ALL,
        )

        if new_status is not None:
            result = await self.state_machine.apply_status_change(
                order, new_status, extra_updates=updates, correlation_id=correlation_id
            )
            order = result.order
        elif updates:
            order = await self.order_repository.update_order(order, updates)
            logger.info(
                "Order updated",
                extra={"order_id": order_id, "fields": sorted(updates)},
            )

        return to_order_response(order)

    async def process_return(
        self,
        order_id: int,
        request: ProcessReturnRequest,
        correlation_id: Optional[str] = None,
    ) -> ProcessReturnResponse:
        return await self.return_service.process_return(
            order_id, request, correlation_id=correlation_id
        )

    async def delete_order(self, order_id: int) -> bool:
        deleted = await self.order_repository.delete_order(order_id)
        if not deleted:
            raise OrderNotFoundError(order_id)
        logger.info("Order deleted", extra={"order_id": order_id})
        return True

    async def checkout(
        self, request: CheckoutRequest, correlation_id: Optional[str] = None
    ) -> CheckoutResponse:
        """Create an order from the storefront.

        Availability is checked but stock is not taken here; it moves when
        the order is delivered.
        """
        if not request.items:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order items are required",
            )

        report = await self.stock_service.check_availability(request.items)
        if not report.can_proceed:
            logger.info(
                "Checkout rejected for unavailable items",
                extra={
                    "out_of_stock": [item.product_id for item in report.out_of_stock]
                },
            )
            raise InsufficientStockError(
                [item.model_dump(by_alias=True) for item in report.out_of_stock],
                [
                    item.model_dump(by_alias=True, exclude_none=True)
                    for item in report.low_stock
                ],
            )

        items = [
            OrderItemData(
                product_id=item.product_id,
                product_name=item.name,
                sku=item.sku,
                quantity=item.quantity,
                price=item.price,
            )
            for item in request.items
        ]
        subtotal = request.subtotal or round(
            sum(item.price * item.quantity for item in request.items), 2
        )
        total = round(
            subtotal
            + request.shipping_cost
            + request.tax_amount
            - request.discount_amount,
            2,
        )
        payment_method = normalize_payment_method(request.payment_method)
        order = await self._insert_order(
            generate_order_code,
            public_code=True,
            customer_id=request.customer_id or "guest",
            customer_name=request.customer_name,
            customer_email=request.email,
            customer_phone=request.phone,
            items=encode_items(items),
            subtotal=subtotal,
            shipping_amount=request.shipping_cost,
            tax_amount=request.tax_amount,
            discount_amount=request.discount_amount,
            total_amount=total,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
            fulfillment_status=FulfillmentStatus.UNFULFILLED,
            payment_method=payment_method,
            shipping_address=request.shipping_address,
            billing_address=request.billing_address or request.shipping_address,
            notes=request.notes,
        )

        logger.info(
            "Checkout order created",
            extra={
                "order_id": order.id,
                "order_code": order.order_code,
                "total_amount": total,
                "payment_method": payment_method,
                "low_stock_items": len(report.low_stock),
            },
        )
        await self._publish_created(order, "checkout", correlation_id)

        warnings = None
        if report.low_stock:
            warnings = {
                "lowStockItems": [
                    item.model_dump(by_alias=True, exclude_none=True)
                    for item in report.low_stock
                ],
                "message": "Some items have low stock levels",
            }

        return CheckoutResponse(
            order=CheckoutOrderSummary(
                id=order.id,
                order_code=order.order_code,
                order_number=order.order_number,
                total_amount=order.total_amount,
                order_status=order.status,
                payment_method=payment_method,
            ),
            warnings=warnings,
        )

    async def _publish_created(
        self, order: Order, source: str, correlation_id: Optional[str]
    ) -> None:
        if not self.event_publisher:
            return
        await self.event_publisher.publish_order_created(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            total_amount=order.total_amount,
            items=order.items,
            source=source,
            correlation_id=correlation_id,
        )
