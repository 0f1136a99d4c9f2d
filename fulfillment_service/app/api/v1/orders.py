from typing import Optional

from fastapi import APIRouter, status

from ...schemas.order import CheckoutRequest, CheckoutResponse
from ...services.order_service import OrderService
from ..deps import CorrelationIdDep, OrderServiceDep

router = APIRouter(prefix="/api/orders")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: CheckoutRequest,
    correlation_id: Optional[str] = CorrelationIdDep,
    order_service: OrderService = OrderServiceDep,
) -> CheckoutResponse:
    """Storefront checkout for guests and signed-in customers.

    Rejects the order with 400 when any item is out of stock; low stock
    only produces warnings.
    """
    return await order_service.checkout(order_data, correlation_id=correlation_id)
