"""Admin order management endpoints.

One resource path; the order is selected with the ``orderId`` query
parameter and returns are processed with ``?action=process_return``.
"""

from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Body, HTTPException, Query, status
from ...core.exceptions import FulfillmentError
from ...schemas.order import (
    AdminOrderCreate,
    DeleteOrderResponse,
    OrderEnvelope,
    OrderListResponse,
    OrderUpdate,
)
from ...schemas.returns import ProcessReturnRequest, ProcessReturnResponse
from ...services.order_service import OrderService
from ...utils.logging import setup_fulfillment_logging as setup_logging
from ..deps import CorrelationIdDep, OrderServiceDep

logger = setup_logging("fulfillment_service.admin_orders_api")

router = APIRouter(prefix="/api/admin/orders")

PROCESS_RETURN_ACTION = "process_return"


def require_order_id(order_id: Optional[int]) -> int:
    if order_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="orderId is required"
        )
    return order_id


@router.get("", status_code=status.HTTP_200_OK, response_model=None)
async def get_orders(
    order_id: Optional[int] = Query(None, alias="orderId"),
    search: Optional[str] = Query(None, description="Order number substring"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    status_filter: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    fulfillment_status: Optional[str] = Query(None, alias="fulfillmentStatus"),
    order_service: OrderService = OrderServiceDep,
) -> Union[OrderEnvelope, OrderListResponse]:
    """Fetch one order by ``orderId`` or list orders with stats"""
    if order_id is not None:
        order = await order_service.get_order(order_id)
        return OrderEnvelope(order=order)

    try:
        return await order_service.list_orders(
            search=search,
            status_filter=status_filter,
            payment_status=payment_status,
            fulfillment_status=fulfillment_status,
            limit=limit,
            offset=offset,
        )
    except (HTTPException, FulfillmentError):
        raise
    except Exception as e:
        logger.error(
            f"Failed to fetch orders: {e}",
            extra={"search": search, "status": status_filter, "offset": offset},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch orders",
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: AdminOrderCreate,
    correlation_id: Optional[str] = CorrelationIdDep,
    order_service: OrderService = OrderServiceDep,
) -> OrderEnvelope:
    """Create an order on behalf of a customer"""
    order = await order_service.create_admin_order(
        order_data, correlation_id=correlation_id
    )
    return OrderEnvelope(order=order)


@router.patch("", status_code=status.HTTP_200_OK, response_model=None)
async def update_order(
    payload: Dict[str, Any] = Body(...),
    order_id: Optional[int] = Query(None, alias="orderId"),
    action: Optional[str] = Query(None),
    correlation_id: Optional[str] = CorrelationIdDep,
    order_service: OrderService = OrderServiceDep,
) -> Union[OrderEnvelope, ProcessReturnResponse]:
    """Update order fields or, with ``action=process_return``, record a return"""
    order_id = require_order_id(order_id)

    if action == PROCESS_RETURN_ACTION:
        return_request = ProcessReturnRequest.model_validate(payload)
        return await order_service.process_return(
            order_id, return_request, correlation_id=correlation_id
        )
    if action is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown action: {action}",
        )

    order = await order_service.update_order(
        order_id, OrderUpdate.model_validate(payload), correlation_id=correlation_id
    )
    return OrderEnvelope(order=order)


@router.delete("", status_code=status.HTTP_200_OK)
async def delete_order(
    order_id: Optional[int] = Query(None, alias="orderId"),
    order_service: OrderService = OrderServiceDep,
) -> DeleteOrderResponse:
    """Hard-delete an order. Its returns and ledger entries are kept."""
    await order_service.delete_order(require_order_id(order_id))
    return DeleteOrderResponse(success=True)
