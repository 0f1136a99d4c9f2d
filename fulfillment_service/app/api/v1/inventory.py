"""Inventory ledger and stock administration endpoints"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query, status

from ...schemas.inventory import (
    InventoryMovementResponse,
    LowStockAlertList,
    MovementFilters,
    MovementListResponse,
    MovementSummary,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
)
from ...services.inventory_ledger import InventoryLedger
from ...services.stock_service import StockService
from ...utils.logging import setup_fulfillment_logging as setup_logging
from ..deps import InventoryLedgerDep, StockServiceDep

logger = setup_logging("fulfillment_service.inventory_api")
router = APIRouter(prefix="/api/admin/inventory")


@router.get("/movements", response_model=MovementListResponse)
async def list_movements(
    product_id: Optional[int] = Query(None),
    movement_type: Optional[str] = Query(None),
    order_id: Optional[int] = Query(None),
    return_id: Optional[int] = Query(None),
    created_by: Optional[str] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ledger: InventoryLedger = InventoryLedgerDep,
):
    """Ledger entries, newest first"""
    filters = MovementFilters(
        product_id=product_id,
        movement_type=movement_type,
        order_id=order_id,
        return_id=return_id,
        created_by=created_by,
        date_from=date_from,
        date_to=date_to,
    )
    movements, total = await ledger.list_movements(filters, limit=limit, offset=offset)
    return MovementListResponse(
        movements=[InventoryMovementResponse.model_validate(m) for m in movements],
        total=total,
    )


@router.get("/movements/summary", response_model=MovementSummary)
async def movement_summary(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    ledger: InventoryLedger = InventoryLedgerDep,
):
    return await ledger.summarize(date_from=date_from, date_to=date_to)


@router.get("/alerts", response_model=LowStockAlertList)
async def low_stock_alerts(stock_service: StockService = StockServiceDep):
    """Products at out-of-stock, critical or low levels"""
    alerts = await stock_service.low_stock_alerts()
    return LowStockAlertList(alerts=alerts, total=len(alerts))


@router.post(
    "/adjust",
    response_model=StockAdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_stock(
    adjustment: StockAdjustmentRequest,
    stock_service: StockService = StockServiceDep,
):
    """Manual stock correction, recorded as an ``adjustment`` movement"""
    mutation = await stock_service.adjust_stock(
        product_id=adjustment.product_id,
        quantity_change=adjustment.quantity_change,
        reason=adjustment.reason,
        created_by=adjustment.created_by,
    )
    logger.info(
        "Manual stock adjustment applied",
        extra={
            "product_id": adjustment.product_id,
            "quantity_change": adjustment.quantity_change,
            "new_stock": mutation.new_stock,
        },
    )
    return StockAdjustmentResponse(
        product_id=adjustment.product_id,
        previous_stock=mutation.previous_stock,
        new_stock=mutation.new_stock,
        movement=(
            InventoryMovementResponse.model_validate(mutation.movement)
            if mutation.movement
            else None
        ),
    )
