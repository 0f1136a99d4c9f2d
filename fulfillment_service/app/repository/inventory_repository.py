from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.inventory import InventoryMovement
from ..schemas.inventory import MovementFilters


class InventoryMovementRepository:
    """Append-only access to the inventory movement ledger"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_movement(self, **fields: Any) -> InventoryMovement:
        movement = InventoryMovement(**fields)
        self.session.add(movement)
        await self.session.commit()
        await self.session.refresh(movement)
        return movement

    def _filter_conditions(self, filters: MovementFilters) -> List[Any]:
        conditions: List[Any] = []
        if filters.product_id is not None:
            conditions.append(InventoryMovement.product_id == filters.product_id)
        if filters.movement_type:
            conditions.append(InventoryMovement.movement_type == filters.movement_type)
        if filters.order_id is not None:
            conditions.append(InventoryMovement.order_id == filters.order_id)
        if filters.return_id is not None:
            conditions.append(InventoryMovement.return_id == filters.return_id)
        if filters.created_by:
            conditions.append(InventoryMovement.created_by == filters.created_by)
        if filters.date_from:
            conditions.append(InventoryMovement.created_at >= filters.date_from)
        if filters.date_to:
            conditions.append(InventoryMovement.created_at <= filters.date_to)
        return conditions

    async def list_movements(
        self, filters: MovementFilters, limit: int = 50, offset: int = 0
    ) -> Tuple[List[InventoryMovement], int]:
        conditions = self._filter_conditions(filters)

        count_query = select(func.count(InventoryMovement.id)).where(*conditions)
        total = (await self.session.execute(count_query)).scalar() or 0

        query = (
            select(InventoryMovement)
            .where(*conditions)
            .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def summarize(
        self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
    ) -> List[Tuple[str, int, int, int]]:
        """Per-type (movement_type, count, total_in, total_out) rows"""
        conditions = self._filter_conditions(
            MovementFilters(date_from=date_from, date_to=date_to)
        )
        change = InventoryMovement.quantity_change
        query = (
            select(
                InventoryMovement.movement_type,
                func.count(InventoryMovement.id),
                func.sum(case((change > 0, change), else_=0)),
                func.sum(case((change < 0, -change), else_=0)),
            )
            .where(*conditions)
            .group_by(InventoryMovement.movement_type)
        )
        result = await self.session.execute(query)
        return [
            (movement_type, int(count), int(total_in or 0), int(total_out or 0))
            for movement_type, count, total_in, total_out in result.all()
        ]

    async def get_last_movement_times(
        self, product_ids: List[int]
    ) -> Dict[int, datetime]:
        if not product_ids:
            return {}
        query = (
            select(InventoryMovement.product_id, func.max(InventoryMovement.created_at))
            .where(InventoryMovement.product_id.in_(product_ids))
            .group_by(InventoryMovement.product_id)
        )
        result = await self.session.execute(query)
        return {product_id: created_at for product_id, created_at in result.all()}
