from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.order import Order, PaymentStatus


class OrderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_order(self, **fields: Any) -> Order:
        """Insert a new order document"""
        order = Order(**fields)
        self.session.add(order)
        await self.session.commit()
        await self.session.refresh(order)
        return order

    async def get_order_by_id(self, order_id: int) -> Optional[Order]:
        query = select(Order).where(Order.id == order_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_order_by_number(self, order_number: str) -> Optional[Order]:
        query = select(Order).where(Order.order_number == order_number)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_orders(
        self,
        search: Optional[str] = None,
        status_filter: Optional[str] = None,
        payment_status: Optional[str] = None,
        fulfillment_status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[Order], int]:
        """List orders newest first with optional filters and return total count"""
        conditions = []
        if search:
            conditions.append(Order.order_number.ilike(f"%{search}%"))
        if status_filter:
            conditions.append(Order.status == status_filter)
        if payment_status:
            conditions.append(Order.payment_status == payment_status)
        if fulfillment_status:
            conditions.append(Order.fulfillment_status == fulfillment_status)

        count_query = select(func.count(Order.id)).where(*conditions)
        count_result = await self.session.execute(count_query)
        total_count = count_result.scalar() or 0

        query = (
            select(Order)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all()), total_count

    async def get_status_counts(self) -> Dict[str, int]:
        query = select(Order.status, func.count(Order.id)).group_by(Order.status)
        result = await self.session.execute(query)
        return {status: count for status, count in result.all()}

    async def get_revenue_totals(self) -> Dict[str, float]:
        """Revenue over paid orders plus the cumulative refunded amount"""
        paid = Order.payment_status == PaymentStatus.PAID
        query = select(
            func.coalesce(func.sum(case((paid, Order.total_amount), else_=0)), 0),
            func.count(case((paid, Order.id))),
            func.coalesce(func.sum(Order.total_returned_amount), 0),
        )
        result = await self.session.execute(query)
        revenue, paid_count, refunded = result.one()
        return {
            "revenue": float(revenue or 0),
            "paid_count": int(paid_count or 0),
            "refunded": float(refunded or 0),
        }

    async def update_order(self, order: Order, update_data: Dict[str, Any]) -> Order:
        """Apply field updates to a loaded order and persist them"""
        for field, value in update_data.items():
            setattr(order, field, value)
        await self.session.commit()
        await self.session.refresh(order)
        return order

    async def delete_order(self, order_id: int) -> bool:
        """Hard delete. Returns and movements referencing the order are kept."""
        result = await self.session.execute(delete(Order).where(Order.id == order_id))
        await self.session.commit()
        return (result.rowcount or 0) > 0
