from collections import defaultdict
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.order import OrderReturn


class OrderReturnRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_return(self, **fields: Any) -> OrderReturn:
        order_return = OrderReturn(**fields)
        self.session.add(order_return)
        await self.session.commit()
        await self.session.refresh(order_return)
        return order_return

    async def update_return(
        self, order_return: OrderReturn, update_data: Dict[str, Any]
    ) -> OrderReturn:
        for field, value in update_data.items():
            setattr(order_return, field, value)
        await self.session.commit()
        await self.session.refresh(order_return)
        return order_return

    async def get_returns_for_order(self, order_id: int) -> List[OrderReturn]:
        query = (
            select(OrderReturn)
            .where(OrderReturn.order_id == order_id)
            .order_by(OrderReturn.requested_at.asc(), OrderReturn.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_returned_quantities(self, order_id: int) -> Dict[int, int]:
        """Units already returned per product across all returns of an order"""
        quantities: Dict[int, int] = defaultdict(int)
        for order_return in await self.get_returns_for_order(order_id):
            for item in order_return.items or []:
                quantities[int(item["product_id"])] += int(item["quantity"])
        return dict(quantities)
