from typing import Dict

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.inventory import MovementType, StockEffect


class StockEffectRepository:
    """Applied per-line stock effects of orders.

    Rows are only added to the session here; they are committed together
    with the product write they describe.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def add_effect(self, **fields) -> StockEffect:
        effect = StockEffect(**fields)
        self.session.add(effect)
        return effect

    async def effect_exists(self, effect_key: str) -> bool:
        query = select(func.count(StockEffect.id)).where(
            StockEffect.effect_key == effect_key
        )
        result = await self.session.execute(query)
        return (result.scalar() or 0) > 0

    async def get_outstanding_units(self, order_id: int) -> Dict[int, int]:
        """Units sold minus units restored, per order line"""
        signed = case(
            (StockEffect.effect_type == MovementType.SALE, StockEffect.quantity),
            else_=-StockEffect.quantity,
        )
        query = (
            select(StockEffect.line_index, func.sum(signed))
            .where(StockEffect.order_id == order_id)
            .group_by(StockEffect.line_index)
        )
        result = await self.session.execute(query)
        return {line_index: int(total or 0) for line_index, total in result.all()}
