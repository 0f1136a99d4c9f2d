from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.product import Product


class ProductRepository:
    """Repository for the stock-related part of product documents"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_product_by_id(self, product_id: int) -> Optional[Product]:
        query = (
            select(Product)
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_products_by_ids(self, product_ids: List[int]) -> List[Product]:
        if not product_ids:
            return []
        query = select(Product).where(Product.id.in_(product_ids))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def save(self, product: Product) -> Product:
        """Flush and commit a modified product.

        The mapper's version counter turns a concurrent write into a
        StaleDataError here.
        """
        await self.session.commit()
        return product

    async def rollback(self) -> None:
        await self.session.rollback()

    async def get_products_at_or_below(self, threshold: int) -> List[Product]:
        stock = func.coalesce(Product.units, Product.stock_quantity, 0)
        query = (
            select(Product)
            .where(
                or_(
                    stock <= threshold,
                    stock <= func.coalesce(Product.minimum_stock, threshold),
                )
            )
            .order_by(stock.asc(), Product.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
