from sqlalchemy import DECIMAL, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import FulfillmentServiceBaseModel


class Product(FulfillmentServiceBaseModel):
    """Catalog product as far as stock reconciliation is concerned.

    Stock lives in two columns, ``units`` and the older ``stockQuantity``.
    Both are always written together; see ``StockLevel``.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), unique=True, nullable=True)

    price: Mapped[float] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), default=0, nullable=False
    )
    cost_price: Mapped[float | None] = mapped_column(
        DECIMAL(12, 2, asdecimal=False), nullable=True
    )

    units: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_quantity: Mapped[int | None] = mapped_column(
        "stockQuantity", Integer, nullable=True
    )
    minimum_stock: Mapped[int | None] = mapped_column(Integer, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
