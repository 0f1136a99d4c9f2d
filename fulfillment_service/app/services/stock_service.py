"""
Stock mutation against product rows with ledger logging.

Product rows carry a version counter. A write that lost a race raises
StaleDataError on commit; the mutation is re-read and retried a bounded
number of times before it is reported as a conflict.

Order line effects are recorded as ``StockEffect`` rows in the same commit
as the product write. They make repeated effects a no-op and bound what a
cancellation or return may put back. The ledger entry follows afterwards
and may fail without undoing either.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import FulfillmentError, ProductNotFoundError, StockConflictError
from ..core.settings import get_settings
from ..models.inventory import InventoryMovement, MovementType
from ..models.product import Product
from ..repository.inventory_repository import InventoryMovementRepository
from ..repository.product_repository import ProductRepository
from ..repository.stock_effect_repository import StockEffectRepository
from ..schemas.inventory import (
    AvailabilityReport,
    InventoryMovementResponse,
    InventoryOperationResult,
    ItemOutcome,
    LowStockAlert,
    MovementContext,
    StockAvailability,
)
from ..utils.logging import setup_fulfillment_logging as setup_logging
from .inventory_ledger import InventoryLedger

logger = setup_logging("fulfillment_service.stock_service")


@dataclass(frozen=True)
class StockLevel:
    """Sellable units of a product.

    ``units`` is authoritative; ``stockQuantity`` is only read when
    ``units`` was never set. Zero in ``units`` is a real value.
    """

    units: int

    @classmethod
    def from_product(cls, product: Product) -> "StockLevel":
        if product.units is not None:
            return cls(int(product.units))
        if product.stock_quantity is not None:
            return cls(int(product.stock_quantity))
        return cls(0)

    def reduced(self, quantity: int) -> "StockLevel":
        return StockLevel(max(0, self.units - quantity))

    def restored(self, quantity: int) -> "StockLevel":
        return StockLevel(self.units + quantity)

    def adjusted(self, quantity_change: int) -> "StockLevel":
        return StockLevel(max(0, self.units + quantity_change))

    def apply_to(self, product: Product) -> None:
        product.units = self.units
        product.stock_quantity = self.units


class StockLine(NamedTuple):
    product_id: int
    quantity: int
    # Position of the line on its order; None means position in the batch
    line_index: Optional[int] = None


class EffectKey(NamedTuple):
    order_id: int
    line_index: int
    effect_type: str
    return_id: Optional[int] = None

    @property
    def key(self) -> str:
        return (
            f"{self.order_id}:{self.line_index}:{self.effect_type}:"
            f"{self.return_id if self.return_id is not None else '-'}"
        )


@dataclass
class StockMutation:
    product: Product
    previous_stock: int
    new_stock: int
    movement: Optional[InventoryMovement] = None


def aggregate_quantities(items: Iterable[Any]) -> Dict[int, int]:
    """Total quantity per product, in first-seen order.

    Variations of one product (size, colour) share a product id and a
    single stock figure, so availability is checked on their sum.
    """
    totals: Dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


class StockService:
    def __init__(
        self,
        session: AsyncSession,
        ledger: InventoryLedger,
        max_attempts: Optional[int] = None,
        low_stock_threshold: Optional[int] = None,
        critical_stock_threshold: Optional[int] = None,
    ):
        settings = get_settings()
        self.session = session
        self.ledger = ledger
        self.product_repository = ProductRepository(session)
        self.movement_repository = InventoryMovementRepository(session)
        self.effect_repository = StockEffectRepository(session)
        self.max_attempts = max_attempts or settings.STOCK_UPDATE_MAX_ATTEMPTS
        self.low_stock_threshold = (
            low_stock_threshold
            if low_stock_threshold is not None
            else settings.LOW_STOCK_THRESHOLD
        )
        self.critical_stock_threshold = (
            critical_stock_threshold
            if critical_stock_threshold is not None
            else settings.CRITICAL_STOCK_THRESHOLD
        )

    async def _mutate(
        self,
        product_id: int,
        change: Callable[[StockLevel], StockLevel],
        effect: Optional[EffectKey] = None,
    ) -> StockMutation:
        """Write a new stock level, plus the effect row when one is given.

        Both go out in one commit. A duplicate effect key surfaces as
        IntegrityError with nothing written.
        """
        for attempt in range(1, self.max_attempts + 1):
            product = await self.product_repository.get_product_by_id(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)

            before = StockLevel.from_product(product)
            after = change(before)
            after.apply_to(product)
            if effect is not None:
                # A rollback below discards the pending row with the product change
                self.effect_repository.add_effect(
                    effect_key=effect.key,
                    order_id=effect.order_id,
                    line_index=effect.line_index,
                    product_id=product_id,
                    effect_type=effect.effect_type,
                    return_id=effect.return_id,
                    quantity=abs(after.units - before.units),
                )

            try:
                await self.product_repository.save(product)
            except StaleDataError:
                await self.product_repository.rollback()
                logger.warning(
                    "Concurrent stock update detected, re-reading product",
                    extra={
                        "product_id": product_id,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                    },
                )
                continue
            except SQLAlchemyError:
                await self.product_repository.rollback()
                raise

            return StockMutation(
                product=product, previous_stock=before.units, new_stock=after.units
            )

        raise StockConflictError(
            f"Stock for product {product_id} changed concurrently "
            f"{self.max_attempts} times, giving up",
            {"product_id": product_id, "attempts": self.max_attempts},
        )

    @staticmethod
    def _require_positive(quantity: int) -> None:
        if quantity <= 0:
            raise FulfillmentError(
                "Quantity must be greater than 0", {"quantity": quantity}
            )

    async def _record(
        self,
        mutation: StockMutation,
        movement_type: str,
        quantity_change: int,
        context: MovementContext,
    ) -> StockMutation:
        mutation.movement = await self.ledger.log_movement(
            product_id=mutation.product.id,
            sku=mutation.product.sku,
            movement_type=movement_type,
            quantity_change=quantity_change,
            context=context,
            product_name=mutation.product.name,
            quantity_before=mutation.previous_stock,
            quantity_after=mutation.new_stock,
        )
        return mutation

    async def reduce_stock(
        self,
        product_id: int,
        quantity: int,
        context: MovementContext,
        effect: Optional[EffectKey] = None,
    ) -> StockMutation:
        """Take units out of stock, never going below zero.

        The sale movement records the ordered quantity as its change while
        before/after hold the real stock figures.
        """
        self._require_positive(quantity)
        mutation = await self._mutate(
            product_id, lambda level: level.reduced(quantity), effect
        )
        logger.info(
            "Stock reduced",
            extra={
                "product_id": product_id,
                "quantity": quantity,
                "previous_stock": mutation.previous_stock,
                "new_stock": mutation.new_stock,
                "order_id": context.order_id,
            },
        )
        return await self._record(mutation, MovementType.SALE, -quantity, context)

    async def restore_stock(
        self,
        product_id: int,
        quantity: int,
        context: MovementContext,
        effect: Optional[EffectKey] = None,
    ) -> StockMutation:
        self._require_positive(quantity)
        mutation = await self._mutate(
            product_id, lambda level: level.restored(quantity), effect
        )
        logger.info(
            "Stock restored",
            extra={
                "product_id": product_id,
                "quantity": quantity,
                "previous_stock": mutation.previous_stock,
                "new_stock": mutation.new_stock,
                "order_id": context.order_id,
                "return_id": context.return_id,
            },
        )
        return await self._record(mutation, MovementType.RETURN, quantity, context)

    async def adjust_stock(
        self,
        product_id: int,
        quantity_change: int,
        reason: str,
        created_by: str = "admin",
    ) -> StockMutation:
        """Manual correction by an admin. Stock is clamped at zero."""
        if quantity_change == 0:
            raise FulfillmentError("Quantity change must not be zero")
        mutation = await self._mutate(
            product_id, lambda level: level.adjusted(quantity_change)
        )
        logger.info(
            "Stock adjusted",
            extra={
                "product_id": product_id,
                "quantity_change": quantity_change,
                "new_stock": mutation.new_stock,
                "created_by": created_by,
            },
        )
        context = MovementContext(reason=reason, created_by=created_by)
        return await self._record(
            mutation, MovementType.ADJUSTMENT, quantity_change, context
        )

    async def reduce_for_items(
        self, items: Sequence[Any], context: MovementContext
    ) -> InventoryOperationResult:
        """One sale per line item; lines of the same product stay separate"""
        return await self._apply_to_items("reduce", items, context)

    async def restore_for_items(
        self, items: Sequence[Any], context: MovementContext
    ) -> InventoryOperationResult:
        """Put units back, one restore per line item.

        With an order in the context a line gets back at most what its sale
        actually took, less what was restored for it already. A line with
        nothing outstanding is skipped without touching stock.
        """
        return await self._apply_to_items("restore", items, context)

    async def outstanding_units(self, order_id: int) -> Dict[int, int]:
        """Units taken by each order line and not yet put back"""
        return await self.effect_repository.get_outstanding_units(order_id)

    @staticmethod
    def _skip(
        result: InventoryOperationResult,
        message: str,
        line_index: int,
        product_id: int,
        quantity: int,
        context: MovementContext,
    ) -> None:
        logger.info(
            message,
            extra={
                "product_id": product_id,
                "line_index": line_index,
                "order_id": context.order_id,
                "return_id": context.return_id,
                "operation": result.operation,
            },
        )
        result.outcomes.append(
            ItemOutcome(
                product_id=product_id,
                line_index=line_index,
                quantity=quantity,
                success=True,
                skipped=True,
            )
        )

    async def _apply_to_items(
        self, operation: str, items: Sequence[Any], context: MovementContext
    ) -> InventoryOperationResult:
        """Apply one operation per line item; failures are collected, not raised"""
        if operation == "reduce":
            movement_type, apply = MovementType.SALE, self.reduce_stock
        else:
            movement_type, apply = MovementType.RETURN, self.restore_stock

        order_id = context.order_id
        outstanding: Dict[int, int] = {}
        if order_id is not None and operation == "restore":
            outstanding = await self.outstanding_units(order_id)

        result = InventoryOperationResult(operation=operation)
        for position, item in enumerate(items):
            line_index = getattr(item, "line_index", None)
            if line_index is None:
                line_index = position
            product_id, quantity = item.product_id, item.quantity

            effect: Optional[EffectKey] = None
            if order_id is not None:
                effect = EffectKey(
                    order_id, line_index, movement_type, context.return_id
                )
                if operation == "restore":
                    quantity = min(quantity, outstanding.get(line_index, 0))

            try:
                if effect is not None and await self.effect_repository.effect_exists(
                    effect.key
                ):
                    self._skip(
                        result,
                        "Inventory effect already applied, skipping",
                        line_index,
                        product_id,
                        quantity,
                        context,
                    )
                    continue
                if operation == "restore" and quantity <= 0:
                    self._skip(
                        result,
                        "No units taken for this line, nothing to restore",
                        line_index,
                        product_id,
                        0,
                        context,
                    )
                    continue

                mutation = await apply(product_id, quantity, context, effect)
            except IntegrityError:
                # Same effect key committed by a concurrent request
                self._skip(
                    result,
                    "Inventory effect applied concurrently, skipping",
                    line_index,
                    product_id,
                    quantity,
                    context,
                )
                continue
            except (FulfillmentError, SQLAlchemyError) as e:
                message = e.message if isinstance(e, FulfillmentError) else str(e)
                logger.error(
                    f"Failed to {operation} stock for product {product_id}: {message}",
                    extra={
                        "product_id": product_id,
                        "line_index": line_index,
                        "quantity": quantity,
                        "order_id": order_id,
                        "operation": operation,
                    },
                )
                result.outcomes.append(
                    ItemOutcome(
                        product_id=product_id,
                        line_index=line_index,
                        quantity=quantity,
                        success=False,
                        error=message,
                    )
                )
                continue

            if operation == "restore":
                outstanding[line_index] = outstanding.get(line_index, 0) - quantity
            result.outcomes.append(
                ItemOutcome(
                    product_id=product_id,
                    line_index=line_index,
                    quantity=quantity,
                    success=True,
                    previous_stock=mutation.previous_stock,
                    new_stock=mutation.new_stock,
                )
            )
            if mutation.movement is not None:
                result.movements.append(
                    InventoryMovementResponse.model_validate(mutation.movement)
                )

        return result

    async def check_availability(self, items: Sequence[Any]) -> AvailabilityReport:
        """Classify requested items as out of stock, low or fine.

        Items need ``product_id`` and ``quantity``. Unknown products are a
        client error.
        """
        requested = aggregate_quantities(items)
        products = {
            product.id: product
            for product in await self.product_repository.get_products_by_ids(
                list(requested)
            )
        }

        report = AvailabilityReport()
        for product_id, quantity in requested.items():
            product = products.get(product_id)
            if product is None:
                raise FulfillmentError(
                    f"Product {product_id} not found or unavailable",
                    {"product_id": product_id},
                )

            available = StockLevel.from_product(product).units
            name = product.name or "Unknown Product"
            if available <= 0 or available < quantity:
                report.out_of_stock.append(
                    StockAvailability(
                        product_id=product_id,
                        name=name,
                        requested=quantity,
                        available=available,
                    )
                )
            elif available <= self.low_stock_threshold:
                report.low_stock.append(
                    StockAvailability(
                        product_id=product_id, name=name, available=available
                    )
                )
        return report

    def _alert_level(self, current: int, minimum: int) -> Optional[str]:
        if current <= 0:
            return "out_of_stock"
        if current <= self.critical_stock_threshold:
            return "critical"
        if current <= minimum:
            return "low"
        return None

    async def low_stock_alerts(self) -> List[LowStockAlert]:
        """Products at or below their minimum stock, most urgent first"""
        products = await self.product_repository.get_products_at_or_below(
            self.low_stock_threshold
        )
        last_movements = await self.movement_repository.get_last_movement_times(
            [product.id for product in products]
        )

        alerts: List[LowStockAlert] = []
        for product in products:
            current = StockLevel.from_product(product).units
            minimum = (
                product.minimum_stock
                if product.minimum_stock is not None
                else self.low_stock_threshold
            )
            level = self._alert_level(current, minimum)
            if level is None:
                continue
            alerts.append(
                LowStockAlert(
                    product_id=product.id,
                    product_name=product.name,
                    sku=product.sku,
                    current_stock=current,
                    minimum_stock=minimum,
                    alert_level=level,
                    last_movement=last_movements.get(product.id),
                )
            )
        return alerts
