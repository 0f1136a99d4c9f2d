"""
Integration tests for stock mutation and the inventory ledger.
"""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from fulfillment_service.app.core.exceptions import (
    FulfillmentError,
    ProductNotFoundError,
    StockConflictError,
)
from fulfillment_service.app.models.inventory import MovementType
from fulfillment_service.app.schemas.inventory import MovementContext, MovementFilters
from fulfillment_service.app.services.inventory_ledger import InventoryLedger
from fulfillment_service.app.services.stock_service import StockLine, StockService


@pytest.fixture
def ledger(db_session):
    return InventoryLedger(db_session)


@pytest.fixture
def stock_service(db_session, ledger):
    return StockService(
        db_session,
        ledger,
        max_attempts=3,
        low_stock_threshold=5,
        critical_stock_threshold=2,
    )


class TestSingleMutations:
    @pytest.mark.asyncio
    async def test_reduce_records_sale_with_ordered_quantity(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)

        mutation = await stock_service.reduce_stock(
            product.id, 2, MovementContext(reason="Sale via order 1", order_id=1)
        )

        assert (mutation.previous_stock, mutation.new_stock) == (5, 3)
        assert mutation.movement.movement_type == MovementType.SALE
        assert mutation.movement.quantity_change == -2
        assert mutation.movement.order_id == 1
        assert await stock_of(product.id) == {"units": 3, "stockQuantity": 3}

    @pytest.mark.asyncio
    async def test_reduce_clamps_at_zero_but_logs_ordered_quantity(
        self, stock_service, product_factory
    ):
        product = await product_factory(units=1, stock_quantity=1)

        mutation = await stock_service.reduce_stock(
            product.id, 3, MovementContext(order_id=1)
        )

        assert mutation.new_stock == 0
        assert mutation.movement.quantity_change == -3
        assert mutation.movement.quantity_before == 1
        assert mutation.movement.quantity_after == 0

    @pytest.mark.asyncio
    async def test_restore_reads_legacy_field_and_writes_both(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=None, stock_quantity=4)

        mutation = await stock_service.restore_stock(
            product.id, 2, MovementContext(reason="Order cancelled by admin")
        )

        assert mutation.movement.movement_type == MovementType.RETURN
        assert mutation.movement.quantity_change == 2
        assert await stock_of(product.id) == {"units": 6, "stockQuantity": 6}

    @pytest.mark.asyncio
    async def test_adjust_never_goes_negative(self, stock_service, product_factory):
        product = await product_factory(units=3, stock_quantity=3)

        mutation = await stock_service.adjust_stock(
            product.id, -10, "Expired batch written off", created_by="admin"
        )

        assert mutation.new_stock == 0
        assert mutation.movement.movement_type == MovementType.ADJUSTMENT
        assert mutation.movement.created_by == "admin"
        assert mutation.movement.reason == "Expired batch written off"

    @pytest.mark.asyncio
    async def test_missing_product(self, stock_service):
        with pytest.raises(ProductNotFoundError):
            await stock_service.reduce_stock(9999, 1, MovementContext())

    @pytest.mark.asyncio
    async def test_non_positive_quantity_is_rejected(
        self, stock_service, product_factory
    ):
        product = await product_factory()
        with pytest.raises(FulfillmentError):
            await stock_service.restore_stock(product.id, 0, MovementContext())


class TestConcurrentUpdates:
    @pytest.mark.asyncio
    async def test_stale_write_is_retried(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)
        original_save = stock_service.product_repository.save
        calls = {"count": 0}

        async def flaky_save(target):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StaleDataError("row changed underneath")
            return await original_save(target)

        stock_service.product_repository.save = flaky_save

        mutation = await stock_service.reduce_stock(
            product.id, 2, MovementContext(order_id=1)
        )

        assert calls["count"] == 2
        assert mutation.new_stock == 3
        assert await stock_of(product.id) == {"units": 3, "stockQuantity": 3}

    @pytest.mark.asyncio
    async def test_persistent_conflict_gives_up(self, stock_service, product_factory):
        product = await product_factory(units=5, stock_quantity=5)
        stock_service.product_repository.save = AsyncMock(
            side_effect=StaleDataError("row changed underneath")
        )

        with pytest.raises(StockConflictError):
            await stock_service.reduce_stock(product.id, 1, MovementContext())

        assert stock_service.product_repository.save.await_count == 3

    @pytest.mark.asyncio
    async def test_version_counter_increments(self, stock_service, product_factory):
        product = await product_factory(units=5, stock_quantity=5)
        version = product.version

        await stock_service.restore_stock(product.id, 1, MovementContext())

        assert product.version == version + 1


class TestBatchOperations:
    @pytest.mark.asyncio
    async def test_each_line_gets_its_own_sale(
        self, stock_service, ledger, product_factory, stock_of
    ):
        product = await product_factory(units=10, stock_quantity=10)
        items = [StockLine(product.id, 2), StockLine(product.id, 3)]

        result = await stock_service.reduce_for_items(
            items, MovementContext(order_id=5)
        )

        assert [(o.line_index, o.quantity) for o in result.outcomes] == [
            (0, 2),
            (1, 3),
        ]
        assert [(o.previous_stock, o.new_stock) for o in result.outcomes] == [
            (10, 8),
            (8, 5),
        ]
        movements, total = await ledger.list_movements(MovementFilters(order_id=5))
        assert total == 2
        assert [m.quantity_change for m in movements] == [-3, -2]
        assert (await stock_of(product.id))["units"] == 5

    @pytest.mark.asyncio
    async def test_failures_are_collected_and_batch_continues(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=4, stock_quantity=4)
        items = [StockLine(9999, 1), StockLine(product.id, 1)]

        result = await stock_service.reduce_for_items(
            items, MovementContext(order_id=6)
        )

        assert result.has_failures
        assert [o.product_id for o in result.failed] == [9999]
        assert "not found" in result.failed[0].error
        assert [o.product_id for o in result.successful] == [product.id]
        assert (await stock_of(product.id))["units"] == 3

    @pytest.mark.asyncio
    async def test_conflict_becomes_item_failure(self, stock_service, product_factory):
        product = await product_factory(units=4, stock_quantity=4)
        stock_service.product_repository.save = AsyncMock(
            side_effect=StaleDataError("row changed underneath")
        )

        result = await stock_service.reduce_for_items(
            [StockLine(product.id, 1)], MovementContext(order_id=7)
        )

        assert result.has_failures
        assert result.movements == []
        assert await stock_service.outstanding_units(7) == {}

    @pytest.mark.asyncio
    async def test_repeated_effect_is_skipped(
        self, stock_service, ledger, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)
        context = MovementContext(reason="Sale via order 8", order_id=8)

        await stock_service.reduce_for_items([StockLine(product.id, 2)], context)
        second = await stock_service.reduce_for_items(
            [StockLine(product.id, 2)], context
        )

        assert second.outcomes[0].success is True
        assert second.outcomes[0].skipped is True
        assert second.movements == []
        assert (await stock_of(product.id))["units"] == 3
        _, total = await ledger.list_movements(MovementFilters(order_id=8))
        assert total == 1

    @pytest.mark.asyncio
    async def test_duplicate_effect_is_rejected_by_the_store(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)
        context = MovementContext(order_id=10)
        await stock_service.reduce_for_items([StockLine(product.id, 2)], context)

        # A second request that looked before the first one committed
        stock_service.effect_repository.effect_exists = AsyncMock(return_value=False)
        second = await stock_service.reduce_for_items(
            [StockLine(product.id, 2)], context
        )

        assert second.has_failures is False
        assert second.outcomes[0].skipped is True
        assert (await stock_of(product.id))["units"] == 3

    @pytest.mark.asyncio
    async def test_returns_are_keyed_by_return_id(
        self, stock_service, product_factory
    ):
        product = await product_factory(units=5, stock_quantity=5)
        await stock_service.reduce_for_items(
            [StockLine(product.id, 2)], MovementContext(order_id=9)
        )

        first = await stock_service.restore_for_items(
            [StockLine(product.id, 1)], MovementContext(order_id=9, return_id=1)
        )
        second = await stock_service.restore_for_items(
            [StockLine(product.id, 1)], MovementContext(order_id=9, return_id=2)
        )

        assert first.outcomes[0].skipped is False
        assert second.outcomes[0].skipped is False
        assert second.outcomes[0].new_stock == 5

    @pytest.mark.asyncio
    async def test_restore_is_limited_to_units_taken(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)
        await stock_service.reduce_for_items(
            [StockLine(product.id, 2)], MovementContext(order_id=11)
        )

        first = await stock_service.restore_for_items(
            [StockLine(product.id, 4)], MovementContext(order_id=11, return_id=1)
        )
        second = await stock_service.restore_for_items(
            [StockLine(product.id, 1)], MovementContext(order_id=11, return_id=2)
        )

        assert first.outcomes[0].quantity == 2
        assert second.outcomes[0].skipped is True
        assert second.outcomes[0].quantity == 0
        assert second.movements == []
        assert (await stock_of(product.id))["units"] == 5

    @pytest.mark.asyncio
    async def test_nothing_is_restored_for_an_unsold_order(
        self, stock_service, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)

        result = await stock_service.restore_for_items(
            [StockLine(product.id, 2)], MovementContext(order_id=12)
        )

        assert result.outcomes[0].skipped is True
        assert result.movements == []
        assert (await stock_of(product.id))["units"] == 5


class TestAvailability:
    @pytest.mark.asyncio
    async def test_classification(self, stock_service, product_factory):
        empty = await product_factory(name="Empty", units=0, stock_quantity=0)
        short = await product_factory(name="Short", units=2, stock_quantity=2)
        low = await product_factory(name="Low", units=5, stock_quantity=5)
        plenty = await product_factory(name="Plenty", units=50, stock_quantity=50)

        report = await stock_service.check_availability(
            [
                StockLine(empty.id, 1),
                StockLine(short.id, 3),
                StockLine(low.id, 1),
                StockLine(plenty.id, 1),
            ]
        )

        assert [i.product_id for i in report.out_of_stock] == [empty.id, short.id]
        assert report.out_of_stock[1].requested == 3
        assert report.out_of_stock[1].available == 2
        assert [i.product_id for i in report.low_stock] == [low.id]
        assert report.can_proceed is False

    @pytest.mark.asyncio
    async def test_unknown_product_is_rejected(self, stock_service):
        with pytest.raises(FulfillmentError) as exc_info:
            await stock_service.check_availability([StockLine(404, 1)])
        assert exc_info.value.message == "Product 404 not found or unavailable"


class TestLowStockAlerts:
    @pytest.mark.asyncio
    async def test_alert_levels(self, stock_service, product_factory):
        out = await product_factory(name="Out", units=0, stock_quantity=0)
        critical = await product_factory(name="Critical", units=2, stock_quantity=2)
        low = await product_factory(name="Low", units=4, stock_quantity=4)
        above_minimum = await product_factory(
            name="Reorder", units=8, stock_quantity=8, minimum_stock=10
        )
        await product_factory(name="Fine", units=20, stock_quantity=20)

        alerts = {a.product_id: a for a in await stock_service.low_stock_alerts()}

        assert alerts[out.id].alert_level == "out_of_stock"
        assert alerts[critical.id].alert_level == "critical"
        assert alerts[low.id].alert_level == "low"
        assert alerts[low.id].minimum_stock == 5
        assert alerts[above_minimum.id].alert_level == "low"
        assert len(alerts) == 4

    @pytest.mark.asyncio
    async def test_alert_includes_last_movement(self, stock_service, product_factory):
        product = await product_factory(units=3, stock_quantity=3)
        await stock_service.reduce_stock(product.id, 1, MovementContext(order_id=1))

        alerts = await stock_service.low_stock_alerts()

        assert alerts[0].product_id == product.id
        assert alerts[0].current_stock == 2
        assert alerts[0].last_movement is not None


class TestInventoryLedger:
    @pytest.mark.asyncio
    async def test_summary(self, stock_service, ledger, product_factory):
        product = await product_factory(units=5, stock_quantity=5)
        await stock_service.reduce_stock(product.id, 2, MovementContext(order_id=1))
        await stock_service.restore_stock(product.id, 3, MovementContext(order_id=2))

        summary = await ledger.summarize()

        assert summary.total_in == 3
        assert summary.total_out == 2
        assert summary.net_change == 1
        assert summary.movements_by_type == {"sale": 1, "return": 1}

    @pytest.mark.asyncio
    async def test_list_filters_by_type(self, stock_service, ledger, product_factory):
        product = await product_factory(units=5, stock_quantity=5)
        await stock_service.reduce_stock(product.id, 1, MovementContext(order_id=1))
        await stock_service.restore_stock(product.id, 1, MovementContext(order_id=1))

        movements, total = await ledger.list_movements(
            MovementFilters(movement_type=MovementType.RETURN)
        )

        assert total == 1
        assert movements[0].movement_type == MovementType.RETURN

    @pytest.mark.asyncio
    async def test_unknown_movement_type_is_not_logged(self, ledger):
        movement = await ledger.log_movement(
            product_id=1,
            sku="X",
            movement_type="teleported",
            quantity_change=1,
            context=MovementContext(),
        )
        assert movement is None

    @pytest.mark.asyncio
    async def test_ledger_failure_keeps_stock_change(
        self, stock_service, ledger, product_factory, stock_of
    ):
        product = await product_factory(units=5, stock_quantity=5)
        ledger.movement_repository.create_movement = AsyncMock(
            side_effect=SQLAlchemyError("disk full")
        )

        mutation = await stock_service.reduce_stock(
            product.id, 2, MovementContext(order_id=1)
        )

        assert mutation.movement is None
        assert (await stock_of(product.id))["units"] == 3
