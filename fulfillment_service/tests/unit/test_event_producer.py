"""
Unit tests for fulfillment event publishing.
"""

from unittest.mock import AsyncMock

import pytest
from aiokafka.errors import KafkaConnectionError, KafkaError

from fulfillment_service.app.core.events import (
    close_events,
    event_status,
    get_event_producer,
    init_events,
)
from fulfillment_service.app.events.base import BaseEvent
from fulfillment_service.app.events.base.kafka_client import (
    KafkaEventPublisher,
    partition_key,
)
from fulfillment_service.app.events.producers import FulfillmentEventProducer


class TestFulfillmentEventProducer:
    @pytest.fixture
    def publisher(self):
        return AsyncMock()

    @pytest.fixture
    def producer(self, publisher):
        return FulfillmentEventProducer(publisher)

    @pytest.mark.asyncio
    async def test_order_created_event(self, producer, publisher):
        await producer.publish_order_created(
            order_id=1,
            order_number="ORD-2024-123456",
            customer_id="cust-1",
            total_amount=25.0,
            items=[{"product_id": 1, "quantity": 1, "price": 25.0}],
            correlation_id="corr-1",
        )

        publisher.publish.assert_awaited_once()
        event = publisher.publish.await_args.args[0]
        assert event.event_type == "order.created"
        assert event.correlation_id == "corr-1"
        assert event.data["order_number"] == "ORD-2024-123456"
        assert event.data["source"] == "admin"
        assert publisher.publish.await_args.kwargs["topic"] == "order.events"

    @pytest.mark.asyncio
    async def test_inventory_movement_goes_to_inventory_topic(
        self, producer, publisher
    ):
        await producer.publish_inventory_movement(
            movement_id=7,
            product_id=3,
            movement_type="sale",
            quantity_change=-2,
            quantity_before=5,
            quantity_after=3,
            order_id=1,
        )

        event = publisher.publish.await_args.args[0]
        assert event.event_type == "inventory.movement_recorded"
        assert event.data["quantity_change"] == -2
        assert publisher.publish.await_args.kwargs["topic"] == "inventory.events"

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, producer, publisher):
        publisher.publish.side_effect = Exception("broker down")

        await producer.publish_order_status_updated(
            order_id=1,
            order_number="ORD-2024-123456",
            old_status="pending",
            new_status="delivered",
        )

        publisher.publish.assert_awaited_once()

    def test_events_get_distinct_ids(self):
        first = BaseEvent(event_type="order.created")
        second = BaseEvent(event_type="order.created")
        assert first.event_id != second.event_id


class TestKafkaEventPublisher:
    @pytest.mark.asyncio
    async def test_degraded_mode_logs_instead_of_publishing(self):
        publisher = KafkaEventPublisher("localhost:9092", "fulfillment-test")

        await publisher.publish(BaseEvent(event_type="order.created"))

        assert publisher.is_connected is False

    @pytest.mark.asyncio
    async def test_strict_mode_raises_when_disconnected(self):
        publisher = KafkaEventPublisher(
            "localhost:9092", "fulfillment-test", enable_graceful_degradation=False
        )

        with pytest.raises(KafkaConnectionError):
            await publisher.publish(BaseEvent(event_type="order.created"))

    def test_topic_mapping(self):
        publisher = KafkaEventPublisher("localhost:9092", "fulfillment-test")
        assert publisher._get_topic_for_event("inventory.movement_recorded") == (
            "inventory.events"
        )
        assert publisher._get_topic_for_event("order.created") == "order.events"

    @pytest.mark.asyncio
    async def test_health_check_without_producer(self):
        publisher = KafkaEventPublisher("localhost:9092", "fulfillment-test")
        assert await publisher.health_check() is False

    def test_partition_key_prefers_order(self):
        event = BaseEvent(
            event_type="inventory.movement_recorded",
            correlation_id="corr-1",
            data={"order_id": 9, "product_id": 3},
        )
        assert partition_key(event) == "order_id:9"

    def test_partition_key_falls_back_to_product_then_correlation(self):
        by_product = BaseEvent(
            event_type="inventory.movement_recorded", data={"product_id": 3}
        )
        by_correlation = BaseEvent(event_type="order.created", correlation_id="c-2")
        assert partition_key(by_product) == "product_id:3"
        assert partition_key(by_correlation) == "c-2"

    @pytest.mark.asyncio
    async def test_send_failure_is_logged_in_degraded_mode(self):
        publisher = KafkaEventPublisher("localhost:9092", "fulfillment-test")
        publisher.producer = AsyncMock()
        publisher.producer.send_and_wait.side_effect = KafkaError("leader gone")
        publisher.is_connected = True

        await publisher.publish(BaseEvent(event_type="order.created"))

        publisher.producer.send_and_wait.assert_awaited_once()


class TestEventLifecycle:
    @pytest.mark.asyncio
    async def test_disabled_events_leave_no_producer(self):
        await init_events()

        assert get_event_producer() is None
        assert await event_status() == {"status": "disabled"}
        await close_events()
