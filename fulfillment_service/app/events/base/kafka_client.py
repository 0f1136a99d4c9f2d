import asyncio
import json
from typing import Any, Dict, Optional

from aiokafka import AIOKafkaProducer  # type: ignore
from aiokafka.errors import KafkaConnectionError, KafkaError  # type: ignore

from ...utils.logging import setup_fulfillment_logging as setup_logging
from . import BaseEvent, EventPublisher

logger = setup_logging("fulfillment_service.events.kafka")

ORDER_TOPIC = "order.events"
INVENTORY_TOPIC = "inventory.events"

# Event type prefix -> topic; anything unlisted is an order event
EVENT_TOPICS: Dict[str, str] = {
    "inventory.": INVENTORY_TOPIC,
    "order.": ORDER_TOPIC,
}


def _serialize_value(value: Dict[str, Any]) -> bytes:
    return json.dumps(value, default=str).encode("utf-8")


def _serialize_key(key: Optional[str]) -> Optional[bytes]:
    return key.encode("utf-8") if key else None


def partition_key(event: BaseEvent) -> Optional[str]:
    """Events about one order (or one product) share a key and stay ordered"""
    for field in ("order_id", "product_id"):
        value = event.data.get(field)
        if value is not None:
            return f"{field}:{value}"
    return event.correlation_id


class KafkaEventPublisher(EventPublisher):
    """Publishes fulfillment events, falling back to the log when Kafka is down.

    ``start`` retries with exponential backoff and gives up quietly, so the
    service still boots without a broker. With graceful degradation off,
    publishing while disconnected raises ``KafkaConnectionError``.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        max_retries: int = 10,
        retry_delay: float = 2.0,
        enable_graceful_degradation: bool = True,
    ):
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.enable_graceful_degradation = enable_graceful_degradation
        self.producer: Optional[AIOKafkaProducer] = None
        self.is_connected = False
        self._connection_lock = asyncio.Lock()

    def _backoff(self, attempt: int) -> float:
        return self.retry_delay * (2**attempt)

    async def start(self, timeout: float = 30.0) -> None:
        async with self._connection_lock:
            if self.producer and self.is_connected:
                return

            self.producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                value_serializer=_serialize_value,
                key_serializer=_serialize_key,
                retry_backoff_ms=1000,
                request_timeout_ms=30000,
            )

            for attempt in range(1, self.max_retries + 1):
                try:
                    await asyncio.wait_for(self.producer.start(), timeout=timeout)
                except (KafkaConnectionError, asyncio.TimeoutError) as e:
                    if attempt == self.max_retries:
                        break
                    delay = self._backoff(attempt - 1)
                    logger.warning(
                        f"Kafka connection attempt {attempt} failed: {e}",
                        extra={"attempt": attempt, "retry_in_seconds": delay},
                    )
                    await asyncio.sleep(delay)
                else:
                    self.is_connected = True
                    logger.info(
                        "Connected to Kafka",
                        extra={"bootstrap_servers": self.bootstrap_servers},
                    )
                    return

            self.is_connected = False
            logger.error(
                "Kafka unavailable, fulfillment events will only be logged",
                extra={"attempts": self.max_retries},
            )

    async def stop(self) -> None:
        async with self._connection_lock:
            if not self.producer:
                return
            try:
                await self.producer.stop()
                logger.info("Kafka producer stopped")
            except KafkaError as e:
                logger.warning("Error stopping Kafka producer", extra={"error": str(e)})
            finally:
                self.producer = None
                self.is_connected = False

    def _log_undelivered(self, event: BaseEvent, reason: str) -> None:
        logger.warning(
            f"Event {event.event_type} not delivered: {reason}",
            extra={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "event_data": event.model_dump(mode="json"),
            },
        )

    async def publish(self, event: BaseEvent, topic: Optional[str] = None) -> None:
        if not self.is_connected or not self.producer:
            if not self.enable_graceful_degradation:
                raise KafkaConnectionError("Kafka producer not connected")
            self._log_undelivered(event, "Kafka not connected")
            return

        topic = topic or self._get_topic_for_event(event.event_type)
        try:
            await self.producer.send_and_wait(
                topic=topic,
                value=event.model_dump(mode="json"),
                key=partition_key(event),
            )
        except KafkaError as e:
            if not self.enable_graceful_degradation:
                raise
            self._log_undelivered(event, str(e))
            return

        logger.info(
            "Published fulfillment event",
            extra={
                "event_type": event.event_type,
                "topic": topic,
                "event_id": event.event_id,
                "correlation_id": event.correlation_id,
            },
        )

    def _get_topic_for_event(self, event_type: str) -> str:
        for prefix, topic in EVENT_TOPICS.items():
            if event_type.startswith(prefix):
                return topic
        return ORDER_TOPIC

    async def health_check(self) -> bool:
        if not self.producer or not self.is_connected:
            return False
        try:
            metadata = await self.producer.client.fetch_all_metadata()
        except KafkaError as e:
            logger.warning("Kafka health check failed", extra={"error": str(e)})
            return False
        return len(metadata.brokers()) > 0
