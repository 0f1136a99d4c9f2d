"""
Event publisher lifecycle for the Fulfillment Service.

The publisher is process-wide: started in the application lifespan, read by
request dependencies through ``get_event_producer()``. When events are
disabled or Kafka never comes up, services receive ``None`` or a degraded
publisher and keep working.
"""

from typing import Any, Dict, Optional

from aiokafka.errors import KafkaError  # type: ignore

from ..events.base.kafka_client import KafkaEventPublisher
from ..events.producers import FulfillmentEventProducer
from ..utils.logging import setup_fulfillment_logging as setup_logging
from .settings import get_settings

logger = setup_logging("fulfillment_service.events")

_kafka_publisher: Optional[KafkaEventPublisher] = None
_event_producer: Optional[FulfillmentEventProducer] = None


async def init_events() -> None:
    global _kafka_publisher, _event_producer

    settings = get_settings()
    if not settings.EVENTS_ENABLED:
        logger.info("Event publishing disabled by configuration")
        return

    _kafka_publisher = KafkaEventPublisher(
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        client_id=f"{settings.SERVICE_NAME}-producer",
        max_retries=settings.KAFKA_CONNECT_RETRIES,
        retry_delay=settings.KAFKA_RETRY_DELAY_SECONDS,
        enable_graceful_degradation=True,
    )
    # Gives up quietly; a degraded publisher logs events instead of sending
    await _kafka_publisher.start(timeout=settings.KAFKA_CONNECT_TIMEOUT_SECONDS)
    _event_producer = FulfillmentEventProducer(_kafka_publisher)
    logger.info(
        "Event publisher ready",
        extra={
            "connected": _kafka_publisher.is_connected,
            "bootstrap_servers": settings.KAFKA_BOOTSTRAP_SERVERS,
        },
    )


async def close_events() -> None:
    global _kafka_publisher, _event_producer

    publisher = _kafka_publisher
    _kafka_publisher = None
    _event_producer = None
    if publisher is None:
        return
    try:
        await publisher.stop()
    except KafkaError as e:
        logger.error(f"Error closing event publisher: {e}")


def get_event_producer() -> Optional[FulfillmentEventProducer]:
    return _event_producer


async def event_status() -> Dict[str, Any]:
    """Publisher state for the health endpoint"""
    if _kafka_publisher is None:
        return {"status": "disabled"}
    healthy = await _kafka_publisher.health_check()
    return {
        "status": "connected" if healthy else "degraded",
        "bootstrap_servers": _kafka_publisher.bootstrap_servers,
    }
