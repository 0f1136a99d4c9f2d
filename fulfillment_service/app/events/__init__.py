"""
Events module for the Fulfillment Service.

Producers:
    - FulfillmentEventProducer: order lifecycle and inventory ledger events

Event Types:
    order.created, order.status_updated, order.return_processed,
    inventory.movement_recorded
"""

from .producers import FulfillmentEventProducer

__all__ = ["FulfillmentEventProducer"]
