"""
Error middleware for Fulfillment Service.
"""

from .error_handler import FulfillmentErrorHandler, setup_fulfillment_error_handling

__all__ = ["FulfillmentErrorHandler", "setup_fulfillment_error_handling"]
