"""
Encode/decode boundary for structured order fields.

Orders store line items and addresses in JSON columns. Documents imported
from the legacy store carry the same fields as JSON-encoded strings, so
every read goes through these helpers instead of touching the raw column.
"""

import json
from typing import Any, Dict, Iterable, List, Union

from pydantic import ValidationError

from ..core.exceptions import OrderDataError
from ..schemas.order import OrderItemData, OrderResponse

RawField = Union[str, bytes, List[Any], Dict[str, Any], None]


def _load(value: RawField, field: str) -> Any:
    if isinstance(value, (str, bytes)):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise OrderDataError(
                f"Stored {field} is not valid JSON", {"field": field, "error": str(e)}
            )
    return value


def decode_items(value: RawField) -> List[OrderItemData]:
    """Decode stored line items into validated item models."""
    raw = _load(value, "items")
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise OrderDataError(
            "Stored items must be a list",
            {"field": "items", "type": type(raw).__name__},
        )
    try:
        return [OrderItemData.model_validate(item) for item in raw]
    except ValidationError as e:
        raise OrderDataError(
            "Stored items do not match the order item schema",
            {"field": "items", "errors": e.errors(include_url=False)},
        )


def encode_items(items: Iterable[OrderItemData]) -> List[Dict[str, Any]]:
    return [item.model_dump(exclude_none=True) for item in items]


def decode_address(value: RawField) -> Dict[str, Any]:
    raw = _load(value, "address")
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise OrderDataError(
            "Stored address must be an object",
            {"field": "address", "type": type(raw).__name__},
        )
    return raw


def to_order_response(order: Any) -> OrderResponse:
    """Build the API view of an order row, decoding its structured fields."""
    data = {
        attr.key: getattr(order, attr.key) for attr in order.__mapper__.column_attrs
    }
    data["items"] = decode_items(order.items)
    data["shipping_address"] = decode_address(order.shipping_address)
    data["billing_address"] = decode_address(order.billing_address)
    return OrderResponse.model_validate(data)
