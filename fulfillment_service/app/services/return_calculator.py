"""
Refund and return classification rules.

Pure functions: no store access, so the return flow and the tests can use
them directly.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from ..core.exceptions import ReturnValidationError
from ..models.order import OrderStatus, PaymentStatus, ReturnCondition
from ..schemas.order import OrderItemData
from ..schemas.returns import ReturnItemRecord, ReturnItemRequest


def compute_refund(items: Iterable[ReturnItemRecord]) -> float:
    """Sum of price * quantity over the returned items.

    Shipping refunds and processing fees are recorded next to this amount by
    the caller and are deliberately not part of it.
    """
    return round(sum(item.price * item.quantity for item in items), 2)


def classify_return(ordered_quantity: int, returned_quantity: int) -> Tuple[str, str]:
    """Return (order status, payment status) for the cumulative returned units.

    Returning as many units as were ordered counts as a full return.
    """
    if returned_quantity >= ordered_quantity:
        return OrderStatus.RETURNED, PaymentStatus.REFUNDED
    return OrderStatus.PARTIALLY_RETURNED, PaymentStatus.PARTIALLY_REFUNDED


def is_restorable(condition: str) -> bool:
    return condition in ReturnCondition.RESTORABLE


def returned_by_line(
    order_items: Sequence[OrderItemData], returned: Dict[int, int]
) -> Dict[int, int]:
    """Spread returned units per product over that product's order lines.

    Lines are filled first to last, so the same totals always land on the
    same lines.
    """
    remaining = dict(returned)
    by_line: Dict[int, int] = {}
    for index, item in enumerate(order_items):
        taken = min(item.quantity, remaining.get(item.product_id, 0))
        if taken > 0:
            by_line[index] = taken
            remaining[item.product_id] -= taken
    return by_line


def allocate_to_lines(
    order_items: Sequence[OrderItemData],
    previously_returned: Dict[int, int],
    records: Sequence[ReturnItemRecord],
) -> List[Dict[int, int]]:
    """Order line index -> units for each returned record, in record order.

    Units already taken by earlier returns are not handed out again.
    """
    taken = returned_by_line(order_items, previously_returned)
    capacity = {
        index: item.quantity - taken.get(index, 0)
        for index, item in enumerate(order_items)
    }

    allocations: List[Dict[int, int]] = []
    for item_record in records:
        needed = item_record.quantity
        allocation: Dict[int, int] = {}
        for index, item in enumerate(order_items):
            if needed <= 0:
                break
            if item.product_id != item_record.product_id:
                continue
            units = min(needed, capacity[index])
            if units > 0:
                allocation[index] = units
                capacity[index] -= units
                needed -= units
        allocations.append(allocation)
    return allocations


def units_to_restock(
    records: Sequence[ReturnItemRecord], allocations: Sequence[Dict[int, int]]
) -> Dict[int, int]:
    """Units per order line that go back to sellable stock.

    Damaged units are written off.
    """
    per_line: Dict[int, int] = defaultdict(int)
    for item_record, allocation in zip(records, allocations):
        if not is_restorable(item_record.condition):
            continue
        for index, units in allocation.items():
            per_line[index] += units
    return dict(sorted(per_line.items()))


def validate_return_items(
    order_items: Sequence[OrderItemData],
    previously_returned: Dict[int, int],
    requested: Sequence[ReturnItemRequest],
) -> List[ReturnItemRecord]:
    """Check a return request against the order and price each line.

    Every product must be on the order and the units returned so far plus
    the requested units may not exceed what was ordered. Prices come from
    the order line, never from the request.
    """
    if not requested:
        raise ReturnValidationError("A return must contain at least one item")

    ordered: Dict[int, int] = defaultdict(int)
    lines: Dict[int, OrderItemData] = {}
    for item in order_items:
        ordered[item.product_id] += item.quantity
        lines.setdefault(item.product_id, item)

    requested_totals: Dict[int, int] = defaultdict(int)
    records: List[ReturnItemRecord] = []
    for item in requested:
        line = lines.get(item.product_id)
        if line is None:
            raise ReturnValidationError(
                f"Product {item.product_id} is not part of this order",
                {"product_id": item.product_id},
            )
        if item.quantity <= 0:
            raise ReturnValidationError(
                "Return quantity must be greater than 0",
                {"product_id": item.product_id},
            )

        requested_totals[item.product_id] += item.quantity
        already = previously_returned.get(item.product_id, 0)
        if already + requested_totals[item.product_id] > ordered[item.product_id]:
            raise ReturnValidationError(
                f"Cannot return more units of product {item.product_id} "
                "than were ordered",
                {
                    "product_id": item.product_id,
                    "ordered": ordered[item.product_id],
                    "already_returned": already,
                    "requested": requested_totals[item.product_id],
                },
            )

        records.append(
            ReturnItemRecord(
                product_id=item.product_id,
                product_name=line.product_name,
                sku=line.sku,
                quantity=item.quantity,
                condition=item.condition,
                reason=item.reason,
                price=line.price,
                refund_amount=round(line.price * item.quantity, 2),
            )
        )

    return records
