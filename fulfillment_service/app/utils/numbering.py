"""Human-readable identifiers for orders and returns."""

import secrets
import time
from datetime import datetime, timezone
from typing import Optional

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _epoch_suffix(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return str(now_ms)[-6:]


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-{year}-{last six digits of the epoch in milliseconds}"""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now.year}-{_epoch_suffix(int(now.timestamp() * 1000))}"


def generate_return_number(now: Optional[datetime] = None) -> str:
    """RET-{year}-{last six digits of the epoch in milliseconds}"""
    now = now or datetime.now(timezone.utc)
    return f"RET-{now.year}-{_epoch_suffix(int(now.timestamp() * 1000))}"


def generate_order_code(now: Optional[datetime] = None) -> str:
    """ORD-{yyyymmdd}-{six random base36 characters}, used by public checkout"""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"
