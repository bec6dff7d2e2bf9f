"""Currency display helpers."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

RUPEE = "₹"
# Largest amount every backend can store as a signed 64-bit integer.
MAX_AMOUNT = 2**63 - 1


def group_indian(value: int) -> str:
    """Group digits the Indian way: last three, then pairs (12,34,567)."""
    sign = "-" if value < 0 else ""
    digits = str(abs(value))
    if len(digits) <= 3:
        return sign + digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return sign + ",".join(pairs + [tail])


def format_inr(amount: int) -> str:
    return f"{RUPEE}{group_indian(int(amount))}"


def parse_amount(value: Any) -> int | None:
    """Coerce ``value`` to a whole currency amount, or ``None`` if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if abs(value) <= MAX_AMOUNT else None
    value_str = str(value).strip()
    if not value_str:
        return None
    try:
        amount = Decimal(value_str)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not amount.is_finite() or amount != amount.to_integral_value():
        return None
    if abs(amount) > MAX_AMOUNT:
        return None
    return int(amount)
