"""Order pricing.

Every function here is pure: callers pass in the line items and the
discount they want applied, nothing is read from or written to the
session. Totals are integer cents and never negative.
"""
from typing import Iterable, Optional

from order_service.db.models import Voucher


def line_total(unit_price_cents: int, qty: int) -> int:
    return unit_price_cents * qty


def subtotal(items: Iterable) -> int:
    """Sum of ``unit_price_cents * qty`` over anything shaped like an OrderItem."""
    return sum(line_total(it.unit_price_cents, it.qty) for it in items)


def voucher_discount(voucher: Optional[Voucher]) -> int:
    if voucher is None:
        return 0
    return voucher.discount_cents


def compute_total(items: Iterable, discount_cents: int = 0) -> int:
    return max(0, subtotal(items) - discount_cents)
