# Overview: Pure pricing arithmetic for sales and refunds; no database access.

"""
Pricing Calculator

Amounts are floats in currency units carried at full precision. Any
comparison between a computed and a declared figure goes through
amounts_match() with a 0.01 absolute tolerance; rounding only happens
when presenting values (round_money).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .errors import PosError


MONEY_TOLERANCE = 0.01


class PricingError(PosError):
    """Raised when inputs would produce negative money."""
    code = "INVALID_PRICING"


@dataclass(frozen=True)
class SaleTotals:
    subtotal: float
    global_discount_percent: float
    global_discount_amount: float
    tip: float
    final_total: float


def amounts_match(a: float, b: float, tolerance: float = MONEY_TOLERANCE) -> bool:
    # 1e-9 absorbs representation error at exactly one cent apart
    return abs(a - b) <= tolerance + 1e-9


def round_money(value: float) -> float:
    return round(value, 2)


def line_total(unit_price: float, quantity: int, discount_percent: float = 0.0) -> float:
    """unit_price * quantity * (1 - discount_percent / 100)"""
    return unit_price * quantity * (1 - (discount_percent or 0) / 100)


def sale_totals(line_totals: Iterable[float], global_discount_percent: float = 0.0, tip: float = 0.0) -> SaleTotals:
    """
    Compute the pricing snapshot of a sale from its line totals.

    finalTotal = subtotal - subtotal * globalDiscount% + tip
    """
    subtotal = sum(line_totals)
    global_discount_percent = global_discount_percent or 0.0
    tip = tip or 0.0

    if subtotal < 0:
        raise PricingError("Sale subtotal cannot be negative", details={"subtotal": subtotal})
    if tip < 0:
        raise PricingError("Tip cannot be negative", details={"tip": tip})
    if not 0 <= global_discount_percent <= 100:
        raise PricingError(
            "Global discount must be between 0 and 100 percent",
            details={"global_discount": global_discount_percent},
        )

    discount_amount = subtotal * global_discount_percent / 100
    return SaleTotals(
        subtotal=subtotal,
        global_discount_percent=global_discount_percent,
        global_discount_amount=discount_amount,
        tip=tip,
        final_total=subtotal - discount_amount + tip,
    )


def proportional_refund(total: float, quantity: int, refund_quantity: int) -> float:
    """
    Refund value of `refund_quantity` units of a line.

    Divides by the ORIGINAL line quantity, so the per-unit (discounted)
    rate is the same no matter how the line is split across refunds.
    """
    if quantity <= 0:
        raise PricingError("Line quantity must be positive", details={"quantity": quantity})
    return (total / quantity) * refund_quantity
