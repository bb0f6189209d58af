"""
Pricing arithmetic in integer minor units.

Amounts are ``*_cents`` integers, rates and discounts are basis points
(10000 bps = 100%). Unit prices are tax-inclusive everywhere: the tax of a
line is extracted from its total, never added on top of it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

BPS_SCALE = 10_000
MAX_DISCOUNT_BPS = BPS_SCALE


def _div_half_up(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator >= 0:
        return (numerator * 2 + denominator) // (denominator * 2)
    return -((-numerator * 2 + denominator) // (denominator * 2))


def percent_to_bps(percent) -> int:
    """Convert a percentage (int, float, str or Decimal) to basis points."""
    try:
        value = Decimal(str(percent))
    except (InvalidOperation, ValueError):
        raise ValueError(f"invalid percentage: {percent!r}")
    if not value.is_finite():
        raise ValueError(f"invalid percentage: {percent!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def bps_to_percent(bps: int) -> float:
    return bps / 100


def clamp_discount_bps(bps: int) -> int:
    return max(0, min(MAX_DISCOUNT_BPS, bps))


def line_total_cents(unit_price_cents: int, quantity: int, discount_bps: int = 0) -> int:
    """unit_price * quantity * (1 - discount/100), rounded half-up."""
    gross = unit_price_cents * quantity
    return _div_half_up(gross * (BPS_SCALE - discount_bps), BPS_SCALE)


def discount_amount_cents(unit_price_cents: int, quantity: int, discount_bps: int = 0) -> int:
    return unit_price_cents * quantity - line_total_cents(unit_price_cents, quantity, discount_bps)


def effective_unit_price_cents(line_total: int, quantity: int) -> int:
    """Per-unit amount actually charged on a line (after discount)."""
    return _div_half_up(line_total, quantity)


def tax_base_cents(amount_cents: int, tax_rate_bps: int) -> int:
    """Tax-exclusive base of a tax-inclusive amount."""
    return _div_half_up(amount_cents * BPS_SCALE, BPS_SCALE + tax_rate_bps)


def included_tax_cents(amount_cents: int, tax_rate_bps: int) -> int:
    return amount_cents - tax_base_cents(amount_cents, tax_rate_bps)


def summarize_lines(lines) -> dict:
    """
    Totals for an iterable of (line_total_cents, tax_rate_bps) pairs.

    Tax is computed per line so that mixed tax rates reconcile exactly:
    subtotal + tax == total.
    """
    total = 0
    tax = 0
    for amount, rate in lines:
        total += amount
        tax += included_tax_cents(amount, rate)
    return {
        "subtotal_cents": total - tax,
        "tax_cents": tax,
        "total_cents": total,
    }
