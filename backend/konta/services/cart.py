# Overview: In-memory cart for one checkout session; computes line and cart totals.

"""
Checkout cart

A Cart is created when a checkout session starts, passed by reference to
whatever builds the sale, and cleared after the sale is committed. Nothing
here touches the database.

STOCK HINT: each line keeps the stock level seen when the product was
added. It is a soft limit used to clamp quantities and warn the cashier;
it goes stale as soon as someone else sells. The hard limit is the
conditional decrement performed by sales_service.commit_sale.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from ..money import (
    clamp_discount_bps,
    discount_amount_cents,
    line_total_cents,
    percent_to_bps,
)
from ..validation import ValidationError

_PARTIAL_DISCOUNT_RE = re.compile(r"^\d*\.?\d*$")


class CartError(ValidationError):
    """Raised when a cart operation is rejected without changing the cart."""


def _attr(product: Any, name: str, default=None):
    if isinstance(product, dict):
        return product.get(name, default)
    return getattr(product, name, default)


@dataclass
class CartLine:
    product_id: int
    name: str
    unit_price_cents: int
    quantity: int
    stock_hint: int
    tax_rate_bps: int
    discount_bps: int = 0

    @property
    def discount_percentage(self) -> float:
        return self.discount_bps / 100

    @property
    def line_total_cents(self) -> int:
        return line_total_cents(self.unit_price_cents, self.quantity, self.discount_bps)

    @property
    def discount_amount_cents(self) -> int:
        return discount_amount_cents(self.unit_price_cents, self.quantity, self.discount_bps)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "stock_hint": self.stock_hint,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_percentage": self.discount_percentage,
            "line_total_cents": self.line_total_cents,
        }


@dataclass
class Cart:
    default_tax_rate_bps: int = 1900
    lines: list[CartLine] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def _find(self, product_id: int) -> CartLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    @property
    def items(self) -> list[CartLine]:
        return list(self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def add(self, product: Any) -> CartLine:
        """
        Add one unit of ``product``.

        Raises CartError when the product has no stock. A product already in
        the cart goes through update_quantity so the stock hint applies.
        """
        name = _attr(product, "name", "")
        stock = _attr(product, "stock") or 0
        if stock <= 0:
            raise CartError(f'"{name}" is out of stock', details={"product_id": _attr(product, "id")})

        existing = self._find(_attr(product, "id"))
        if existing is not None:
            return self.update_quantity(existing.product_id, existing.quantity + 1)

        tax_rate = _attr(product, "tax_rate_bps")
        line = CartLine(
            product_id=_attr(product, "id"),
            name=name,
            unit_price_cents=_attr(product, "price_cents"),
            quantity=1,
            stock_hint=stock,
            tax_rate_bps=self.default_tax_rate_bps if tax_rate is None else tax_rate,
        )
        self.lines.append(line)
        return line

    def update_quantity(self, product_id: int, quantity: int) -> CartLine | None:
        """
        Set a line's quantity.

        <= 0 removes the line. Above the stock hint the quantity is clamped
        and a warning is recorded; the call itself does not fail.
        """
        if quantity <= 0:
            self.remove_item(product_id)
            return None

        line = self._find(product_id)
        if line is None:
            return None

        if quantity > line.stock_hint:
            self.warnings.append(f'Only {line.stock_hint} units of "{line.name}" are available')
            quantity = line.stock_hint

        line.quantity = quantity
        return line

    def update_discount(self, product_id: int, percent) -> CartLine | None:
        line = self._find(product_id)
        if line is None:
            return None
        try:
            bps = percent_to_bps(percent)
        except ValueError as exc:
            raise CartError(str(exc))
        line.discount_bps = clamp_discount_bps(bps)
        return line

    def remove_item(self, product_id: int) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def clear(self) -> None:
        self.lines = []
        self.warnings = []

    def total(self) -> int:
        """Sum of discounted line totals. Tax is already inside unit prices."""
        return sum(line.line_total_cents for line in self.lines)

    def pop_warnings(self) -> list[str]:
        warnings, self.warnings = self.warnings, []
        return warnings

    def to_sale_items(self) -> list[dict]:
        return [
            {
                "product_id": line.product_id,
                "quantity": line.quantity,
                "unit_price_cents": line.unit_price_cents,
                "discount_percentage": line.discount_percentage,
            }
            for line in self.lines
        ]


def is_partial_discount_input(text: str) -> bool:
    """Keystroke filter for a discount field: digits with at most one dot."""
    return text == "" or bool(_PARTIAL_DISCOUNT_RE.match(text))


def commit_discount_input(text) -> float:
    """
    Value stored when a discount field loses focus.

    Unparseable or negative input becomes 0 and anything above 100 becomes
    100. Intermediate keystrokes are not validated, only this final value.
    """
    try:
        value = float(text)
    except (TypeError, ValueError):
        return 0.0
    if value != value or value < 0:  # NaN
        return 0.0
    if value > 100:
        return 100.0
    return value
