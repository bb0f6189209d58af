"""
Pricing arithmetic tests.

Prices are tax-inclusive integer cents; discounts and tax rates are basis
points; every division rounds half-up.
"""

import pytest

from konta.money import (
    clamp_discount_bps,
    discount_amount_cents,
    effective_unit_price_cents,
    included_tax_cents,
    line_total_cents,
    percent_to_bps,
    summarize_lines,
    tax_base_cents,
)


class TestLineTotals:

    def test_no_discount(self):
        assert line_total_cents(11900, 3) == 35700

    def test_percentage_discount(self):
        # 100.00 x 3 with 10% off
        assert line_total_cents(10000, 3, 1000) == 27000
        assert discount_amount_cents(10000, 3, 1000) == 3000

    def test_rounds_half_up(self):
        # 3.33 at 50% is 1.665 -> 1.67
        assert line_total_cents(333, 1, 5000) == 167

    def test_full_discount_is_free(self):
        assert line_total_cents(5000, 2, 10000) == 0


class TestTaxExtraction:

    def test_base_and_tax_of_inclusive_price(self):
        assert tax_base_cents(11900, 1900) == 10000
        assert included_tax_cents(11900, 1900) == 1900

    def test_zero_rate_has_no_tax(self):
        assert included_tax_cents(4500, 0) == 0

    def test_mixed_rates_reconcile(self):
        totals = summarize_lines([(11900, 1900), (10500, 500)])
        assert totals == {"subtotal_cents": 20000, "tax_cents": 2400, "total_cents": 22400}
        assert totals["subtotal_cents"] + totals["tax_cents"] == totals["total_cents"]


class TestConversions:

    @pytest.mark.parametrize("percent,bps", [(10, 1000), ("12.5", 1250), (0.1, 10), ("100", 10000)])
    def test_percent_to_bps(self, percent, bps):
        assert percent_to_bps(percent) == bps

    @pytest.mark.parametrize("bad", ["abc", "", None, float("nan"), "inf"])
    def test_percent_to_bps_rejects_non_numbers(self, bad):
        with pytest.raises(ValueError):
            percent_to_bps(bad)

    def test_clamp(self):
        assert clamp_discount_bps(-50) == 0
        assert clamp_discount_bps(15000) == 10000
        assert clamp_discount_bps(2500) == 2500

    def test_effective_unit_price(self):
        assert effective_unit_price_cents(18000, 2) == 9000
        assert effective_unit_price_cents(1001, 2) == 501
        assert effective_unit_price_cents(1000, 3) == 333
