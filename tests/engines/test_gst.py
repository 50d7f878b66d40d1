"""
Tests for the GST engine.

Covers:
- Intra-state CGST/SGST split and inter-state IGST
- Odd-paisa rounding
- Line pricing and header totals
- Input validation
"""

from decimal import Decimal

import pytest

from backoffice_engines.gst import (
    DocumentTotals,
    calculate_gst,
    is_intra_state,
    price_line,
    sum_lines,
)


class TestIsIntraState:
    """Tests for the place-of-supply check."""

    def test_same_state(self):
        assert is_intra_state("36", "36") is True

    def test_different_state(self):
        assert is_intra_state("27", "36") is False

    def test_missing_party_state_is_inter_state(self):
        """Unknown state is treated as inter-state."""
        assert is_intra_state(None, "36") is False
        assert is_intra_state("", "36") is False

    def test_whitespace_ignored(self):
        assert is_intra_state(" 36", "36 ") is True


class TestCalculateGST:
    """Tests for splitting tax on a taxable amount."""

    def test_intra_state_split(self):
        """1000 at 18% within the state: 90 CGST + 90 SGST."""
        split = calculate_gst(
            taxable_amount=Decimal("1000"),
            rate=Decimal("18"),
            party_state_code="36",
            home_state_code="36",
        )

        assert split.is_intra_state is True
        assert split.central_tax == Decimal("90.00")
        assert split.state_tax == Decimal("90.00")
        assert split.integrated_tax == Decimal("0")
        assert split.total_with_tax == Decimal("1180.00")

    def test_inter_state_igst(self):
        """1000 at 18% across states: 180 IGST."""
        split = calculate_gst(
            taxable_amount=Decimal("1000"),
            rate=Decimal("18"),
            party_state_code="27",
            home_state_code="36",
        )

        assert split.is_intra_state is False
        assert split.central_tax == Decimal("0")
        assert split.state_tax == Decimal("0")
        assert split.integrated_tax == Decimal("180.00")
        assert split.total_with_tax == Decimal("1180.00")

    def test_odd_paisa_goes_to_state_half(self):
        """10.01 at 5%: full tax 0.50, central rounds down to 0.25."""
        split = calculate_gst(
            taxable_amount=Decimal("10.01"),
            rate=Decimal("5"),
            party_state_code="36",
            home_state_code="36",
        )

        assert split.total_tax == Decimal("0.50")
        assert split.central_tax == Decimal("0.25")
        assert split.state_tax == Decimal("0.25")

    def test_state_half_absorbs_rounding(self):
        """33.33 at 5%: full 1.67, central 0.83, state 0.84."""
        split = calculate_gst(
            taxable_amount=Decimal("33.33"),
            rate=Decimal("5"),
            party_state_code="36",
            home_state_code="36",
        )

        assert split.total_tax == Decimal("1.67")
        assert split.central_tax == Decimal("0.83")
        assert split.state_tax == Decimal("0.84")
        assert split.central_tax + split.state_tax == split.total_tax

    def test_zero_rate(self):
        split = calculate_gst(
            taxable_amount=Decimal("500"),
            rate=Decimal("0"),
            party_state_code="36",
            home_state_code="36",
        )

        assert split.total_tax == Decimal("0")
        assert split.total_with_tax == Decimal("500.00")

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            calculate_gst(
                taxable_amount=Decimal("-1"),
                rate=Decimal("18"),
                party_state_code="36",
                home_state_code="36",
            )

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            calculate_gst(
                taxable_amount=Decimal("100"),
                rate=Decimal("-5"),
                party_state_code="36",
                home_state_code="36",
            )

    def test_float_rejected(self):
        """Floats have already lost precision."""
        with pytest.raises(TypeError):
            calculate_gst(
                taxable_amount=100.0,
                rate=Decimal("18"),
                party_state_code="36",
                home_state_code="36",
            )


class TestPriceLine:
    """Tests for pricing one document line."""

    def test_amount_is_rounded_product(self):
        line = price_line(Decimal("3"), Decimal("33.333"), Decimal("12"), "36", "36")

        assert line.amount == Decimal("100.00")
        assert line.cgst_amount == Decimal("6.00")
        assert line.sgst_amount == Decimal("6.00")
        assert line.total_amount == Decimal("112.00")

    def test_inter_state_line(self):
        line = price_line(Decimal("10"), Decimal("100"), Decimal("18"), "27", "36")

        assert line.igst_amount == Decimal("180.00")
        assert line.tax_amount == Decimal("180.00")

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValueError):
            price_line(Decimal("0"), Decimal("10"), Decimal("18"), "36", "36")

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            price_line(Decimal("1"), Decimal("-10"), Decimal("18"), "36", "36")


class TestSumLines:
    """Header totals are the sum of rounded line figures."""

    def test_sums_each_head(self):
        lines = [
            price_line(Decimal("1"), Decimal("10.01"), Decimal("5"), "36", "36"),
            price_line(Decimal("1"), Decimal("10.01"), Decimal("5"), "36", "36"),
        ]

        totals = sum_lines(lines)

        assert totals.subtotal == Decimal("20.02")
        assert totals.cgst_total == Decimal("0.50")
        assert totals.sgst_total == Decimal("0.50")
        assert totals.total_amount == Decimal("21.02")
        assert totals.tax_total == Decimal("1.00")

    def test_empty_is_zero(self):
        totals = sum_lines([])

        assert totals == DocumentTotals(
            subtotal=Decimal("0"),
            cgst_total=Decimal("0"),
            sgst_total=Decimal("0"),
            igst_total=Decimal("0"),
            total_amount=Decimal("0"),
        )
