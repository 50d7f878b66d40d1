"""
GST Engine - split tax on a taxable amount into central, state or integrated heads.

Two-tier model:
    - Intra-state supply (party state == home state): central + state tax,
      each nominally half the rate.
    - Inter-state supply, or a party with no state code: integrated tax at
      the full rate.

Rounding:
    full tax    = round(amount * rate / 100, 2dp) half-up
    central tax = round(amount * rate / 2 / 100, 2dp) down
    state tax   = full tax - central tax
The state half absorbs the odd paisa, so central + state == full tax on
every line, and the intra-state total equals the inter-state total.

Pure functions, no I/O.

Usage:
    from decimal import Decimal
    from backoffice_engines.gst import calculate_gst

    split = calculate_gst(
        taxable_amount=Decimal("1000.00"),
        rate=Decimal("18"),
        party_state_code="36",
        home_state_code="36",
    )
    split.central_tax     # Decimal("90.00")
    split.total_with_tax  # Decimal("1180.00")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Iterable

from backoffice_kernel.db.types import round_money, to_decimal
from backoffice_engines.tracer import traced_engine

HUNDRED = Decimal("100")
TWO = Decimal("2")
ZERO = Decimal("0")


@dataclass(frozen=True)
class GSTBreakdown:
    """Tax split for one taxable amount."""

    taxable_amount: Decimal
    rate: Decimal
    is_intra_state: bool
    central_tax: Decimal
    state_tax: Decimal
    integrated_tax: Decimal
    total_with_tax: Decimal

    @property
    def total_tax(self) -> Decimal:
        return self.central_tax + self.state_tax + self.integrated_tax


@dataclass(frozen=True)
class LineAmounts:
    """Priced and taxed document line."""

    qty: Decimal
    rate: Decimal
    amount: Decimal
    gst_rate: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_amount: Decimal

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    total_amount: Decimal

    @property
    def tax_total(self) -> Decimal:
        return self.cgst_total + self.sgst_total + self.igst_total


def is_intra_state(party_state_code: str | None, home_state_code: str | None) -> bool:
    """Same non-empty state code on both sides.  Unknown party state is inter-state."""
    if not party_state_code or not home_state_code:
        return False
    return party_state_code.strip() == home_state_code.strip()


@traced_engine(
    "gst",
    "1.0",
    fingerprint_fields=("taxable_amount", "rate", "party_state_code", "home_state_code"),
)
def calculate_gst(
    taxable_amount: Decimal,
    rate: Decimal,
    party_state_code: str | None,
    home_state_code: str | None,
) -> GSTBreakdown:
    """
    Split GST on a taxable amount.

    Raises:
        ValueError: If the amount or rate is negative.
        TypeError: If either is a float.
    """
    amount = to_decimal(taxable_amount)
    rate = to_decimal(rate)
    if amount < ZERO:
        raise ValueError(f"Taxable amount cannot be negative: {amount}")
    if rate < ZERO:
        raise ValueError(f"GST rate cannot be negative: {rate}")

    full_tax = round_money(amount * rate / HUNDRED)
    intra = is_intra_state(party_state_code, home_state_code)

    if intra:
        central = round_money(amount * rate / TWO / HUNDRED, rounding=ROUND_DOWN)
        state = full_tax - central
        integrated = ZERO
    else:
        central = ZERO
        state = ZERO
        integrated = full_tax

    return GSTBreakdown(
        taxable_amount=amount,
        rate=rate,
        is_intra_state=intra,
        central_tax=round_money(central),
        state_tax=round_money(state),
        integrated_tax=round_money(integrated),
        total_with_tax=round_money(amount + full_tax),
    )


def price_line(
    qty: Decimal,
    rate: Decimal,
    gst_rate: Decimal,
    party_state_code: str | None,
    home_state_code: str | None,
) -> LineAmounts:
    """
    Price one line: amount = round(qty * rate), then tax on that amount.

    Raises:
        ValueError: If qty <= 0 or rate / gst_rate is negative.
    """
    qty = to_decimal(qty)
    rate = to_decimal(rate)
    if qty <= ZERO:
        raise ValueError(f"Quantity must be positive: {qty}")
    if rate < ZERO:
        raise ValueError(f"Rate cannot be negative: {rate}")

    amount = round_money(qty * rate)
    split = calculate_gst(
        taxable_amount=amount,
        rate=to_decimal(gst_rate),
        party_state_code=party_state_code,
        home_state_code=home_state_code,
    )
    return LineAmounts(
        qty=qty,
        rate=rate,
        amount=amount,
        gst_rate=split.rate,
        cgst_amount=split.central_tax,
        sgst_amount=split.state_tax,
        igst_amount=split.integrated_tax,
        total_amount=split.total_with_tax,
    )


def sum_lines(lines: Iterable[LineAmounts]) -> DocumentTotals:
    """Header totals as the exact sum of already-rounded line figures."""
    subtotal = cgst = sgst = igst = total = ZERO
    for line in lines:
        subtotal += line.amount
        cgst += line.cgst_amount
        sgst += line.sgst_amount
        igst += line.igst_amount
        total += line.total_amount
    return DocumentTotals(
        subtotal=subtotal,
        cgst_total=cgst,
        sgst_total=sgst,
        igst_total=igst,
        total_amount=total,
    )
