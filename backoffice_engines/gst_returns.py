"""
Module: backoffice_engines.gst_returns
Responsibility:
    Build the GST return payloads from documents already filtered to a
    date range: the GSTR-1 JSON (b2b, b2cs, hsn, cdnr sections), the
    GSTR-3B summary, and the dealer-wise TDS/TCS summary.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The compliance service
    loads non-void documents and maps them to ReturnDocument /
    DeductionPayment inputs.

Invariants enforced:
    - Money is summed as Decimal and rounded to 2dp once per output figure.
    - Dates are rendered DD-MM-YYYY; the filing period is MMYYYY.
    - Grouping preserves input order, so callers ordering documents by
      date and number get stable output.
    - Net tax payable is clipped at zero per head (central, state,
      integrated).
    - A b2cs row's supply type follows how the invoice was taxed, never
      a comparison of state codes.

Failure modes:
    - ValueError from filing_period() on an invalid month.

Audit relevance:
    The payloads carry Decimal values.  dumps_portal_json() is the export
    boundary that renders them as JSON numbers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from backoffice_kernel.db.types import round_money
from backoffice_engines.tracer import traced_engine

ZERO = Decimal("0")

# GST state code for "Other Territory", used when a party has no state.
OTHER_TERRITORY = "97"


@dataclass(frozen=True)
class ReturnLine:
    hsn_code: str | None
    uqc: str | None
    qty: Decimal
    gst_rate: Decimal
    taxable_value: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal


@dataclass(frozen=True)
class ReturnDocument:
    """An invoice, purchase invoice or note as the return builders see it."""

    number: str
    doc_date: date
    party_gstin: str | None
    party_state_code: str | None
    is_intra_state: bool
    lines: tuple[ReturnLine, ...]

    @property
    def is_registered(self) -> bool:
        return bool(self.party_gstin)

    @property
    def total_amount(self) -> Decimal:
        return sum((line.total for line in self.lines), ZERO)


@dataclass(frozen=True)
class DeductionPayment:
    """A payment received with TDS or TCS."""

    party_id: UUID
    party_name: str
    party_gstin: str | None
    amount: Decimal
    tds_amount: Decimal
    tcs_amount: Decimal
    net_amount: Decimal


@dataclass(frozen=True)
class DeductionSummaryRow:
    party_id: UUID
    party_name: str
    party_gstin: str | None
    payment_count: int
    gross_total: Decimal
    tds_total: Decimal
    tcs_total: Decimal
    net_total: Decimal


def format_return_date(value: date) -> str:
    return value.strftime("%d-%m-%Y")


def filing_period(year: int, month: int) -> str:
    """MMYYYY, e.g. (2024, 7) -> "072024"."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    return f"{month:02d}{year:04d}"


def place_of_supply(document: ReturnDocument, home_state_code: str) -> str:
    """
    The party's state code.  Without one, an intra-state supply is placed
    in the home state and an inter-state supply in Other Territory.
    """
    if document.party_state_code:
        return document.party_state_code
    return home_state_code if document.is_intra_state else OTHER_TERRITORY


def _rt(rate: Decimal) -> Decimal | int:
    if rate == rate.to_integral_value():
        return int(rate)
    return rate.normalize()


class _TaxSums:
    __slots__ = ("txval", "camt", "samt", "iamt", "qty")

    def __init__(self) -> None:
        self.txval = ZERO
        self.camt = ZERO
        self.samt = ZERO
        self.iamt = ZERO
        self.qty = ZERO

    def add(self, line: ReturnLine) -> None:
        self.txval += line.taxable_value
        self.camt += line.cgst
        self.samt += line.sgst
        self.iamt += line.igst
        self.qty += line.qty

    def amounts(self) -> dict[str, Decimal]:
        return {
            "txval": round_money(self.txval),
            "camt": round_money(self.camt),
            "samt": round_money(self.samt),
            "iamt": round_money(self.iamt),
            "csamt": ZERO,
        }


def _rate_items(lines: Iterable[ReturnLine]) -> list[dict[str, Any]]:
    by_rate: dict[Decimal, _TaxSums] = {}
    for line in lines:
        by_rate.setdefault(line.gst_rate, _TaxSums()).add(line)
    return [
        {"num": index, "itm_det": {"rt": _rt(rate), **sums.amounts()}}
        for index, (rate, sums) in enumerate(by_rate.items(), start=1)
    ]


def build_b2b(invoices: Sequence[ReturnDocument], home_state_code: str) -> list[dict[str, Any]]:
    """Registered-party supplies grouped by GSTIN, then invoice, then rate slab."""
    by_gstin: dict[str, list[ReturnDocument]] = {}
    for invoice in invoices:
        if invoice.is_registered:
            by_gstin.setdefault(invoice.party_gstin, []).append(invoice)

    return [
        {
            "ctin": gstin,
            "inv": [
                {
                    "inum": inv.number,
                    "idt": format_return_date(inv.doc_date),
                    "val": round_money(inv.total_amount),
                    "pos": place_of_supply(inv, home_state_code),
                    "rchrg": "N",
                    "inv_typ": "R",
                    "itms": _rate_items(inv.lines),
                }
                for inv in docs
            ],
        }
        for gstin, docs in by_gstin.items()
    ]


def build_b2cs(invoices: Sequence[ReturnDocument], home_state_code: str) -> list[dict[str, Any]]:
    """Unregistered-party supplies grouped by place of supply and rate."""
    groups: dict[tuple[str, bool, Decimal], _TaxSums] = {}
    for invoice in invoices:
        if invoice.is_registered:
            continue
        key = (place_of_supply(invoice, home_state_code), invoice.is_intra_state)
        for line in invoice.lines:
            groups.setdefault((*key, line.gst_rate), _TaxSums()).add(line)

    return [
        {
            "sply_ty": "INTRA" if intra else "INTER",
            "pos": pos,
            "typ": "OE",
            "rt": _rt(rate),
            **sums.amounts(),
        }
        for (pos, intra, rate), sums in groups.items()
    ]


def build_hsn(invoices: Sequence[ReturnDocument], default_uqc: str) -> dict[str, Any]:
    """Classification summary of every invoice line by HSN code and rate."""
    groups: dict[tuple[str, Decimal], tuple[str, _TaxSums]] = {}
    for invoice in invoices:
        for line in invoice.lines:
            key = (line.hsn_code or "N/A", line.gst_rate)
            if key not in groups:
                groups[key] = (line.uqc or default_uqc, _TaxSums())
            groups[key][1].add(line)

    return {
        "data": [
            {
                "num": index,
                "hsn_sc": hsn,
                "uqc": uqc,
                "qty": round_money(sums.qty),
                "rt": _rt(rate),
                **sums.amounts(),
            }
            for index, ((hsn, rate), (uqc, sums)) in enumerate(groups.items(), start=1)
        ]
    }


def build_cdnr(
    credit_notes: Sequence[ReturnDocument],
    debit_notes: Sequence[ReturnDocument],
    home_state_code: str,
) -> list[dict[str, Any]]:
    """Notes against registered parties: credit notes ntty C, debit notes ntty D."""
    by_gstin: dict[str, list[dict[str, Any]]] = {}
    for note_type, notes in (("C", credit_notes), ("D", debit_notes)):
        for note in notes:
            if not note.is_registered:
                continue
            by_gstin.setdefault(note.party_gstin, []).append(
                {
                    "ntty": note_type,
                    "nt_num": note.number,
                    "nt_dt": format_return_date(note.doc_date),
                    "val": round_money(note.total_amount),
                    "pos": place_of_supply(note, home_state_code),
                    "rchrg": "N",
                    "inv_typ": "R",
                    "itms": _rate_items(note.lines),
                }
            )
    return [{"ctin": gstin, "nt": notes} for gstin, notes in by_gstin.items()]


@traced_engine("gstr1", "1.0", fingerprint_fields=("gstin", "fp"))
def build_gstr1(
    gstin: str,
    fp: str,
    invoices: Sequence[ReturnDocument],
    credit_notes: Sequence[ReturnDocument],
    debit_notes: Sequence[ReturnDocument],
    home_state_code: str,
    default_uqc: str = "NOS",
) -> dict[str, Any]:
    return {
        "gstin": gstin,
        "fp": fp,
        "b2b": build_b2b(invoices, home_state_code),
        "b2cs": build_b2cs(invoices, home_state_code),
        "hsn": build_hsn(invoices, default_uqc),
        "cdnr": build_cdnr(credit_notes, debit_notes, home_state_code),
    }


def _sum_lines(documents: Iterable[ReturnDocument]) -> _TaxSums:
    sums = _TaxSums()
    for document in documents:
        for line in document.lines:
            sums.add(line)
    return sums


@traced_engine("gstr3b", "1.0")
def build_gstr3b(
    invoices: Sequence[ReturnDocument],
    credit_notes: Sequence[ReturnDocument],
    purchases: Sequence[ReturnDocument],
    debit_notes: Sequence[ReturnDocument] = (),
) -> dict[str, Any]:
    """
    GSTR-3B summary.

    Input tax credit is purchase tax less tax reversed by debit notes.
    Net payable per head = max(0, outward - credit notes - ITC).
    """
    outward = _sum_lines(invoices)
    inter = _sum_lines(inv for inv in invoices if not inv.is_intra_state)
    intra = _sum_lines(inv for inv in invoices if inv.is_intra_state)
    notes = _sum_lines(credit_notes)
    purchase = _sum_lines(purchases)
    returned = _sum_lines(debit_notes)

    itc_igst = purchase.iamt - returned.iamt
    itc_cgst = purchase.camt - returned.camt
    itc_sgst = purchase.samt - returned.samt

    net_igst = max(ZERO, outward.iamt - notes.iamt - itc_igst)
    net_cgst = max(ZERO, outward.camt - notes.camt - itc_cgst)
    net_sgst = max(ZERO, outward.samt - notes.samt - itc_sgst)

    return {
        "table3_1": {
            "taxable_value": round_money(outward.txval),
            "igst": round_money(outward.iamt),
            "cgst": round_money(outward.camt),
            "sgst": round_money(outward.samt),
        },
        "table3_2": {
            "inter_state": {
                "taxable_value": round_money(inter.txval),
                "igst": round_money(inter.iamt),
            },
            "intra_state": {
                "taxable_value": round_money(intra.txval),
                "cgst": round_money(intra.camt),
                "sgst": round_money(intra.samt),
            },
        },
        "credit_notes": {
            "taxable_value": round_money(notes.txval),
            "igst": round_money(notes.iamt),
            "cgst": round_money(notes.camt),
            "sgst": round_money(notes.samt),
        },
        "table4_itc": {
            "igst": round_money(itc_igst),
            "cgst": round_money(itc_cgst),
            "sgst": round_money(itc_sgst),
        },
        "net_tax_payable": {
            "igst": round_money(net_igst),
            "cgst": round_money(net_cgst),
            "sgst": round_money(net_sgst),
            "total": round_money(net_igst + net_cgst + net_sgst),
        },
    }


@traced_engine("tds_tcs_summary", "1.0")
def build_deduction_summary(payments: Sequence[DeductionPayment]) -> list[DeductionSummaryRow]:
    """
    Dealer-wise TDS/TCS totals over payments that carry a deduction.

    Rows are ordered by combined TDS + TCS, largest first.
    """
    groups: dict[UUID, list[DeductionPayment]] = {}
    for payment in payments:
        if payment.tds_amount > ZERO or payment.tcs_amount > ZERO:
            groups.setdefault(payment.party_id, []).append(payment)

    rows = [
        DeductionSummaryRow(
            party_id=party_id,
            party_name=items[0].party_name,
            party_gstin=items[0].party_gstin,
            payment_count=len(items),
            gross_total=round_money(sum((p.amount for p in items), ZERO)),
            tds_total=round_money(sum((p.tds_amount for p in items), ZERO)),
            tcs_total=round_money(sum((p.tcs_amount for p in items), ZERO)),
            net_total=round_money(sum((p.net_amount for p in items), ZERO)),
        )
        for party_id, items in groups.items()
    ]
    rows.sort(key=lambda r: r.tds_total + r.tcs_total, reverse=True)
    return rows


def _portal_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps_portal_json(payload: dict[str, Any], indent: int | None = 2) -> str:
    """Render a return payload as portal JSON (Decimal values as numbers)."""
    return json.dumps(payload, default=_portal_default, indent=indent)
