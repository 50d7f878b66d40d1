"""
Back office data transfer objects (``backoffice_kernel.domain.dtos``).

Responsibility
--------------
Frozen dataclass value objects crossing the kernel boundary: inbound line
requests for the document factory and read models returned by selectors.

Architecture position
---------------------
**Kernel domain layer** -- pure data.  ZERO I/O.  No imports from ``db/``,
``services/`` or ``selectors/``.

Invariants enforced
-------------------
* All DTOs are ``frozen=True``.
* All monetary and quantity fields are ``Decimal`` -- NEVER ``float``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID


# ---------------------------------------------------------------------------
# Inbound requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineInput:
    """One line of a sales invoice or order.

    batch_id is required for invoices (stock leaves that batch) and optional
    for orders.  gst_rate defaults to the product's rate.
    """
    product_id: UUID
    qty: Decimal
    rate: Decimal
    batch_id: UUID | None = None
    gst_rate: Decimal | None = None


@dataclass(frozen=True)
class PurchaseLineInput:
    """One line of a purchase invoice or purchase order.

    Either names an existing batch (batch_id) or describes a new one
    (batch_no, mfg_date, exp_date) that the purchase creates.
    """
    product_id: UUID
    qty: Decimal
    rate: Decimal
    batch_id: UUID | None = None
    batch_no: str | None = None
    mfg_date: date | None = None
    exp_date: date | None = None
    gst_rate: Decimal | None = None


@dataclass(frozen=True)
class ReturnLineInput:
    """One returned line of a credit or debit note."""
    source_line_id: UUID
    qty: Decimal


@dataclass(frozen=True)
class TransportDetails:
    """E-way style dispatch details printed on a sales invoice."""
    transport_mode: str | None = None
    vehicle_no: str | None = None
    dispatch_from: str | None = None
    delivery_to: str | None = None
    place_of_supply: str | None = None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerStatementRow:
    """One ledger row with the balance after it."""
    entry_id: UUID
    entry_date: date
    entry_type: str
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal
    document_id: UUID | None = None
    document_number: str | None = None
    reversal_of_id: UUID | None = None


@dataclass(frozen=True)
class LedgerStatement:
    """A party's ledger between two dates, opening with the prior balance."""
    party_id: UUID
    start_date: date
    end_date: date
    opening_balance: Decimal
    rows: tuple[LedgerStatementRow, ...]
    closing_balance: Decimal

    @property
    def total_debit(self) -> Decimal:
        return sum((r.debit for r in self.rows), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((r.credit for r in self.rows), Decimal("0"))


@dataclass(frozen=True)
class PartyBalance:
    """Ledger-derived position of one party.

    balance is Σdebit - Σcredit.  outstanding is signed so that positive
    always means money is owed: the dealer owes the company, or the company
    owes the supplier.
    """
    party_id: UUID
    party_code: str
    party_name: str
    kind: str
    balance: Decimal
    outstanding: Decimal


@dataclass(frozen=True)
class OpenBill:
    """An invoice or purchase invoice with something still owing."""
    document_id: UUID
    number: str
    party_id: UUID
    doc_date: date
    due_date: date
    total_amount: Decimal
    amount_paid: Decimal

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.amount_paid


@dataclass(frozen=True)
class UnappliedCredit:
    """A payment, advance or credit note with balance not yet applied."""
    document_id: UUID
    number: str
    kind: str
    party_id: UUID
    doc_date: date
    balance_amount: Decimal
