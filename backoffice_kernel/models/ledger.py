"""
Module: backoffice_kernel.models.ledger
Responsibility: ORM persistence for the append-only party ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listeners in
      db/immutability.py).  A void is a new row with debit and credit
      swapped and reversal_of_id pointing at the original.
    - Exactly one of debit / credit is positive; the other is zero
      (ck_ledger_one_sided).
    - balance(party) = Σdebit - Σcredit over every row.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase, UUIDString


class LedgerEntryType(str, Enum):
    """What produced a ledger row."""

    INVOICE = "invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_MADE = "payment_made"
    ADVANCE_RECEIPT = "advance_receipt"
    VOID_REVERSAL = "void_reversal"


class LedgerEntry(TrackedBase):
    """
    One posting against a party.

    Contract:
        Sign convention is the same for every party: Σdebit - Σcredit.
        For a dealer a positive balance means the dealer owes the company;
        for a supplier a negative balance means the company owes the
        supplier.

    Guarantees:
        - Never modified after insert.
    """

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="ck_ledger_one_sided",
        ),
        Index("idx_ledger_party_date", "party_id", "entry_date"),
        Index("idx_ledger_document", "document_id"),
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=False
    )

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    entry_type: Mapped[LedgerEntryType] = mapped_column(String(30), nullable=False)

    debit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    credit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=True
    )

    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=True
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def net(self) -> Decimal:
        return self.debit - self.credit

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.entry_type} {self.entry_date}: "
            f"Dr {self.debit} Cr {self.credit}>"
        )
