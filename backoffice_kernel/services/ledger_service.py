"""
LedgerService -- append-only party ledger postings.

Responsibility:
    Writes ledger_entries rows: one posting per document effect and one
    compensating posting per void.  Reads (balance, outstanding, statement)
    live in LedgerSelector.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the document factory
    and the reversal engine.

Invariants enforced:
    - Each row has exactly one positive side; the other is zero.
    - Rows are never updated or deleted.  reverse() appends a row with
      debit and credit swapped and reversal_of_id set, so the sum over all
      rows equals the balance of the non-void documents.
    - No posting dated inside a closed financial year.

Failure modes:
    - InvalidAmountError: both sides zero, both positive, or a negative side.
    - ClosedFinancialYearError: posting date is inside a closed year.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import round_money, to_decimal
from backoffice_kernel.exceptions import InvalidAmountError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.ledger import LedgerEntry, LedgerEntryType
from backoffice_kernel.services.base import BaseService
from backoffice_kernel.services.financial_year_service import FinancialYearService

logger = get_logger("services.ledger")


class LedgerService(BaseService[LedgerEntry]):
    """
    Party ledger writer.

    Guarantees:
        - Every posting passes the closed-year check first.

    Non-goals:
        - Does NOT compute balances (see LedgerSelector).
        - Does NOT commit.
    """

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id
        self._financial_years = FinancialYearService(session)

    def post(
        self,
        party_id: UUID,
        entry_date: date,
        debit: Decimal,
        credit: Decimal,
        entry_type: LedgerEntryType,
        document_id: UUID | None = None,
        description: str | None = None,
        reversal_of_id: UUID | None = None,
    ) -> LedgerEntry:
        """
        Append one ledger row.

        Raises:
            InvalidAmountError: Unless exactly one side is positive and the
                other is zero.
            ClosedFinancialYearError: If entry_date is in a closed year.
        """
        debit = round_money(to_decimal(debit))
        credit = round_money(to_decimal(credit))
        if debit < 0 or credit < 0:
            raise InvalidAmountError(
                min(debit, credit), "amount", "ledger sides cannot be negative"
            )
        if (debit > 0) == (credit > 0):
            raise InvalidAmountError(
                debit if debit > 0 else credit,
                "amount",
                "exactly one of debit and credit must be positive",
            )

        self._financial_years.assert_open_for(entry_date)

        entry = LedgerEntry(
            party_id=party_id,
            entry_date=entry_date,
            entry_type=LedgerEntryType(entry_type).value,
            debit=debit,
            credit=credit,
            document_id=document_id,
            reversal_of_id=reversal_of_id,
            description=description,
            created_by_id=self._actor_id,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_posted",
            extra={
                "party_id": str(party_id),
                "entry_type": LedgerEntryType(entry_type).value,
                "debit": str(debit),
                "credit": str(credit),
                "document_id": str(document_id) if document_id else None,
            },
        )
        return entry

    def entries_for_document(self, document_id: UUID) -> list[LedgerEntry]:
        """Original (non-reversal) rows posted for a document."""
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(
                    LedgerEntry.document_id == document_id,
                    LedgerEntry.reversal_of_id.is_(None),
                )
                .order_by(LedgerEntry.created_at, LedgerEntry.id)
            ).scalars().all()
        )

    def reverse(
        self,
        entry: LedgerEntry,
        entry_date: date,
        description: str | None = None,
    ) -> LedgerEntry:
        """Append the compensating row for ``entry`` (debit and credit swapped)."""
        return self.post(
            party_id=entry.party_id,
            entry_date=entry_date,
            debit=entry.credit,
            credit=entry.debit,
            entry_type=LedgerEntryType.VOID_REVERSAL,
            document_id=entry.document_id,
            description=description,
            reversal_of_id=entry.id,
        )
