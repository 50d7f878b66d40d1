"""
Module: backoffice_kernel.selectors.ledger_selector
Responsibility: Read-only party ledger queries: balance as of a date,
    kind-signed outstanding, dated statements with a running balance, and
    per-party activity totals for the financial year closer.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - No stored balances.  Every figure is Σdebit - Σcredit over
      ledger_entries at query time.  Void reversal rows are included, so a
      voided document contributes zero.
    - outstanding(party) == balance for dealers and -balance for suppliers,
      so that a positive figure always means money is owed.

Failure modes:
    - PartyNotFoundError from outstanding() / party_position().
    - Zero balances when a party has no entries.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import round_money
from backoffice_kernel.domain.dtos import LedgerStatement, LedgerStatementRow, PartyBalance
from backoffice_kernel.exceptions import PartyNotFoundError
from backoffice_kernel.models.document import Document
from backoffice_kernel.models.ledger import LedgerEntry
from backoffice_kernel.models.party import Party, PartyKind
from backoffice_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def signed_outstanding(kind: PartyKind | str, balance: Decimal) -> Decimal:
    """Balance re-signed so that positive means money is owed."""
    if PartyKind(kind) == PartyKind.SUPPLIER:
        return -balance
    return balance


class LedgerSelector(BaseSelector[LedgerEntry]):
    """
    Selector for party ledger queries.

    Contract:
        Every method filters by party and, where given, by entry_date.
        Statement rows are ordered by entry_date, then creation time.

    Guarantees:
        - All figures are Decimal rounded to 2dp (never float).
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _totals(
        self,
        party_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        stmt = select(
            func.coalesce(func.sum(LedgerEntry.debit), 0),
            func.coalesce(func.sum(LedgerEntry.credit), 0),
        ).where(LedgerEntry.party_id == party_id)
        if start_date is not None:
            stmt = stmt.where(LedgerEntry.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(LedgerEntry.entry_date <= end_date)
        debit, credit = self.session.execute(stmt).one()
        return round_money(Decimal(debit)), round_money(Decimal(credit))

    def balance(self, party_id: UUID, as_of: date | None = None) -> Decimal:
        """Σdebit - Σcredit over every entry up to ``as_of`` (inclusive)."""
        debit, credit = self._totals(party_id, end_date=as_of)
        return debit - credit

    def _get_party(self, party_id: UUID) -> Party:
        party = self.session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def outstanding(self, party_id: UUID, as_of: date | None = None) -> Decimal:
        """Money owed: by the dealer, or by the company to the supplier."""
        party = self._get_party(party_id)
        return signed_outstanding(party.kind, self.balance(party_id, as_of))

    def party_position(self, party_id: UUID, as_of: date | None = None) -> PartyBalance:
        party = self._get_party(party_id)
        balance = self.balance(party_id, as_of)
        return PartyBalance(
            party_id=party.id,
            party_code=party.code,
            party_name=party.name,
            kind=party.kind_enum.value,
            balance=balance,
            outstanding=signed_outstanding(party.kind, balance),
        )

    def party_balances(
        self,
        kind: PartyKind | None = None,
        as_of: date | None = None,
        include_zero: bool = False,
    ) -> list[PartyBalance]:
        """
        Outstanding report: one row per party, ordered by party code.

        Parties with a zero balance are omitted unless ``include_zero``.
        """
        totals = (
            select(
                LedgerEntry.party_id.label("party_id"),
                func.sum(LedgerEntry.debit).label("debit"),
                func.sum(LedgerEntry.credit).label("credit"),
            )
            .group_by(LedgerEntry.party_id)
        )
        if as_of is not None:
            totals = totals.where(LedgerEntry.entry_date <= as_of)
        totals = totals.subquery()

        stmt = (
            select(Party, totals.c.debit, totals.c.credit)
            .outerjoin(totals, totals.c.party_id == Party.id)
            .order_by(Party.code)
        )
        if kind is not None:
            stmt = stmt.where(Party.kind == PartyKind(kind).value)

        rows: list[PartyBalance] = []
        for party, debit, credit in self.session.execute(stmt).all():
            balance = round_money(Decimal(debit or 0)) - round_money(Decimal(credit or 0))
            if balance == ZERO and not include_zero:
                continue
            rows.append(
                PartyBalance(
                    party_id=party.id,
                    party_code=party.code,
                    party_name=party.name,
                    kind=party.kind_enum.value,
                    balance=balance,
                    outstanding=signed_outstanding(party.kind, balance),
                )
            )
        return rows

    def activity_by_party(
        self, start_date: date, end_date: date
    ) -> list[tuple[UUID, Decimal, Decimal]]:
        """(party_id, Σdebit, Σcredit) for parties with entries in the range."""
        stmt = (
            select(
                LedgerEntry.party_id,
                func.sum(LedgerEntry.debit),
                func.sum(LedgerEntry.credit),
            )
            .where(
                LedgerEntry.entry_date >= start_date,
                LedgerEntry.entry_date <= end_date,
            )
            .group_by(LedgerEntry.party_id)
            .order_by(LedgerEntry.party_id)
        )
        return [
            (party_id, round_money(Decimal(debit)), round_money(Decimal(credit)))
            for party_id, debit, credit in self.session.execute(stmt).all()
        ]

    def statement(self, party_id: UUID, start_date: date, end_date: date) -> LedgerStatement:
        """
        Ledger rows between two dates with the balance after each row.

        The opening balance is everything dated before ``start_date``.
        """
        self._get_party(party_id)
        opening_debit, opening_credit = self._opening(party_id, start_date)
        opening = opening_debit - opening_credit

        entries = self.session.execute(
            select(LedgerEntry, Document.number)
            .outerjoin(Document, Document.id == LedgerEntry.document_id)
            .where(
                LedgerEntry.party_id == party_id,
                LedgerEntry.entry_date >= start_date,
                LedgerEntry.entry_date <= end_date,
            )
            .order_by(LedgerEntry.entry_date, LedgerEntry.created_at, LedgerEntry.id)
        ).all()

        running = opening
        rows: list[LedgerStatementRow] = []
        for entry, number in entries:
            debit = round_money(entry.debit)
            credit = round_money(entry.credit)
            running = running + debit - credit
            rows.append(
                LedgerStatementRow(
                    entry_id=entry.id,
                    entry_date=entry.entry_date,
                    entry_type=entry.entry_type,
                    description=entry.description,
                    debit=debit,
                    credit=credit,
                    running_balance=running,
                    document_id=entry.document_id,
                    document_number=number,
                    reversal_of_id=entry.reversal_of_id,
                )
            )

        return LedgerStatement(
            party_id=party_id,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening,
            rows=tuple(rows),
            closing_balance=running,
        )

    def _opening(self, party_id: UUID, start_date: date) -> tuple[Decimal, Decimal]:
        stmt = select(
            func.coalesce(func.sum(LedgerEntry.debit), 0),
            func.coalesce(func.sum(LedgerEntry.credit), 0),
        ).where(
            LedgerEntry.party_id == party_id,
            LedgerEntry.entry_date < start_date,
        )
        debit, credit = self.session.execute(stmt).one()
        return round_money(Decimal(debit)), round_money(Decimal(credit))
