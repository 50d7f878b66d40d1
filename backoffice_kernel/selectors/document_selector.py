"""
Module: backoffice_kernel.selectors.document_selector
Responsibility: Read-only document queries: lookup by id, open bills in
    settlement order, unapplied credits, returned quantities against a
    source line, dependent notes and allocations.
Architecture position: Kernel > Selectors.  May import from models/,
    domain/ and selectors/base.py.  MUST NOT import from services/.

Invariants enforced:
    - Settlement order is doc_date ascending, then creation time, then
      document number.  Every caller that walks bills or credits in order
      uses settlement_order() so the tie-break is the same everywhere.
    - Void documents are never open and never hold unapplied credit.
    - Returned quantity counts only lines of non-void notes.

Failure modes:
    - DocumentNotFoundError from get() / get_line().
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from backoffice_kernel.domain.dtos import OpenBill, UnappliedCredit
from backoffice_kernel.exceptions import DocumentNotFoundError
from backoffice_kernel.models.allocation import Allocation
from backoffice_kernel.models.document import (
    AdvanceReceipt,
    CreditNote,
    DebitNote,
    Document,
    DocumentKind,
    DocumentLine,
    DocumentStatus,
    Invoice,
    MODEL_BY_KIND,
    Payment,
    PaymentDirection,
    PurchaseInvoice,
)
from backoffice_kernel.models.party import PartyKind
from backoffice_kernel.selectors.base import BaseSelector

_VOID = DocumentStatus.VOID.value


def settlement_order(model: type[Document]) -> tuple:
    """ORDER BY clause for FIFO settlement."""
    return (model.doc_date, model.created_at, model.number)


def bill_model_for(party_kind: PartyKind | str) -> type[Invoice] | type[PurchaseInvoice]:
    """Dealers settle sales invoices; suppliers settle purchase invoices."""
    if PartyKind(party_kind) == PartyKind.DEALER:
        return Invoice
    return PurchaseInvoice


def bill_kind_for(party_kind: PartyKind | str) -> DocumentKind:
    if PartyKind(party_kind) == PartyKind.DEALER:
        return DocumentKind.INVOICE
    return DocumentKind.PURCHASE_INVOICE


class DocumentSelector(BaseSelector[Document]):
    """Selector for documents, lines and allocations."""

    def __init__(self, session: Session):
        super().__init__(session)

    def get(self, document_id: UUID, kind: DocumentKind | None = None) -> Document:
        """
        Load a document, optionally requiring a kind.

        Raises:
            DocumentNotFoundError: If absent or of a different kind.
        """
        model = MODEL_BY_KIND[DocumentKind(kind)] if kind is not None else Document
        document = self.session.get(model, document_id)
        if document is None or (kind is not None and document.kind_enum != DocumentKind(kind)):
            raise DocumentNotFoundError(
                str(document_id), DocumentKind(kind).value if kind else None
            )
        return document

    def get_line(self, line_id: UUID) -> DocumentLine:
        line = self.session.get(DocumentLine, line_id)
        if line is None:
            raise DocumentNotFoundError(str(line_id), "document_line")
        return line

    # Settlement targets

    def _open_bills_stmt(self, model: type[Document], party_id: UUID | None):
        stmt = select(model).where(
            model.status != _VOID,
            model.amount_paid < model.total_amount,
        )
        if party_id is not None:
            stmt = stmt.where(model.party_id == party_id)
        return stmt.order_by(*settlement_order(model))

    def open_bills(self, party_id: UUID, party_kind: PartyKind | str) -> list[Document]:
        """Non-void bills of the party with something owing, oldest first."""
        model = bill_model_for(party_kind)
        return list(
            self.session.execute(self._open_bills_stmt(model, party_id)).scalars().all()
        )

    def open_bill_summaries(
        self,
        party_kind: PartyKind | str,
        party_id: UUID | None = None,
    ) -> list[OpenBill]:
        model = bill_model_for(party_kind)
        bills = self.session.execute(self._open_bills_stmt(model, party_id)).scalars().all()
        return [
            OpenBill(
                document_id=bill.id,
                number=bill.number,
                party_id=bill.party_id,
                doc_date=bill.doc_date,
                due_date=bill.due_date,
                total_amount=bill.total_amount,
                amount_paid=bill.amount_paid,
            )
            for bill in bills
        ]

    # Settlement sources

    def _credit_models(self, party_kind: PartyKind | str) -> list[tuple[type[Document], tuple]]:
        if PartyKind(party_kind) == PartyKind.DEALER:
            return [
                (Payment, (Payment.direction == PaymentDirection.RECEIVED.value,)),
                (AdvanceReceipt, ()),
                (CreditNote, ()),
            ]
        return [
            (Payment, (Payment.direction == PaymentDirection.MADE.value,)),
            (DebitNote, ()),
        ]

    def open_credits(
        self,
        party_kind: PartyKind | str,
        party_id: UUID | None = None,
    ) -> list[Document]:
        """Non-void payments, advances and notes with unapplied balance, oldest first."""
        found: list[Document] = []
        for model, extra in self._credit_models(party_kind):
            stmt = select(model).where(
                model.status != _VOID,
                model.balance_amount > 0,
                *extra,
            )
            if party_id is not None:
                stmt = stmt.where(model.party_id == party_id)
            found.extend(self.session.execute(stmt).scalars().all())
        found.sort(key=lambda d: (d.doc_date, d.created_at, d.number))
        return found

    def unapplied_credits(
        self,
        party_kind: PartyKind | str,
        party_id: UUID | None = None,
    ) -> list[UnappliedCredit]:
        return [
            UnappliedCredit(
                document_id=doc.id,
                number=doc.number,
                kind=doc.kind_enum.value,
                party_id=doc.party_id,
                doc_date=doc.doc_date,
                balance_amount=doc.balance_amount,
            )
            for doc in self.open_credits(party_kind, party_id)
        ]

    # Returns

    def returned_qty(self, source_line_id: UUID) -> Decimal:
        """Quantity already returned against a line by non-void notes."""
        total = self.session.execute(
            select(func.coalesce(func.sum(DocumentLine.qty), 0))
            .join(Document, Document.id == DocumentLine.document_id)
            .where(
                DocumentLine.source_line_id == source_line_id,
                Document.status != _VOID,
            )
        ).scalar_one()
        return Decimal(total)

    def live_notes_against(self, document: Document) -> list[Document]:
        """Non-void credit notes of an invoice, or debit notes of a purchase invoice."""
        if document.kind_enum == DocumentKind.INVOICE:
            stmt = select(CreditNote).where(CreditNote.invoice_id == document.id)
            model = CreditNote
        elif document.kind_enum == DocumentKind.PURCHASE_INVOICE:
            stmt = select(DebitNote).where(DebitNote.purchase_invoice_id == document.id)
            model = DebitNote
        else:
            return []
        stmt = stmt.where(model.status != _VOID).order_by(model.number)
        return list(self.session.execute(stmt).scalars().all())

    # Allocations

    def allocations_for(self, document_id: UUID, live_only: bool = True) -> list[Allocation]:
        """Allocations where the document is the source or the target."""
        stmt = select(Allocation).where(
            or_(Allocation.source_id == document_id, Allocation.target_id == document_id)
        )
        if live_only:
            stmt = stmt.where(Allocation.released_at.is_(None))
        stmt = stmt.order_by(Allocation.allocated_at, Allocation.id)
        return list(self.session.execute(stmt).scalars().all())

    # Ranges

    def in_range(
        self,
        kind: DocumentKind,
        start_date: date,
        end_date: date,
        include_void: bool = False,
    ) -> list[Document]:
        model = MODEL_BY_KIND[DocumentKind(kind)]
        stmt = select(model).where(
            model.doc_date >= start_date,
            model.doc_date <= end_date,
        )
        if not include_void:
            stmt = stmt.where(model.status != _VOID)
        stmt = stmt.order_by(model.doc_date, model.number)
        return list(self.session.execute(stmt).scalars().all())
