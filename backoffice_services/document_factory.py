"""
backoffice_services.document_factory -- creation of every document kind.

Responsibility:
    Validates a document request, allocates its number, prices its lines
    through the GST engine, writes the document with its lines, moves stock
    through the inventory ledger, posts the party ledger and hands
    settlement documents to the allocator.  One method per document kind.

Architecture position:
    Services -- orchestration over backoffice_engines (pricing, FIFO) and
    the kernel (sequence, inventory, ledger, financial years).  Wrapped by
    the BackOffice facade, which adds the savepoint and the audit record.

Invariants enforced:
    - Every validation runs before the first write, and every write happens
      inside the caller's transaction: a failing stock debit on line 3
      leaves no document, no number, no ledger row and no stock movement
      once the caller's savepoint rolls back.
    - Header totals are the exact sum of the rounded line figures.
    - One ledger row per posting document: invoices and supplier payments
      debit, purchase invoices, receipts, advances and credit notes credit,
      debit notes debit.  Orders post nothing.
    - A credit or debit note never returns more of a line than was sold
      (or bought) less what non-void notes already returned.

Failure modes:
    - PartyNotFoundError, PartyInactiveError, WrongPartyKindError.
    - ProductNotFoundError, BatchNotFoundError, ValidationError.
    - InvalidQuantityError, InvalidAmountError.
    - InsufficientStockError from the inventory ledger.
    - ReturnQuantityExceededError for notes.
    - ClosedFinancialYearError when the document date is in a closed year.
    - SequenceCollisionError when a generated number is already taken.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_config.schema import CompanySettings
from backoffice_engines.gst import LineAmounts, is_intra_state, price_line, sum_lines
from backoffice_kernel.db.types import round_money, to_decimal
from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.domain.dtos import (
    LineInput,
    PurchaseLineInput,
    ReturnLineInput,
    TransportDetails,
)
from backoffice_kernel.exceptions import (
    BatchNotFoundError,
    InvalidAmountError,
    InvalidQuantityError,
    PartyInactiveError,
    PartyNotFoundError,
    ProductNotFoundError,
    ReturnQuantityExceededError,
    SequenceCollisionError,
    ValidationError,
    WrongPartyKindError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.document import (
    INITIAL_STATUS,
    ORDER_KINDS,
    AdvanceReceipt,
    CreditNote,
    DebitNote,
    Document,
    DocumentKind,
    DocumentLine,
    DocumentStatus,
    Invoice,
    Order,
    Payment,
    PaymentDirection,
    PurchaseInvoice,
    PurchaseOrder,
)
from backoffice_kernel.models.inventory import InventoryTxnType
from backoffice_kernel.models.ledger import LedgerEntryType
from backoffice_kernel.models.party import Party, PartyKind
from backoffice_kernel.models.product import Product, ProductBatch
from backoffice_kernel.selectors.document_selector import DocumentSelector
from backoffice_kernel.services.document_lock import DocumentLock
from backoffice_kernel.services.financial_year_service import FinancialYearService
from backoffice_kernel.services.inventory_ledger import InventoryLedger
from backoffice_kernel.services.ledger_service import LedgerService
from backoffice_kernel.services.sequence_service import SequenceService
from backoffice_services.advance_allocator import AdvanceAllocator

logger = get_logger("services.documents")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class _PricedLine:
    product: Product
    batch_id: UUID | None
    amounts: LineAmounts
    hsn_code: str | None = None
    source_line_id: UUID | None = None


def _status(kind: DocumentKind) -> str:
    return INITIAL_STATUS[kind].value


def _build_lines(priced: Sequence[_PricedLine]) -> list[DocumentLine]:
    return [
        DocumentLine(
            line_number=index,
            product_id=line.product.id,
            batch_id=line.batch_id,
            source_line_id=line.source_line_id,
            hsn_code=line.hsn_code if line.source_line_id else line.product.hsn_code,
            qty=line.amounts.qty,
            rate=line.amounts.rate,
            amount=line.amounts.amount,
            gst_rate=line.amounts.gst_rate,
            cgst_amount=line.amounts.cgst_amount,
            sgst_amount=line.amounts.sgst_amount,
            igst_amount=line.amounts.igst_amount,
            total_amount=line.amounts.total_amount,
        )
        for index, line in enumerate(priced, start=1)
    ]


class DocumentFactory:
    """
    Creates documents and their ledger and inventory effects.

    Contract:
        Session, settings, clock and allocator are injected; the actor is
        passed per call.  Never commits; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        settings: CompanySettings,
        clock: Clock,
        allocator: AdvanceAllocator | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._clock = clock
        self._allocator = allocator or AdvanceAllocator(session, clock)
        self._sequences = SequenceService(session)
        self._financial_years = FinancialYearService(session)
        self._documents = DocumentSelector(session)
        self._locks = DocumentLock(session)

    # ------------------------------------------------------------------
    # Shared validation
    # ------------------------------------------------------------------

    def _load_party(self, party_id: UUID, expected: PartyKind) -> Party:
        party = self._session.get(Party, party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        if party.kind_enum != expected:
            raise WrongPartyKindError(str(party_id), expected.value, party.kind_enum.value)
        if not party.is_active:
            raise PartyInactiveError(str(party_id), party.code)
        return party

    def _load_product(self, product_id: UUID) -> Product:
        product = self._session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _load_batch(self, batch_id: UUID, product: Product) -> ProductBatch:
        batch = self._session.get(ProductBatch, batch_id)
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        if batch.product_id != product.id:
            raise ValidationError(
                f"Batch {batch.batch_no} does not belong to product {product.sku}",
                field="batch_id",
            )
        return batch

    @staticmethod
    def _check_line_figures(qty, rate) -> tuple[Decimal, Decimal]:
        qty = to_decimal(qty)
        rate = to_decimal(rate)
        if qty <= ZERO:
            raise InvalidQuantityError(qty)
        if rate < ZERO:
            raise InvalidAmountError(rate, "rate", "cannot be negative")
        return qty, rate

    @staticmethod
    def _require_lines(lines: Sequence, what: str) -> None:
        if not lines:
            raise ValidationError(f"A {what} needs at least one line", field="lines")

    @staticmethod
    def _require_text(value: str | None, field: str) -> str:
        if value is None or not value.strip():
            raise ValidationError(f"{field} is required", field=field)
        return value.strip()

    def _due_date(self, party: Party, doc_date: date) -> date:
        terms = party.payment_terms_days
        if terms is None:
            terms = self._settings.default_payment_terms_days
        return doc_date + timedelta(days=terms)

    def _number(self, series: str, doc_date: date) -> str:
        fy_code = self._financial_years.code_for(doc_date)
        number = self._sequences.next_document_number(
            series,
            fy_code,
            self._settings.prefix_for(series),
            self._settings.number_padding,
        )
        taken = self._session.execute(
            select(Document.id).where(Document.number == number)
        ).first()
        if taken is not None:
            logger.error("document_number_collision", extra={"number": number})
            raise SequenceCollisionError(number)
        return number

    def _price_sales_lines(
        self,
        lines: Sequence[LineInput],
        state_code: str | None,
        require_batch: bool,
    ) -> list[_PricedLine]:
        home = self._settings.home_state_code
        priced: list[_PricedLine] = []
        for line in lines:
            qty, rate = self._check_line_figures(line.qty, line.rate)
            product = self._load_product(line.product_id)
            if line.batch_id is not None:
                self._load_batch(line.batch_id, product)
            elif require_batch:
                raise ValidationError(
                    f"A batch is required for product {product.sku}", field="batch_id"
                )
            gst_rate = line.gst_rate if line.gst_rate is not None else product.gst_rate
            priced.append(
                _PricedLine(
                    product=product,
                    batch_id=line.batch_id,
                    amounts=price_line(qty, rate, gst_rate, state_code, home),
                )
            )
        return priced

    def _after_bill(self, party: Party, actor_id: UUID) -> None:
        if self._settings.auto_apply_open_credits:
            self._allocator.apply_open_credits(party.id, party.kind_enum, actor_id)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def create_invoice(
        self,
        party_id: UUID,
        doc_date: date,
        lines: Sequence[LineInput],
        actor_id: UUID,
        transport: TransportDetails | None = None,
        order_id: UUID | None = None,
        notes: str | None = None,
    ) -> Invoice:
        """
        Issue a sales invoice to a dealer.

        Stock leaves each line's batch, the dealer's ledger is debited with
        the grand total, and any unapplied credits of the dealer are applied
        when auto-apply is configured.
        """
        party = self._load_party(party_id, PartyKind.DEALER)
        self._require_lines(lines, "sales invoice")
        self._financial_years.assert_open_for(doc_date)
        if order_id is not None:
            self._documents.get(order_id, DocumentKind.ORDER)

        transport = transport or TransportDetails()
        place_of_supply = transport.place_of_supply or party.state_code
        priced = self._price_sales_lines(lines, place_of_supply, require_batch=True)
        totals = sum_lines(line.amounts for line in priced)

        invoice = Invoice(
            number=self._number("invoice", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            due_date=self._due_date(party, doc_date),
            status=_status(DocumentKind.INVOICE),
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            amount_paid=ZERO,
            is_intra_state=is_intra_state(place_of_supply, self._settings.home_state_code),
            order_id=order_id,
            transport_mode=transport.transport_mode,
            vehicle_no=transport.vehicle_no,
            dispatch_from=transport.dispatch_from,
            delivery_to=transport.delivery_to,
            place_of_supply=place_of_supply,
            notes=notes,
            lines=_build_lines(priced),
            created_by_id=actor_id,
        )
        self._session.add(invoice)
        self._session.flush()

        inventory = InventoryLedger(self._session, actor_id)
        for line in invoice.lines:
            inventory.debit(
                line.batch_id,
                line.qty,
                InventoryTxnType.SALE,
                doc_date,
                document_id=invoice.id,
                rate=line.rate,
                notes=f"Sale {invoice.number}",
            )

        if invoice.total_amount > ZERO:
            LedgerService(self._session, actor_id).post(
                party_id=party.id,
                entry_date=doc_date,
                debit=invoice.total_amount,
                credit=ZERO,
                entry_type=LedgerEntryType.INVOICE,
                document_id=invoice.id,
                description=f"Invoice {invoice.number}",
            )

        logger.info(
            "invoice_created",
            extra={
                "document_id": str(invoice.id),
                "number": invoice.number,
                "party_id": str(party.id),
                "line_count": len(priced),
                "total_amount": str(invoice.total_amount),
                "is_intra_state": invoice.is_intra_state,
            },
        )
        self._after_bill(party, actor_id)
        return invoice

    def create_order(
        self,
        party_id: UUID,
        doc_date: date,
        lines: Sequence[LineInput],
        actor_id: UUID,
        expected_date: date | None = None,
        notes: str | None = None,
    ) -> Order:
        """Record a draft sales order.  No stock or ledger effect."""
        party = self._load_party(party_id, PartyKind.DEALER)
        self._require_lines(lines, "sales order")
        priced = self._price_sales_lines(lines, party.state_code, require_batch=False)
        totals = sum_lines(line.amounts for line in priced)

        order = Order(
            number=self._number("order", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            expected_date=expected_date,
            status=_status(DocumentKind.ORDER),
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            is_intra_state=is_intra_state(party.state_code, self._settings.home_state_code),
            notes=notes,
            lines=_build_lines(priced),
            created_by_id=actor_id,
        )
        self._session.add(order)
        self._session.flush()
        logger.info(
            "order_created",
            extra={"document_id": str(order.id), "number": order.number},
        )
        return order

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def _price_purchase_lines(
        self, lines: Sequence[PurchaseLineInput], state_code: str | None
    ) -> list[tuple[PurchaseLineInput, Product, LineAmounts]]:
        home = self._settings.home_state_code
        priced = []
        for line in lines:
            qty, rate = self._check_line_figures(line.qty, line.rate)
            product = self._load_product(line.product_id)
            if line.batch_id is not None:
                self._load_batch(line.batch_id, product)
            elif not (line.batch_no and line.batch_no.strip()):
                raise ValidationError(
                    f"Purchase line for {product.sku} needs batch_id or batch_no",
                    field="batch_no",
                )
            gst_rate = line.gst_rate if line.gst_rate is not None else product.gst_rate
            priced.append((line, product, price_line(qty, rate, gst_rate, state_code, home)))
        return priced

    def create_purchase_invoice(
        self,
        party_id: UUID,
        doc_date: date,
        supplier_invoice_number: str,
        lines: Sequence[PurchaseLineInput],
        actor_id: UUID,
        purchase_order_id: UUID | None = None,
        notes: str | None = None,
    ) -> PurchaseInvoice:
        """
        Book a supplier's bill.

        Stock enters each line's batch (created on the fly when the line
        describes a new one) and the supplier's ledger is credited.
        """
        party = self._load_party(party_id, PartyKind.SUPPLIER)
        supplier_invoice_number = self._require_text(
            supplier_invoice_number, "supplier_invoice_number"
        )
        self._require_lines(lines, "purchase invoice")
        self._financial_years.assert_open_for(doc_date)
        if purchase_order_id is not None:
            self._documents.get(purchase_order_id, DocumentKind.PURCHASE_ORDER)

        priced = self._price_purchase_lines(lines, party.state_code)
        inventory = InventoryLedger(self._session, actor_id)
        resolved: list[_PricedLine] = []
        for line, product, amounts in priced:
            if line.batch_id is not None:
                batch_id = line.batch_id
            else:
                batch_id = inventory.find_or_create_batch(
                    product.id,
                    line.batch_no.strip(),
                    amounts.rate,
                    line.mfg_date,
                    line.exp_date,
                ).id
            resolved.append(_PricedLine(product=product, batch_id=batch_id, amounts=amounts))
        totals = sum_lines(line.amounts for line in resolved)

        bill = PurchaseInvoice(
            number=self._number("purchase_invoice", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            due_date=self._due_date(party, doc_date),
            status=_status(DocumentKind.PURCHASE_INVOICE),
            supplier_invoice_number=supplier_invoice_number,
            purchase_order_id=purchase_order_id,
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            amount_paid=ZERO,
            is_intra_state=is_intra_state(party.state_code, self._settings.home_state_code),
            notes=notes,
            lines=_build_lines(resolved),
            created_by_id=actor_id,
        )
        self._session.add(bill)
        self._session.flush()

        for line in bill.lines:
            inventory.credit(
                line.batch_id,
                line.qty,
                InventoryTxnType.PURCHASE,
                doc_date,
                document_id=bill.id,
                rate=line.rate,
                notes=f"Purchase {bill.number}",
            )

        if bill.total_amount > ZERO:
            LedgerService(self._session, actor_id).post(
                party_id=party.id,
                entry_date=doc_date,
                debit=ZERO,
                credit=bill.total_amount,
                entry_type=LedgerEntryType.PURCHASE_INVOICE,
                document_id=bill.id,
                description=f"Purchase invoice {bill.number} ({supplier_invoice_number})",
            )

        logger.info(
            "purchase_invoice_created",
            extra={
                "document_id": str(bill.id),
                "number": bill.number,
                "party_id": str(party.id),
                "supplier_invoice_number": supplier_invoice_number,
                "total_amount": str(bill.total_amount),
            },
        )
        self._after_bill(party, actor_id)
        return bill

    def create_purchase_order(
        self,
        party_id: UUID,
        doc_date: date,
        lines: Sequence[LineInput],
        actor_id: UUID,
        expected_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        """Record a draft purchase order.  No stock or ledger effect."""
        party = self._load_party(party_id, PartyKind.SUPPLIER)
        self._require_lines(lines, "purchase order")
        priced = self._price_sales_lines(lines, party.state_code, require_batch=False)
        totals = sum_lines(line.amounts for line in priced)

        order = PurchaseOrder(
            number=self._number("purchase_order", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            expected_date=expected_date,
            status=_status(DocumentKind.PURCHASE_ORDER),
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            is_intra_state=is_intra_state(party.state_code, self._settings.home_state_code),
            notes=notes,
            lines=_build_lines(priced),
            created_by_id=actor_id,
        )
        self._session.add(order)
        self._session.flush()
        logger.info(
            "purchase_order_created",
            extra={"document_id": str(order.id), "number": order.number},
        )
        return order

    def transition_order(
        self, order_id: UUID, status: DocumentStatus, actor_id: UUID
    ) -> Document:
        """
        Move a sales or purchase order along its workflow.

        Raises:
            ValidationError: If the document is not an order.
            InvalidStatusTransitionError: If the move is not allowed.
        """
        order = self._locks.lock(order_id)
        if order.kind_enum not in ORDER_KINDS:
            raise ValidationError(
                f"{order.number} is a {order.kind_enum.value}, not an order",
                field="order_id",
            )
        previous = order.status_str
        order.transition_to(DocumentStatus(status))
        order.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "order_status_changed",
            extra={
                "document_id": str(order.id),
                "number": order.number,
                "from_status": previous,
                "to_status": order.status_str,
            },
        )
        return order

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def _price_returns(
        self,
        source: Document,
        lines: Sequence[ReturnLineInput],
    ) -> list[_PricedLine]:
        home = self._settings.home_state_code
        # A note repeats the tax regime of the document it reverses
        party_state = home if source.is_intra_state else None

        requested: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        priced: list[_PricedLine] = []
        for line in lines:
            qty = to_decimal(line.qty)
            if qty <= ZERO:
                raise InvalidQuantityError(qty)
            original = self._documents.get_line(line.source_line_id)
            if original.document_id != source.id:
                raise ValidationError(
                    f"Line {original.id} is not on {source.number}",
                    field="source_line_id",
                )
            available = (
                original.qty
                - self._documents.returned_qty(original.id)
                - requested[original.id]
            )
            if qty > available:
                logger.warning(
                    "return_quantity_exceeded",
                    extra={
                        "source_line_id": str(original.id),
                        "requested": str(qty),
                        "available": str(available),
                    },
                )
                raise ReturnQuantityExceededError(str(original.id), qty, available)
            requested[original.id] += qty

            priced.append(
                _PricedLine(
                    product=original.product,
                    batch_id=original.batch_id,
                    hsn_code=original.hsn_code,
                    source_line_id=original.id,
                    amounts=price_line(qty, original.rate, original.gst_rate, party_state, home),
                )
            )
        return priced

    def _settle_note_against(self, note: Document, source: Document, actor_id: UUID) -> None:
        outstanding = source.total_amount - source.amount_paid
        applied = min(note.balance_amount, outstanding)
        if applied > ZERO:
            self._allocator.allocate(note.id, actor_id, amount=applied, target_ids=[source.id])

    def create_credit_note(
        self,
        invoice_id: UUID,
        lines: Sequence[ReturnLineInput],
        reason: str,
        actor_id: UUID,
        doc_date: date | None = None,
    ) -> CreditNote:
        """
        Accept a sales return against an invoice.

        Returned stock goes back into the original batches, the dealer's
        ledger is credited, and the note is applied to what is still owing
        on the invoice; anything beyond that stays as unapplied credit.
        """
        reason = self._require_text(reason, "reason")
        self._require_lines(lines, "credit note")
        invoice = self._locks.lock(invoice_id, DocumentKind.INVOICE)
        if invoice.is_void:
            raise ValidationError(
                f"Cannot return goods against void invoice {invoice.number}",
                field="invoice_id",
            )
        doc_date = doc_date or self._clock.today()
        self._financial_years.assert_open_for(doc_date)

        priced = self._price_returns(invoice, lines)
        totals = sum_lines(line.amounts for line in priced)

        note = CreditNote(
            number=self._number("credit_note", doc_date),
            party_id=invoice.party_id,
            doc_date=doc_date,
            invoice_id=invoice.id,
            reason=reason,
            status=_status(DocumentKind.CREDIT_NOTE),
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            adjusted_amount=ZERO,
            balance_amount=totals.total_amount,
            is_intra_state=invoice.is_intra_state,
            lines=_build_lines(priced),
            created_by_id=actor_id,
        )
        self._session.add(note)
        self._session.flush()

        inventory = InventoryLedger(self._session, actor_id)
        for line in note.lines:
            if line.batch_id is not None:
                inventory.credit(
                    line.batch_id,
                    line.qty,
                    InventoryTxnType.SALE_RETURN,
                    doc_date,
                    document_id=note.id,
                    rate=line.rate,
                    notes=f"Return {note.number} against {invoice.number}",
                )

        if note.total_amount > ZERO:
            LedgerService(self._session, actor_id).post(
                party_id=note.party_id,
                entry_date=doc_date,
                debit=ZERO,
                credit=note.total_amount,
                entry_type=LedgerEntryType.CREDIT_NOTE,
                document_id=note.id,
                description=f"Credit note {note.number} against {invoice.number}",
            )
        note.refresh_settlement_status()

        logger.info(
            "credit_note_created",
            extra={
                "document_id": str(note.id),
                "number": note.number,
                "invoice_number": invoice.number,
                "total_amount": str(note.total_amount),
            },
        )
        self._settle_note_against(note, invoice, actor_id)
        return note

    def create_debit_note(
        self,
        purchase_invoice_id: UUID,
        lines: Sequence[ReturnLineInput],
        reason: str,
        actor_id: UUID,
        doc_date: date | None = None,
    ) -> DebitNote:
        """Return goods to a supplier against a purchase invoice."""
        reason = self._require_text(reason, "reason")
        self._require_lines(lines, "debit note")
        bill = self._locks.lock(purchase_invoice_id, DocumentKind.PURCHASE_INVOICE)
        if bill.is_void:
            raise ValidationError(
                f"Cannot return goods against void purchase invoice {bill.number}",
                field="purchase_invoice_id",
            )
        doc_date = doc_date or self._clock.today()
        self._financial_years.assert_open_for(doc_date)

        priced = self._price_returns(bill, lines)
        totals = sum_lines(line.amounts for line in priced)

        note = DebitNote(
            number=self._number("debit_note", doc_date),
            party_id=bill.party_id,
            doc_date=doc_date,
            purchase_invoice_id=bill.id,
            reason=reason,
            status=_status(DocumentKind.DEBIT_NOTE),
            subtotal=totals.subtotal,
            cgst_total=totals.cgst_total,
            sgst_total=totals.sgst_total,
            igst_total=totals.igst_total,
            total_amount=totals.total_amount,
            adjusted_amount=ZERO,
            balance_amount=totals.total_amount,
            is_intra_state=bill.is_intra_state,
            lines=_build_lines(priced),
            created_by_id=actor_id,
        )
        self._session.add(note)
        self._session.flush()

        inventory = InventoryLedger(self._session, actor_id)
        for line in note.lines:
            if line.batch_id is not None:
                inventory.debit(
                    line.batch_id,
                    line.qty,
                    InventoryTxnType.PURCHASE_RETURN,
                    doc_date,
                    document_id=note.id,
                    rate=line.rate,
                    notes=f"Return {note.number} against {bill.number}",
                )

        if note.total_amount > ZERO:
            LedgerService(self._session, actor_id).post(
                party_id=note.party_id,
                entry_date=doc_date,
                debit=note.total_amount,
                credit=ZERO,
                entry_type=LedgerEntryType.DEBIT_NOTE,
                document_id=note.id,
                description=f"Debit note {note.number} against {bill.number}",
            )
        note.refresh_settlement_status()

        logger.info(
            "debit_note_created",
            extra={
                "document_id": str(note.id),
                "number": note.number,
                "purchase_invoice_number": bill.number,
                "total_amount": str(note.total_amount),
            },
        )
        self._settle_note_against(note, bill, actor_id)
        return note

    # ------------------------------------------------------------------
    # Money
    # ------------------------------------------------------------------

    @staticmethod
    def _check_money(amount, field: str) -> Decimal:
        amount = round_money(to_decimal(amount))
        if amount <= ZERO:
            raise InvalidAmountError(amount, field, "must be positive")
        return amount

    @staticmethod
    def _check_rate(rate, field: str) -> Decimal:
        rate = to_decimal(rate)
        if rate < ZERO or rate > HUNDRED:
            raise InvalidAmountError(rate, field, "must be between 0 and 100")
        return rate

    def _payment(
        self,
        party_kind: PartyKind,
        party_id: UUID,
        doc_date: date,
        amount: Decimal,
        payment_mode: str,
        actor_id: UUID,
        reference_number: str | None,
        tds_rate: Decimal,
        tcs_rate: Decimal,
        notes: str | None,
    ) -> Payment:
        party = self._load_party(party_id, party_kind)
        gross = self._check_money(amount, "amount")
        payment_mode = self._require_text(payment_mode, "payment_mode")
        tds_rate = self._check_rate(tds_rate, "tds_rate")
        tcs_rate = self._check_rate(tcs_rate, "tcs_rate")
        self._financial_years.assert_open_for(doc_date)

        tds_amount = round_money(gross * tds_rate / HUNDRED)
        tcs_amount = round_money(gross * tcs_rate / HUNDRED)
        received = party_kind == PartyKind.DEALER

        payment = Payment(
            number=self._number("payment" if received else "supplier_payment", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            status=_status(DocumentKind.PAYMENT),
            direction=(PaymentDirection.RECEIVED if received else PaymentDirection.MADE).value,
            payment_mode=payment_mode,
            reference_number=reference_number,
            total_amount=gross,
            adjusted_amount=ZERO,
            balance_amount=gross,
            tds_rate=tds_rate,
            tds_amount=tds_amount,
            tcs_rate=tcs_rate,
            tcs_amount=tcs_amount,
            net_amount=gross - tds_amount + tcs_amount,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(payment)
        self._session.flush()

        LedgerService(self._session, actor_id).post(
            party_id=party.id,
            entry_date=doc_date,
            debit=ZERO if received else gross,
            credit=gross if received else ZERO,
            entry_type=(
                LedgerEntryType.PAYMENT_RECEIVED if received else LedgerEntryType.PAYMENT_MADE
            ),
            document_id=payment.id,
            description=f"Payment {payment.number} ({payment_mode})",
        )

        logger.info(
            "payment_recorded",
            extra={
                "document_id": str(payment.id),
                "number": payment.number,
                "party_id": str(party.id),
                "direction": payment.direction,
                "amount": str(gross),
                "tds_amount": str(tds_amount),
                "tcs_amount": str(tcs_amount),
                "net_amount": str(payment.net_amount),
            },
        )
        self._allocator.allocate(payment.id, actor_id)
        return payment

    def record_payment(
        self,
        party_id: UUID,
        doc_date: date,
        amount: Decimal,
        payment_mode: str,
        actor_id: UUID,
        reference_number: str | None = None,
        tds_rate: Decimal = ZERO,
        tcs_rate: Decimal = ZERO,
        notes: str | None = None,
    ) -> Payment:
        """
        Receive money from a dealer and apply it to open invoices, oldest
        first.

        The ledger is credited with the gross amount; TDS withheld by the
        dealer and TCS collected on top only change net_amount.
        """
        return self._payment(
            PartyKind.DEALER, party_id, doc_date, amount, payment_mode, actor_id,
            reference_number, tds_rate, tcs_rate, notes,
        )

    def record_supplier_payment(
        self,
        party_id: UUID,
        doc_date: date,
        amount: Decimal,
        payment_mode: str,
        actor_id: UUID,
        reference_number: str | None = None,
        tds_rate: Decimal = ZERO,
        tcs_rate: Decimal = ZERO,
        notes: str | None = None,
    ) -> Payment:
        """Pay a supplier and apply it to open purchase invoices, oldest first."""
        return self._payment(
            PartyKind.SUPPLIER, party_id, doc_date, amount, payment_mode, actor_id,
            reference_number, tds_rate, tcs_rate, notes,
        )

    def create_advance_receipt(
        self,
        party_id: UUID,
        doc_date: date,
        amount: Decimal,
        payment_mode: str,
        actor_id: UUID,
        reference_number: str | None = None,
        notes: str | None = None,
    ) -> AdvanceReceipt:
        party = self._load_party(party_id, PartyKind.DEALER)
        gross = self._check_money(amount, "amount")
        payment_mode = self._require_text(payment_mode, "payment_mode")
        self._financial_years.assert_open_for(doc_date)

        advance = AdvanceReceipt(
            number=self._number("advance_receipt", doc_date),
            party_id=party.id,
            doc_date=doc_date,
            status=_status(DocumentKind.ADVANCE_RECEIPT),
            payment_mode=payment_mode,
            reference_number=reference_number,
            total_amount=gross,
            adjusted_amount=ZERO,
            balance_amount=gross,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(advance)
        self._session.flush()

        LedgerService(self._session, actor_id).post(
            party_id=party.id,
            entry_date=doc_date,
            debit=ZERO,
            credit=gross,
            entry_type=LedgerEntryType.ADVANCE_RECEIPT,
            document_id=advance.id,
            description=f"Advance {advance.number} ({payment_mode})",
        )

        logger.info(
            "advance_receipt_created",
            extra={
                "document_id": str(advance.id),
                "number": advance.number,
                "party_id": str(party.id),
                "amount": str(gross),
            },
        )
        self._allocator.allocate(advance.id, actor_id)
        return advance
