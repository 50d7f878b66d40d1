"""
Module: backoffice_kernel.models.document
Responsibility: ORM persistence for every monetary and commercial document
    (orders, invoices, notes, payments, advances) as a tagged variant: one
    shared ``documents`` header table plus one payload table per kind
    (joined-table inheritance on ``kind``), and the ``document_lines`` they
    carry.
Architecture position: Kernel > Models.  May import from db/base.py and
    the kernel exceptions only.

Invariants enforced:
    - number is unique across all kinds (uq_document_number).  A second
      document can never reuse an allocated number.
    - Status changes follow VALID_TRANSITIONS for the document's kind.
      ``void`` and ``cancelled`` are terminal.
    - Settlement targets (invoices, purchase invoices) keep
      0 <= amount_paid <= total_amount.
    - Settlement sources (payments, advances, credit/debit notes) keep
      adjusted_amount + balance_amount == total_amount.

Failure modes:
    - IntegrityError on duplicate number.
    - InvalidStatusTransitionError from transition_to().

Audit relevance:
    void_reason, voided_at and voided_by_id record the one-time void.  The
    row itself is never deleted; compensation happens in the ledgers.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import Base, TrackedBase, UUIDString
from backoffice_kernel.exceptions import InvalidStatusTransitionError


class DocumentKind(str, Enum):
    """Discriminator for the documents tagged variant."""

    ORDER = "order"
    PURCHASE_ORDER = "purchase_order"
    INVOICE = "invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    PAYMENT = "payment"
    ADVANCE_RECEIPT = "advance_receipt"


class DocumentStatus(str, Enum):
    """Union of every status any document kind can hold."""

    # Orders / purchase orders
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    RECEIVED = "received"
    CANCELLED = "cancelled"

    # Invoices / purchase invoices
    ISSUED = "issued"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"

    # Payments / advances / credit and debit notes
    OPEN = "open"
    ADJUSTED = "adjusted"

    VOID = "void"


_S = DocumentStatus

_ORDER_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    _S.DRAFT: frozenset({_S.CONFIRMED, _S.CANCELLED}),
    _S.CONFIRMED: frozenset({_S.DISPATCHED, _S.CANCELLED}),
    _S.DISPATCHED: frozenset({_S.DELIVERED}),
    _S.DELIVERED: frozenset(),
    _S.CANCELLED: frozenset(),
}

_PURCHASE_ORDER_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    _S.DRAFT: frozenset({_S.CONFIRMED, _S.CANCELLED}),
    _S.CONFIRMED: frozenset({_S.RECEIVED, _S.CANCELLED}),
    _S.RECEIVED: frozenset(),
    _S.CANCELLED: frozenset(),
}

# Releasing an allocation may move paid/partially_paid back down
_BILL_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    _S.ISSUED: frozenset({_S.PARTIALLY_PAID, _S.PAID, _S.VOID}),
    _S.PARTIALLY_PAID: frozenset({_S.ISSUED, _S.PAID, _S.VOID}),
    _S.PAID: frozenset({_S.ISSUED, _S.PARTIALLY_PAID, _S.VOID}),
    _S.VOID: frozenset(),
}

_SETTLEMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    _S.OPEN: frozenset({_S.ADJUSTED, _S.VOID}),
    _S.ADJUSTED: frozenset({_S.OPEN, _S.VOID}),
    _S.VOID: frozenset(),
}

VALID_TRANSITIONS: dict[DocumentKind, dict[DocumentStatus, frozenset[DocumentStatus]]] = {
    DocumentKind.ORDER: _ORDER_TRANSITIONS,
    DocumentKind.PURCHASE_ORDER: _PURCHASE_ORDER_TRANSITIONS,
    DocumentKind.INVOICE: _BILL_TRANSITIONS,
    DocumentKind.PURCHASE_INVOICE: _BILL_TRANSITIONS,
    DocumentKind.CREDIT_NOTE: _SETTLEMENT_TRANSITIONS,
    DocumentKind.DEBIT_NOTE: _SETTLEMENT_TRANSITIONS,
    DocumentKind.PAYMENT: _SETTLEMENT_TRANSITIONS,
    DocumentKind.ADVANCE_RECEIPT: _SETTLEMENT_TRANSITIONS,
}

INITIAL_STATUS: dict[DocumentKind, DocumentStatus] = {
    DocumentKind.ORDER: _S.DRAFT,
    DocumentKind.PURCHASE_ORDER: _S.DRAFT,
    DocumentKind.INVOICE: _S.ISSUED,
    DocumentKind.PURCHASE_INVOICE: _S.ISSUED,
    DocumentKind.CREDIT_NOTE: _S.OPEN,
    DocumentKind.DEBIT_NOTE: _S.OPEN,
    DocumentKind.PAYMENT: _S.OPEN,
    DocumentKind.ADVANCE_RECEIPT: _S.OPEN,
}

# Kinds that receive settlement (allocation targets)
BILL_KINDS = frozenset({DocumentKind.INVOICE, DocumentKind.PURCHASE_INVOICE})

# Kinds whose value can be applied against bills (allocation sources)
SETTLEMENT_KINDS = frozenset({
    DocumentKind.PAYMENT,
    DocumentKind.ADVANCE_RECEIPT,
    DocumentKind.CREDIT_NOTE,
    DocumentKind.DEBIT_NOTE,
})

# Kinds with no ledger or inventory effect; ended by cancellation, not void
ORDER_KINDS = frozenset({DocumentKind.ORDER, DocumentKind.PURCHASE_ORDER})


def bill_status_for(total: Decimal, paid: Decimal) -> DocumentStatus:
    """Derive an invoice's payment status from what has been applied to it."""
    if paid <= 0:
        return DocumentStatus.ISSUED
    if paid >= total:
        return DocumentStatus.PAID
    return DocumentStatus.PARTIALLY_PAID


def settlement_status_for(balance: Decimal) -> DocumentStatus:
    """Derive a payment/advance/note status from its unapplied balance."""
    return DocumentStatus.ADJUSTED if balance <= 0 else DocumentStatus.OPEN


class Document(TrackedBase):
    """
    Shared header for every document kind.

    Contract:
        Money columns hold the document totals rounded to 2dp.  For
        payments and advances, total_amount is the gross amount received or
        paid and the tax columns are zero.

    Guarantees:
        - number is unique and assigned by SequenceService.
        - kind never changes after insert.

    Non-goals:
        - Does not post to any ledger; the document factory and reversal
          engine do that.
    """

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("number", name="uq_document_number"),
        Index("idx_document_party_date", "party_id", "doc_date"),
        Index("idx_document_kind_status", "kind", "status"),
        Index("idx_document_date", "doc_date"),
    )

    kind: Mapped[str] = mapped_column(String(30), nullable=False)

    number: Mapped[str] = mapped_column(String(50), nullable=False)

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("parties.id"),
        nullable=False,
    )

    doc_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[DocumentStatus] = mapped_column(String(20), nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cgst_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    sgst_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    igst_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    is_intra_state: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    party: Mapped["Party"] = relationship(lazy="selectin")  # noqa: F821

    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="document",
        order_by="DocumentLine.line_number",
        lazy="selectin",
    )

    __mapper_args__ = {"polymorphic_on": "kind"}

    @property
    def kind_enum(self) -> DocumentKind:
        return DocumentKind(self.kind)

    @property
    def status_enum(self) -> DocumentStatus:
        """Return status as DocumentStatus (normalizes raw DB strings)."""
        if isinstance(self.status, DocumentStatus):
            return self.status
        return DocumentStatus(self.status)

    @property
    def status_str(self) -> str:
        return self.status_enum.value

    @property
    def is_void(self) -> bool:
        return self.status_enum == DocumentStatus.VOID

    @property
    def tax_total(self) -> Decimal:
        return self.cgst_total + self.sgst_total + self.igst_total

    def can_transition_to(self, target: DocumentStatus) -> bool:
        allowed = VALID_TRANSITIONS[self.kind_enum].get(self.status_enum, frozenset())
        return DocumentStatus(target) in allowed

    def transition_to(self, target: DocumentStatus) -> None:
        """Move to ``target`` if the kind's status machine allows it.

        A no-op when already in ``target``.

        Raises:
            InvalidStatusTransitionError: If the move is not allowed.
        """
        target = DocumentStatus(target)
        if self.status_enum == target:
            return
        if not self.can_transition_to(target):
            raise InvalidStatusTransitionError(
                document_id=str(self.id),
                kind=self.kind_enum.value,
                from_status=self.status_str,
                to_status=target.value,
            )
        self.status = target.value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.number}: {self.status_str}>"


class BillMixin:
    """Columns shared by documents that receive settlement."""

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.amount_paid

    def refresh_payment_status(self) -> None:
        self.transition_to(bill_status_for(self.total_amount, self.amount_paid))


class SettlementMixin:
    """Columns shared by documents whose value is applied against bills."""

    adjusted_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    balance_amount: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    def refresh_settlement_status(self) -> None:
        self.balance_amount = self.total_amount - self.adjusted_amount
        self.transition_to(settlement_status_for(self.balance_amount))


class Order(Document):
    """Sales order.  Numbered and taxed; no ledger or inventory effect."""

    __tablename__ = "orders"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.ORDER.value}


class PurchaseOrder(Document):
    """Purchase order to a supplier.  No ledger or inventory effect."""

    __tablename__ = "purchase_orders"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.PURCHASE_ORDER.value}


class Invoice(BillMixin, Document):
    """Sales invoice to a dealer.  Debits the dealer's ledger."""

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint("amount_paid >= 0", name="ck_invoice_paid_non_negative"),
    )

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("orders.id"), nullable=True
    )

    transport_mode: Mapped[str | None] = mapped_column(String(30), nullable=True)

    vehicle_no: Mapped[str | None] = mapped_column(String(20), nullable=True)

    dispatch_from: Mapped[str | None] = mapped_column(String(255), nullable=True)

    delivery_to: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # State code of the place of supply
    place_of_supply: Mapped[str | None] = mapped_column(String(2), nullable=True)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.INVOICE.value}


class PurchaseInvoice(BillMixin, Document):
    """Supplier's bill.  Credits the supplier's ledger."""

    __tablename__ = "purchase_invoices"

    __table_args__ = (
        CheckConstraint(
            "amount_paid >= 0", name="ck_purchase_invoice_paid_non_negative"
        ),
    )

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    supplier_invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    purchase_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True
    )

    __mapper_args__ = {"polymorphic_identity": DocumentKind.PURCHASE_INVOICE.value}


class CreditNote(SettlementMixin, Document):
    """Sales return against an invoice.  Credits the dealer's ledger."""

    __tablename__ = "credit_notes"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False
    )

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.CREDIT_NOTE.value}


class DebitNote(SettlementMixin, Document):
    """Purchase return against a supplier bill.  Debits the supplier's ledger."""

    __tablename__ = "debit_notes"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    purchase_invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_invoices.id"), nullable=False
    )

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.DEBIT_NOTE.value}


class PaymentDirection(str, Enum):
    RECEIVED = "received"
    MADE = "made"


class Payment(SettlementMixin, Document):
    """
    Money received from a dealer or paid to a supplier.

    total_amount is the gross amount.  net_amount = gross - tds + tcs is the
    amount that actually moved through the bank.
    """

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    direction: Mapped[PaymentDirection] = mapped_column(String(10), nullable=False)

    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    tds_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tds_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tcs_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    tcs_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    net_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    __mapper_args__ = {"polymorphic_identity": DocumentKind.PAYMENT.value}


class AdvanceReceipt(SettlementMixin, Document):
    """Money received from a dealer ahead of invoicing."""

    __tablename__ = "advance_receipts"

    id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), primary_key=True
    )

    payment_mode: Mapped[str] = mapped_column(String(20), nullable=False)

    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __mapper_args__ = {"polymorphic_identity": DocumentKind.ADVANCE_RECEIPT.value}


class DocumentLine(Base):
    """
    One product line on a document.

    For credit and debit notes, source_line_id points at the invoice line
    being returned, and batch, rate, GST rate and HSN code are copied from
    it.
    """

    __tablename__ = "document_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_document_line_number"),
        CheckConstraint("qty > 0", name="ck_line_qty_positive"),
        Index("idx_line_document", "document_id"),
        Index("idx_line_source", "source_line_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("product_batches.id"), nullable=True
    )

    source_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("document_lines.id"), nullable=True
    )

    hsn_code: Mapped[str | None] = mapped_column(String(8), nullable=True)

    qty: Mapped[Decimal] = mapped_column(nullable=False)

    rate: Mapped[Decimal] = mapped_column(nullable=False)

    # qty * rate, rounded
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    gst_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    sgst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    igst_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # amount + all tax
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    document: Mapped[Document] = relationship(back_populates="lines")

    product: Mapped["Product"] = relationship(lazy="selectin")  # noqa: F821

    @property
    def tax_amount(self) -> Decimal:
        return self.cgst_amount + self.sgst_amount + self.igst_amount

    def __repr__(self) -> str:
        return f"<DocumentLine {self.line_number}: {self.qty} @ {self.rate}>"


MODEL_BY_KIND: dict[DocumentKind, type[Document]] = {
    DocumentKind.ORDER: Order,
    DocumentKind.PURCHASE_ORDER: PurchaseOrder,
    DocumentKind.INVOICE: Invoice,
    DocumentKind.PURCHASE_INVOICE: PurchaseInvoice,
    DocumentKind.CREDIT_NOTE: CreditNote,
    DocumentKind.DEBIT_NOTE: DebitNote,
    DocumentKind.PAYMENT: Payment,
    DocumentKind.ADVANCE_RECEIPT: AdvanceReceipt,
}
