"""
backoffice_services.back_office -- the single entry point of the engine.

Responsibility:
    Exposes every back office operation (master data, documents,
    settlement, voids, financial years, reports) on one object bound to a
    SQLAlchemy session.  Each mutating method runs as one savepoint-scoped
    unit with a hash-chained audit record via ``@audited``.

Architecture position:
    Services -- outermost layer.  Wires the document factory, allocator,
    reversal engine, year closer and compliance service around one session,
    one clock and one CompanySettings.

Invariants enforced:
    - No mutation without an audit record: the record is written inside the
      same savepoint as the change and rolls back with it.
    - The facade never commits.  Callers own the outer transaction
      (``session_scope()`` or an explicit ``session.commit()``).

Usage:
    with session_scope() as session:
        office = BackOffice(session)
        invoice = office.create_invoice(
            party_id=dealer.id,
            doc_date=date(2024, 7, 1),
            lines=[LineInput(product_id=p.id, qty=Decimal("10"),
                             rate=Decimal("100"), batch_id=b.id)],
            actor_id=user_id,
        )
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_config import get_active_config
from backoffice_config.schema import CompanySettings
from backoffice_engines.aging import AgingReport
from backoffice_engines.gst_returns import DeductionSummaryRow
from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.dtos import (
    LedgerStatement,
    LineInput,
    OpenBill,
    PartyBalance,
    PurchaseLineInput,
    ReturnLineInput,
    TransportDetails,
    UnappliedCredit,
)
from backoffice_kernel.exceptions import InvalidAmountError, ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.audit_record import AuditAction
from backoffice_kernel.models.document import (
    AdvanceReceipt,
    CreditNote,
    DebitNote,
    Document,
    DocumentStatus,
    Invoice,
    Order,
    Payment,
    PurchaseInvoice,
    PurchaseOrder,
)
from backoffice_kernel.models.financial_year import FinancialYear
from backoffice_kernel.models.party import Party, PartyKind
from backoffice_kernel.models.product import Product, ProductBatch
from backoffice_kernel.selectors.document_selector import DocumentSelector
from backoffice_kernel.selectors.ledger_selector import LedgerSelector
from backoffice_kernel.services.audit_recorder import (
    AuditRecorder,
    AuditTrailEntry,
    audited,
)
from backoffice_kernel.services.financial_year_service import FinancialYearService
from backoffice_kernel.services.inventory_ledger import InventoryLedger
from backoffice_services.advance_allocator import AdvanceAllocator, AllocationResult
from backoffice_services.compliance_service import ComplianceService, PartyReconciliation
from backoffice_services.document_factory import DocumentFactory
from backoffice_services.financial_year_closer import CloseResult, FinancialYearCloser
from backoffice_services.reversal_engine import ReversalEngine

logger = get_logger("services.back_office")

ZERO = Decimal("0")


class BackOffice:
    """
    Facade over the back office services for one session.

    Contract:
        ``session`` and ``audit_recorder`` are public because ``@audited``
        reads them.  Settings default to ``get_active_config()`` and the
        clock to the system clock.
    """

    def __init__(
        self,
        session: Session,
        settings: CompanySettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_active_config()
        self.clock = clock or SystemClock()
        self.audit_recorder = AuditRecorder(session, self.clock)

        self._allocator = AdvanceAllocator(session, self.clock)
        self._factory = DocumentFactory(session, self.settings, self.clock, self._allocator)
        self._reversal = ReversalEngine(session, self.clock, self._allocator)
        self._closer = FinancialYearCloser(session, self.clock)
        self._compliance = ComplianceService(session, self.settings, self.clock)
        self._years = FinancialYearService(session)
        self._documents = DocumentSelector(session)
        self._ledger = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    @audited(AuditAction.PARTY_CREATED)
    def create_party(
        self,
        code: str,
        name: str,
        kind: PartyKind,
        actor_id: UUID,
        state_code: str | None = None,
        gst_number: str | None = None,
        payment_terms_days: int | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> Party:
        """
        Register a dealer or supplier.

        Raises:
            ValidationError: On a blank or duplicate code, a blank name, a
                state code that is not two characters, or negative terms.
        """
        if not code or not code.strip():
            raise ValidationError("Party code is required", field="code")
        if not name or not name.strip():
            raise ValidationError("Party name is required", field="name")
        if state_code is not None and len(state_code.strip()) != 2:
            raise ValidationError(
                f"State code must be two characters: {state_code!r}", field="state_code"
            )
        if payment_terms_days is not None and payment_terms_days < 0:
            raise ValidationError(
                "Payment terms cannot be negative", field="payment_terms_days"
            )
        code = code.strip()
        taken = self.session.execute(
            select(Party.id).where(Party.code == code)
        ).first()
        if taken is not None:
            raise ValidationError(f"Party code {code} already exists", field="code")

        party = Party(
            code=code,
            name=name.strip(),
            kind=PartyKind(kind).value,
            state_code=state_code.strip() if state_code else None,
            gst_number=gst_number.strip().upper() if gst_number else None,
            payment_terms_days=payment_terms_days,
            phone=phone,
            address=address,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(party)
        self.session.flush()
        logger.info(
            "party_created",
            extra={"party_id": str(party.id), "code": code, "kind": party.kind},
        )
        return party

    @audited(AuditAction.PRODUCT_CREATED)
    def create_product(
        self,
        sku: str,
        name: str,
        actor_id: UUID,
        gst_rate: Decimal = ZERO,
        hsn_code: str | None = None,
        unit: str = "PCS",
        uqc: str | None = None,
        sale_price: Decimal = ZERO,
        purchase_price: Decimal = ZERO,
    ) -> Product:
        if not sku or not sku.strip():
            raise ValidationError("SKU is required", field="sku")
        if not name or not name.strip():
            raise ValidationError("Product name is required", field="name")
        gst_rate = to_decimal(gst_rate)
        if gst_rate < ZERO or gst_rate > Decimal("100"):
            raise InvalidAmountError(gst_rate, "gst_rate", "must be between 0 and 100")
        sku = sku.strip()
        taken = self.session.execute(
            select(Product.id).where(Product.sku == sku)
        ).first()
        if taken is not None:
            raise ValidationError(f"SKU {sku} already exists", field="sku")

        product = Product(
            sku=sku,
            name=name.strip(),
            gst_rate=gst_rate,
            hsn_code=hsn_code,
            unit=unit,
            uqc=uqc,
            sale_price=to_decimal(sale_price),
            purchase_price=to_decimal(purchase_price),
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(product)
        self.session.flush()
        logger.info("product_created", extra={"product_id": str(product.id), "sku": sku})
        return product

    @audited(AuditAction.STOCK_RECEIVED)
    def receive_stock(
        self,
        product_id: UUID,
        batch_no: str,
        qty: Decimal,
        rate: Decimal,
        actor_id: UUID,
        txn_date: date | None = None,
        mfg_date: date | None = None,
        exp_date: date | None = None,
        notes: str | None = None,
    ) -> ProductBatch:
        """Manual stock-in outside any purchase invoice."""
        if not batch_no or not batch_no.strip():
            raise ValidationError("Batch number is required", field="batch_no")
        return InventoryLedger(self.session, actor_id).receive_stock(
            product_id=product_id,
            batch_no=batch_no.strip(),
            qty=qty,
            rate=rate,
            txn_date=txn_date or self.clock.today(),
            mfg_date=mfg_date,
            exp_date=exp_date,
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    @audited(AuditAction.DOCUMENT_CREATED)
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
        return self._factory.create_invoice(
            party_id, doc_date, lines, actor_id, transport, order_id, notes
        )

    @audited(AuditAction.DOCUMENT_CREATED)
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
        return self._factory.create_purchase_invoice(
            party_id, doc_date, supplier_invoice_number, lines, actor_id,
            purchase_order_id, notes,
        )

    @audited(AuditAction.DOCUMENT_CREATED)
    def create_credit_note(
        self,
        invoice_id: UUID,
        lines: Sequence[ReturnLineInput],
        reason: str,
        actor_id: UUID,
        doc_date: date | None = None,
    ) -> CreditNote:
        return self._factory.create_credit_note(invoice_id, lines, reason, actor_id, doc_date)

    @audited(AuditAction.DOCUMENT_CREATED)
    def create_debit_note(
        self,
        purchase_invoice_id: UUID,
        lines: Sequence[ReturnLineInput],
        reason: str,
        actor_id: UUID,
        doc_date: date | None = None,
    ) -> DebitNote:
        return self._factory.create_debit_note(
            purchase_invoice_id, lines, reason, actor_id, doc_date
        )

    @audited(AuditAction.DOCUMENT_CREATED)
    def create_order(
        self,
        party_id: UUID,
        doc_date: date,
        lines: Sequence[LineInput],
        actor_id: UUID,
        expected_date: date | None = None,
        notes: str | None = None,
    ) -> Order:
        return self._factory.create_order(
            party_id, doc_date, lines, actor_id, expected_date, notes
        )

    @audited(AuditAction.DOCUMENT_CREATED)
    def create_purchase_order(
        self,
        party_id: UUID,
        doc_date: date,
        lines: Sequence[LineInput],
        actor_id: UUID,
        expected_date: date | None = None,
        notes: str | None = None,
    ) -> PurchaseOrder:
        return self._factory.create_purchase_order(
            party_id, doc_date, lines, actor_id, expected_date, notes
        )

    @audited(
        AuditAction.STATUS_CHANGED,
        subject_arg="order_id",
        subject_model=Document,
        payload_args=("status",),
    )
    def transition_order(
        self, order_id: UUID, status: DocumentStatus, actor_id: UUID
    ) -> Document:
        return self._factory.transition_order(order_id, status, actor_id)

    @audited(AuditAction.DOCUMENT_CREATED)
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
        return self._factory.record_payment(
            party_id, doc_date, amount, payment_mode, actor_id,
            reference_number, tds_rate, tcs_rate, notes,
        )

    @audited(AuditAction.DOCUMENT_CREATED)
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
        return self._factory.record_supplier_payment(
            party_id, doc_date, amount, payment_mode, actor_id,
            reference_number, tds_rate, tcs_rate, notes,
        )

    @audited(AuditAction.DOCUMENT_CREATED)
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
        return self._factory.create_advance_receipt(
            party_id, doc_date, amount, payment_mode, actor_id, reference_number, notes
        )

    # ------------------------------------------------------------------
    # Settlement and reversal
    # ------------------------------------------------------------------

    @audited(AuditAction.ALLOCATION_APPLIED)
    def allocate(
        self,
        source_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        target_ids: Sequence[UUID] | None = None,
    ) -> AllocationResult:
        return self._allocator.allocate(source_id, actor_id, amount, target_ids)

    @audited(
        AuditAction.DOCUMENT_VOIDED,
        subject_arg="document_id",
        subject_model=Document,
        payload_args=("reason",),
    )
    def void(self, document_id: UUID, reason: str, actor_id: UUID) -> Document:
        return self._reversal.void(document_id, reason, actor_id)

    # ------------------------------------------------------------------
    # Financial years
    # ------------------------------------------------------------------

    @audited(AuditAction.FINANCIAL_YEAR_CREATED)
    def create_financial_year(
        self,
        code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        is_active: bool = False,
    ) -> FinancialYear:
        return self._years.create(code, start_date, end_date, actor_id, is_active)

    @audited(
        AuditAction.FINANCIAL_YEAR_ACTIVATED,
        subject_arg="fy_id",
        subject_model=FinancialYear,
    )
    def set_active_financial_year(self, fy_id: UUID, actor_id: UUID) -> FinancialYear:
        return self._years.set_active(fy_id, actor_id)

    @audited(
        AuditAction.FINANCIAL_YEAR_CLOSED,
        subject_arg="fy_id",
        subject_model=FinancialYear,
        payload_args=("notes",),
    )
    def close_financial_year(
        self, fy_id: UUID, actor_id: UUID, notes: str | None = None
    ) -> CloseResult:
        return self._closer.close(fy_id, actor_id, notes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_document(self, document_id: UUID) -> Document:
        return self._documents.get(document_id)

    def balance(self, party_id: UUID, as_of: date | None = None) -> Decimal:
        return self._ledger.balance(party_id, as_of)

    def outstanding(self, party_id: UUID, as_of: date | None = None) -> Decimal:
        return self._ledger.outstanding(party_id, as_of)

    def statement(self, party_id: UUID, start_date: date, end_date: date) -> LedgerStatement:
        return self._ledger.statement(party_id, start_date, end_date)

    def open_bills(self, party_kind: PartyKind, party_id: UUID | None = None) -> list[OpenBill]:
        return self._documents.open_bill_summaries(party_kind, party_id)

    def unapplied_credits(
        self, party_kind: PartyKind, party_id: UUID | None = None
    ) -> list[UnappliedCredit]:
        return self._documents.unapplied_credits(party_kind, party_id)

    def outstanding_report(
        self,
        party_kind: PartyKind | None = None,
        as_of: date | None = None,
        include_zero: bool = False,
    ) -> list[PartyBalance]:
        return self._compliance.outstanding_report(party_kind, as_of, include_zero)

    def aging(
        self, party_kind: PartyKind = PartyKind.DEALER, as_of: date | None = None
    ) -> AgingReport:
        return self._compliance.aging(party_kind, as_of)

    def gstr1(self, year: int, month: int) -> dict[str, Any]:
        return self._compliance.gstr1(year, month)

    def gstr3b(self, start_date: date, end_date: date) -> dict[str, Any]:
        return self._compliance.gstr3b(start_date, end_date)

    def tds_tcs_summary(self, start_date: date, end_date: date) -> list[DeductionSummaryRow]:
        return self._compliance.tds_tcs_summary(start_date, end_date)

    def reconcile_party(self, party_id: UUID) -> PartyReconciliation:
        return self._compliance.reconcile_party(party_id)

    def opening_balances(self, fy_id: UUID):
        return self._years.opening_balances(fy_id)

    def audit_trail(self, subject: Any) -> tuple[AuditTrailEntry, ...]:
        """Audit records of an ORM row (document, party, product, year)."""
        return self.audit_recorder.get_trail(subject.__tablename__, subject.id)

    def validate_audit_chain(self) -> bool:
        return self.audit_recorder.validate_chain()
