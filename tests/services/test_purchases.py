"""
Tests for purchase invoices and purchase orders.
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_kernel.domain.dtos import LineInput, PurchaseLineInput
from backoffice_kernel.exceptions import (
    InvalidStatusTransitionError,
    ValidationError,
    WrongPartyKindError,
)
from backoffice_kernel.models.document import DocumentStatus
from backoffice_kernel.models.party import PartyKind
from backoffice_kernel.models.product import ProductBatch


@pytest.fixture
def buy(office, supplier, product, test_actor_id):
    """Book a supplier bill for ``product`` into a new or existing batch."""

    def _buy(qty="50", rate="60", batch_no="B777", batch_id=None, doc_date=date(2024, 7, 2), **kwargs):
        return office.create_purchase_invoice(
            supplier.id,
            doc_date,
            kwargs.pop("supplier_invoice_number", "MP/7781"),
            [
                PurchaseLineInput(
                    product_id=product.id,
                    qty=Decimal(qty),
                    rate=Decimal(rate),
                    batch_id=batch_id,
                    batch_no=None if batch_id else batch_no,
                    exp_date=date(2026, 6, 30),
                )
            ],
            test_actor_id,
            **kwargs,
        )

    return _buy


class TestPurchaseInvoice:
    def test_totals_and_ledger_credit(self, office, buy, supplier):
        bill = buy()

        assert bill.subtotal == Decimal("3000.00")
        assert bill.cgst_total == Decimal("270.00")
        assert bill.total_amount == Decimal("3540.00")
        assert bill.number == "PI/2024-25/001"
        assert bill.due_date == date(2024, 8, 16)
        assert office.balance(supplier.id) == Decimal("-3540.00")
        assert office.outstanding(supplier.id) == Decimal("3540.00")

    def test_new_batch_created(self, session, buy):
        bill = buy(batch_no="B777")

        batch = session.get(ProductBatch, bill.lines[0].batch_id)
        assert batch.batch_no == "B777"
        assert batch.current_qty == Decimal("50")
        assert batch.exp_date == date(2026, 6, 30)

    def test_existing_batch_topped_up(self, buy, batch):
        buy(batch_id=batch.id)

        assert batch.current_qty == Decimal("150")

    def test_batch_details_required(self, buy):
        with pytest.raises(ValidationError) as exc_info:
            buy(batch_no=" ")

        assert exc_info.value.field == "batch_no"

    def test_supplier_invoice_number_required(self, buy):
        with pytest.raises(ValidationError):
            buy(supplier_invoice_number="")

    def test_dealer_cannot_bill_us(self, office, dealer, product, test_actor_id):
        with pytest.raises(WrongPartyKindError):
            office.create_purchase_invoice(
                dealer.id, date(2024, 7, 2), "X-1",
                [PurchaseLineInput(product_id=product.id, qty=Decimal("1"), rate=Decimal("1"), batch_no="Z1")],
                test_actor_id,
            )

    def test_listed_as_supplier_open_bill(self, office, buy, supplier):
        bill = buy()

        assert [b.document_id for b in office.open_bills(PartyKind.SUPPLIER)] == [bill.id]


class TestPurchaseOrder:
    """Purchase orders carry no stock or ledger effect."""

    @pytest.fixture
    def purchase_order(self, office, supplier, product, test_actor_id):
        return office.create_purchase_order(
            supplier.id, date(2024, 7, 1),
            [LineInput(product_id=product.id, qty=Decimal("50"), rate=Decimal("60"))],
            test_actor_id,
            expected_date=date(2024, 7, 10),
        )

    def test_draft_without_postings(self, office, purchase_order, supplier):
        assert purchase_order.status == "draft"
        assert purchase_order.total_amount == Decimal("3540.00")
        assert office.balance(supplier.id) == Decimal("0")

    def test_received_workflow(self, office, purchase_order, test_actor_id):
        office.transition_order(purchase_order.id, DocumentStatus.CONFIRMED, test_actor_id)
        office.transition_order(purchase_order.id, DocumentStatus.RECEIVED, test_actor_id)

        assert purchase_order.status == "received"

    def test_dispatch_not_a_purchase_step(self, office, purchase_order, test_actor_id):
        office.transition_order(purchase_order.id, DocumentStatus.CONFIRMED, test_actor_id)

        with pytest.raises(InvalidStatusTransitionError):
            office.transition_order(purchase_order.id, DocumentStatus.DISPATCHED, test_actor_id)

    def test_bill_links_purchase_order(self, buy, purchase_order):
        bill = buy(purchase_order_id=purchase_order.id)

        assert bill.purchase_order_id == purchase_order.id
