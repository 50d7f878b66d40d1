"""
Tests for credit notes (sales returns) and debit notes (purchase returns).

Covers:
- Note pricing from the source line
- Cumulative return limits
- Settlement of the note against its source bill
- Stock and ledger movements
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_kernel.domain.dtos import PurchaseLineInput, ReturnLineInput
from backoffice_kernel.exceptions import (
    InvalidQuantityError,
    ReturnQuantityExceededError,
    ValidationError,
)
from backoffice_kernel.models.party import PartyKind
from backoffice_kernel.models.product import ProductBatch


@pytest.fixture
def invoice(sell):
    """1180.00 invoice: 10 x 100 at 18%, intra-state."""
    return sell(qty="10", rate="100", doc_date=date(2024, 7, 1))


@pytest.fixture
def credit(office, test_actor_id):
    def _credit(source, qty, reason="Damaged in transit", doc_date=date(2024, 7, 10)):
        return office.create_credit_note(
            source.id,
            [ReturnLineInput(source_line_id=source.lines[0].id, qty=Decimal(qty))],
            reason,
            test_actor_id,
            doc_date=doc_date,
        )

    return _credit


class TestCreditNote:
    def test_priced_from_invoice_line(self, invoice, credit):
        note = credit(invoice, "4")

        assert note.number == "CN/2024-25/001"
        assert note.subtotal == Decimal("400.00")
        assert note.cgst_total == Decimal("36.00")
        assert note.sgst_total == Decimal("36.00")
        assert note.total_amount == Decimal("472.00")
        assert note.lines[0].source_line_id == invoice.lines[0].id
        assert note.lines[0].hsn_code == "3004"

    def test_settles_against_invoice(self, office, invoice, credit, dealer):
        note = credit(invoice, "4")

        assert invoice.amount_paid == Decimal("472.00")
        assert invoice.status == "partially_paid"
        assert note.status == "adjusted"
        assert note.balance_amount == Decimal("0")
        assert office.balance(dealer.id) == Decimal("708.00")

    def test_stock_returns_to_batch(self, invoice, credit, batch):
        credit(invoice, "4")

        assert batch.current_qty == Decimal("94")

    def test_inter_state_note_repeats_igst(self, sell, outstation_dealer, credit):
        source = sell(qty="10", party=outstation_dealer)

        note = credit(source, "1")

        assert note.is_intra_state is False
        assert note.igst_total == Decimal("18.00")
        assert note.cgst_total == Decimal("0.00")

    def test_paid_invoice_leaves_note_unapplied(self, office, invoice, credit, dealer, test_actor_id):
        office.record_payment(dealer.id, date(2024, 7, 5), Decimal("1180"), "NEFT", test_actor_id)
        assert invoice.status == "paid"

        note = credit(invoice, "2")

        assert note.status == "open"
        assert note.balance_amount == Decimal("236.00")
        unapplied = office.unapplied_credits(PartyKind.DEALER, dealer.id)
        assert [c.document_id for c in unapplied] == [note.id]
        assert office.balance(dealer.id) == Decimal("-236.00")

    def test_date_defaults_to_today(self, office, invoice, test_actor_id, deterministic_clock):
        note = office.create_credit_note(
            invoice.id,
            [ReturnLineInput(source_line_id=invoice.lines[0].id, qty=Decimal("1"))],
            "Expired",
            test_actor_id,
        )

        assert note.doc_date == deterministic_clock.today()


class TestReturnLimits:
    """A line is never returned beyond what was sold."""

    def test_cumulative_limit(self, invoice, credit):
        credit(invoice, "4")
        credit(invoice, "6")

        with pytest.raises(ReturnQuantityExceededError):
            credit(invoice, "1")

    def test_limit_within_one_note(self, office, invoice, test_actor_id):
        line_id = invoice.lines[0].id

        with pytest.raises(ReturnQuantityExceededError):
            office.create_credit_note(
                invoice.id,
                [
                    ReturnLineInput(source_line_id=line_id, qty=Decimal("6")),
                    ReturnLineInput(source_line_id=line_id, qty=Decimal("5")),
                ],
                "Split return",
                test_actor_id,
                doc_date=date(2024, 7, 10),
            )

    def test_void_note_frees_quantity(self, office, invoice, credit, test_actor_id):
        first = credit(invoice, "10")
        office.void(first.id, "Return cancelled", test_actor_id)

        again = credit(invoice, "10")

        assert again.total_amount == Decimal("1180.00")

    def test_zero_quantity(self, invoice, credit):
        with pytest.raises(InvalidQuantityError):
            credit(invoice, "0")

    def test_reason_required(self, invoice, credit):
        with pytest.raises(ValidationError) as exc_info:
            credit(invoice, "1", reason="  ")

        assert exc_info.value.field == "reason"

    def test_line_from_other_invoice(self, office, sell, invoice, test_actor_id):
        other = sell(qty="1")

        with pytest.raises(ValidationError):
            office.create_credit_note(
                invoice.id,
                [ReturnLineInput(source_line_id=other.lines[0].id, qty=Decimal("1"))],
                "Wrong line",
                test_actor_id,
                doc_date=date(2024, 7, 10),
            )

    def test_void_invoice_rejected(self, office, invoice, credit, test_actor_id):
        office.void(invoice.id, "Cancelled sale", test_actor_id)

        with pytest.raises(ValidationError):
            credit(invoice, "1")


class TestDebitNote:
    @pytest.fixture
    def bill(self, office, supplier, product, test_actor_id):
        return office.create_purchase_invoice(
            supplier.id, date(2024, 7, 2), "MP/7781",
            [PurchaseLineInput(product_id=product.id, qty=Decimal("50"), rate=Decimal("60"), batch_no="B777")],
            test_actor_id,
        )

    def test_return_to_supplier(self, office, session, bill, supplier, test_actor_id):
        note = office.create_debit_note(
            bill.id,
            [ReturnLineInput(source_line_id=bill.lines[0].id, qty=Decimal("10"))],
            "Short expiry",
            test_actor_id,
            doc_date=date(2024, 7, 12),
        )

        assert note.number == "DN/2024-25/001"
        assert note.total_amount == Decimal("708.00")
        assert note.status == "adjusted"
        assert bill.amount_paid == Decimal("708.00")
        assert bill.status == "partially_paid"
        assert session.get(ProductBatch, bill.lines[0].batch_id).current_qty == Decimal("40")
        assert office.outstanding(supplier.id) == Decimal("2832.00")

    def test_debit_note_limit(self, office, bill, test_actor_id):
        with pytest.raises(ReturnQuantityExceededError):
            office.create_debit_note(
                bill.id,
                [ReturnLineInput(source_line_id=bill.lines[0].id, qty=Decimal("51"))],
                "Too many",
                test_actor_id,
                doc_date=date(2024, 7, 12),
            )
