"""
Tests for financial year close and carry-forward.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.dtos import PurchaseLineInput
from backoffice_kernel.exceptions import (
    ClosedFinancialYearError,
    FinancialYearAlreadyClosedError,
    FinancialYearNotFoundError,
    NoSuccessorFYError,
)


@pytest.fixture
def year_activity(office, bill_exact, supplier, product, test_actor_id):
    """A 12000 dealer bill and a 3540 supplier bill, both in 2024-25."""
    bill_exact("12000", doc_date=date(2024, 8, 1))
    office.create_purchase_invoice(
        supplier.id, date(2024, 9, 2), "MP/9001",
        [PurchaseLineInput(product_id=product.id, qty=Decimal("50"), rate=Decimal("60"), batch_no="B900")],
        test_actor_id,
    )


class TestCloseFinancialYear:
    def test_carries_balances_forward(self, office, year_activity, fy_2024, fy_2025, dealer, supplier, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        rows = {row.party_id: row for row in office.opening_balances(fy_2025.id)}
        assert rows[dealer.id].opening_debit == Decimal("12000.00")
        assert rows[dealer.id].opening_credit == Decimal("0")
        assert rows[supplier.id].opening_debit == Decimal("0")
        assert rows[supplier.id].opening_credit == Decimal("3540.00")

    def test_result_totals(self, office, year_activity, fy_2024, fy_2025, test_actor_id):
        result = office.close_financial_year(fy_2024.id, test_actor_id, notes="Audited")

        assert result.successor.id == fy_2025.id
        assert len(result.opening_balances) == 2
        assert result.total_debit == Decimal("12000.00")
        assert result.total_credit == Decimal("3540.00")

    def test_successor_becomes_active(self, office, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        assert fy_2024.is_closed is True
        assert fy_2024.is_active is False
        assert fy_2025.is_active is True

    def test_settled_party_carries_zero(self, office, bill_exact, fy_2024, fy_2025, dealer, test_actor_id):
        bill_exact("500", doc_date=date(2024, 8, 1))
        office.record_payment(dealer.id, date(2024, 8, 20), Decimal("500"), "NEFT", test_actor_id)

        office.close_financial_year(fy_2024.id, test_actor_id)

        (row,) = office.opening_balances(fy_2025.id)
        assert row.opening_debit == Decimal("0")
        assert row.opening_credit == Decimal("0")

    def test_close_is_audited(self, office, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id, notes="Audited")

        trail = office.audit_trail(fy_2024)
        assert trail[-1].action == "financial_year_closed"
        assert trail[-1].before_state["is_closed"] is False
        assert trail[-1].payload["successor_code"] == "2025-26"
        assert trail[-1].payload["notes"] == "Audited"


class TestCloseFailures:
    def test_no_successor(self, office, year_activity, fy_2024, test_actor_id):
        with pytest.raises(NoSuccessorFYError) as exc_info:
            office.close_financial_year(fy_2024.id, test_actor_id)

        assert exc_info.value.fy_code == "2024-25"
        assert fy_2024.is_closed is False

    def test_already_closed(self, office, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        with pytest.raises(FinancialYearAlreadyClosedError):
            office.close_financial_year(fy_2024.id, test_actor_id)

    def test_no_postings_into_closed_year(self, office, sell, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        with pytest.raises(ClosedFinancialYearError):
            sell(doc_date=date(2024, 8, 1))

    def test_successor_accepts_postings(self, office, sell, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        invoice = sell(doc_date=date(2025, 5, 1))

        assert invoice.number == "RC/2025-26/001"

    def test_unknown_year(self, office, test_actor_id):
        with pytest.raises(FinancialYearNotFoundError):
            office.close_financial_year(uuid4(), test_actor_id)
