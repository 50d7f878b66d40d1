"""
Tests for document numbering.

Covers:
- PREFIX/FY/NNN formatting
- Gap-free counters per (series, financial year)
- Numbers allocated through document creation
"""

from datetime import date
from decimal import Decimal

import pytest

from backoffice_kernel.domain.dtos import LineInput
from backoffice_kernel.exceptions import InsufficientStockError
from backoffice_kernel.services.financial_year_service import derive_fy_code
from backoffice_kernel.services.sequence_service import (
    SequenceService,
    format_document_number,
)


class TestFormatDocumentNumber:
    """Tests for the printed number format."""

    def test_padded(self):
        assert format_document_number("RC", "2024-25", 1) == "RC/2024-25/001"

    def test_wider_values_not_truncated(self):
        assert format_document_number("RC", "2024-25", 1234) == "RC/2024-25/1234"

    def test_custom_padding(self):
        assert format_document_number("RCPT", "2024-25", 7, padding=5) == "RCPT/2024-25/00007"


class TestDeriveFYCode:
    """April-March year codes for dates outside any defined year."""

    def test_april_starts_year(self):
        assert derive_fy_code(date(2024, 4, 1)) == "2024-25"

    def test_march_ends_year(self):
        assert derive_fy_code(date(2024, 3, 31)) == "2023-24"

    def test_century_boundary(self):
        assert derive_fy_code(date(2099, 12, 1)) == "2099-00"


class TestSequenceService:
    """Counter allocation inside one transaction."""

    def test_first_value_is_one(self, session):
        assert SequenceService(session).next_value("test:first") == 1

    def test_monotonic(self, session):
        service = SequenceService(session)

        values = [service.next_value("test:mono") for _ in range(5)]

        assert values == [1, 2, 3, 4, 5]
        assert service.current_value("test:mono") == 5

    def test_unused_sequence_has_no_value(self, session):
        assert SequenceService(session).current_value("test:never") is None

    def test_counters_per_financial_year(self, session):
        service = SequenceService(session)

        assert service.next_document_number("invoice", "2024-25", "RC") == "RC/2024-25/001"
        assert service.next_document_number("invoice", "2024-25", "RC") == "RC/2024-25/002"
        assert service.next_document_number("invoice", "2025-26", "RC") == "RC/2025-26/001"
        assert service.next_document_number("credit_note", "2024-25", "CN") == "CN/2024-25/001"


class TestDocumentNumbering:
    """Numbers allocated by the document factory."""

    def test_consecutive_invoices(self, sell):
        first = sell(qty="1")
        second = sell(qty="1")

        assert first.number == "RC/2024-25/001"
        assert second.number == "RC/2024-25/002"

    def test_number_uses_year_of_document_date(self, sell, fy_2025):
        sell(qty="1", doc_date=date(2025, 3, 31))
        april = sell(qty="1", doc_date=date(2025, 4, 1))

        assert april.number == "RC/2025-26/001"

    def test_each_series_has_own_prefix(
        self, office, dealer, supplier, product, test_actor_id, fy_2024
    ):
        order = office.create_order(
            dealer.id,
            date(2024, 7, 1),
            [LineInput(product_id=product.id, qty=Decimal("5"), rate=Decimal("100"))],
            test_actor_id,
        )
        purchase_order = office.create_purchase_order(
            supplier.id,
            date(2024, 7, 1),
            [LineInput(product_id=product.id, qty=Decimal("5"), rate=Decimal("60"))],
            test_actor_id,
        )
        advance = office.create_advance_receipt(
            dealer.id, date(2024, 7, 1), Decimal("500"), "UPI", test_actor_id
        )
        supplier_payment = office.record_supplier_payment(
            supplier.id, date(2024, 7, 1), Decimal("500"), "NEFT", test_actor_id
        )

        assert order.number == "SO/2024-25/001"
        assert purchase_order.number == "PO/2024-25/001"
        assert advance.number == "ADV/2024-25/001"
        assert supplier_payment.number == "SPAY/2024-25/001"

    def test_failed_document_does_not_consume_number(self, sell):
        """The savepoint rollback returns the counter value."""
        with pytest.raises(InsufficientStockError):
            sell(qty="1000")

        assert sell(qty="1").number == "RC/2024-25/001"
