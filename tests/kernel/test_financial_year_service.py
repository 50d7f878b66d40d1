"""
Tests for financial year lifecycle and posting-date checks.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.exceptions import (
    ClosedFinancialYearError,
    FinancialYearAlreadyClosedError,
    FinancialYearNotFoundError,
    FinancialYearOverlapError,
    ValidationError,
)
from backoffice_kernel.services.financial_year_service import FinancialYearService


@pytest.fixture
def years(session):
    return FinancialYearService(session)


class TestCreate:
    def test_start_after_end_rejected(self, years, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            years.create("bad", date(2024, 4, 1), date(2024, 3, 31), test_actor_id)

        assert exc_info.value.field == "start_date"

    def test_overlap_rejected(self, years, fy_2024, test_actor_id):
        with pytest.raises(FinancialYearOverlapError):
            years.create("2024-Q4", date(2025, 1, 1), date(2025, 6, 30), test_actor_id)

    def test_adjacent_year_allowed(self, years, fy_2024, test_actor_id):
        fy = years.create("2025-26", date(2025, 4, 1), date(2026, 3, 31), test_actor_id)

        assert fy.is_active is False
        assert fy.is_closed is False

    def test_created_active(self, fy_2024, years):
        assert years.get_active().id == fy_2024.id


class TestSetActive:
    """Only one year is active at a time."""

    def test_switch_active_year(self, years, fy_2024, fy_2025, test_actor_id):
        years.set_active(fy_2025.id, test_actor_id)

        assert fy_2025.is_active is True
        assert fy_2024.is_active is False
        assert years.get_active().id == fy_2025.id

    def test_unknown_year(self, years, test_actor_id):
        with pytest.raises(FinancialYearNotFoundError):
            years.set_active(uuid4(), test_actor_id)

    def test_closed_year_cannot_be_activated(self, office, years, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        with pytest.raises(FinancialYearAlreadyClosedError):
            years.set_active(fy_2024.id, test_actor_id)


class TestCodeFor:
    def test_defined_year_code(self, years, fy_2024):
        assert years.code_for(date(2024, 12, 31)) == "2024-25"

    def test_undefined_year_derives_code(self, years, fy_2024):
        assert years.code_for(date(2027, 5, 1)) == "2027-28"

    def test_closed_year_rejected(self, office, years, fy_2024, fy_2025, test_actor_id):
        office.close_financial_year(fy_2024.id, test_actor_id)

        with pytest.raises(ClosedFinancialYearError) as exc_info:
            years.code_for(date(2024, 8, 1))

        assert exc_info.value.fy_code == "2024-25"


class TestFindSuccessor:
    def test_next_open_year(self, years, fy_2024, fy_2025):
        assert years.find_successor(fy_2024).id == fy_2025.id

    def test_last_year_has_none(self, years, fy_2025):
        assert years.find_successor(fy_2025) is None

    def test_skips_gap(self, years, fy_2024, test_actor_id):
        later = years.create("2026-27", date(2026, 4, 1), date(2027, 3, 31), test_actor_id)

        assert years.find_successor(fy_2024).id == later.id


class TestOpeningBalances:
    """One row per (year, party); a second write replaces the first."""

    def test_upsert_replaces(self, years, fy_2025, dealer, test_actor_id):
        first = years.upsert_opening_balance(
            fy_2025.id, dealer.id, Decimal("100"), Decimal("0"), test_actor_id
        )
        second = years.upsert_opening_balance(
            fy_2025.id, dealer.id, Decimal("0"), Decimal("40"), test_actor_id
        )

        assert second.id == first.id
        assert second.net == Decimal("-40")
        assert len(years.opening_balances(fy_2025.id)) == 1
