"""
FinancialYearService -- financial year lifecycle and posting-date validation.

Responsibility:
    Creates financial years, switches the active year, resolves the year
    code used in document numbers, and validates that postings do not land
    inside a closed year.  Writes opening balances on behalf of the
    financial year closer.

Architecture position:
    Kernel > Services -- imperative shell.  Called by LedgerService before
    every posting, by the document factory for number series, and by the
    FinancialYearCloser.

Invariants enforced:
    - Date ranges of financial years never overlap; start <= end.
    - At most one active year.
    - No posting dated inside a closed year (ClosedFinancialYearError).  The
      year row is read FOR SHARE so that a posting and a concurrent close
      of the same year serialize.
    - At most one opening balance per (year, party); a second write for the
      same pair updates the existing row.

Failure modes:
    - FinancialYearNotFoundError, FinancialYearOverlapError,
      ClosedFinancialYearError, ValidationError (start after end).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.exceptions import (
    ClosedFinancialYearError,
    FinancialYearAlreadyClosedError,
    FinancialYearNotFoundError,
    FinancialYearOverlapError,
    ValidationError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.financial_year import FinancialYear, OpeningBalance
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.financial_year")

# Indian financial years run April to March
FY_START_MONTH = 4


def derive_fy_code(on: date) -> str:
    """April-March year code for a date, e.g. 2024-06-01 -> "2024-25"."""
    start_year = on.year if on.month >= FY_START_MONTH else on.year - 1
    return f"{start_year}-{str(start_year + 1)[-2:]}"


class FinancialYearService(BaseService[FinancialYear]):
    """
    Financial year lifecycle.

    Non-goals:
        - Does NOT compute closing balances; FinancialYearCloser does.
        - Does NOT commit.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def create(
        self,
        code: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        is_active: bool = False,
    ) -> FinancialYear:
        """
        Create a financial year.

        Raises:
            ValidationError: If start_date > end_date.
            FinancialYearOverlapError: If the range overlaps another year.
        """
        if start_date > end_date:
            raise ValidationError(
                f"start_date ({start_date}) cannot be after end_date ({end_date})",
                field="start_date",
            )

        overlapping = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.start_date <= end_date,
                FinancialYear.end_date >= start_date,
            ).limit(1)
        ).scalar_one_or_none()
        if overlapping is not None:
            raise FinancialYearOverlapError(code, overlapping.code)

        fy = FinancialYear(
            code=code,
            start_date=start_date,
            end_date=end_date,
            is_active=False,
            is_closed=False,
            created_by_id=actor_id,
        )
        self.session.add(fy)
        self.session.flush()

        if is_active:
            self.set_active(fy.id, actor_id)

        logger.info(
            "financial_year_created",
            extra={
                "fy_code": code,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return fy

    def get(self, fy_id: UUID) -> FinancialYear:
        fy = self.session.get(FinancialYear, fy_id)
        if fy is None:
            raise FinancialYearNotFoundError(str(fy_id))
        return fy

    def lock(self, fy_id: UUID) -> FinancialYear:
        """Load a financial year with a row lock.

        Raises:
            FinancialYearNotFoundError: If it does not exist.
        """
        fy = self.session.execute(
            select(FinancialYear)
            .where(FinancialYear.id == fy_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if fy is None:
            raise FinancialYearNotFoundError(str(fy_id))
        return fy

    def set_active(self, fy_id: UUID, actor_id: UUID) -> FinancialYear:
        """
        Make one year the active year; every other year becomes inactive.

        Raises:
            FinancialYearNotFoundError: If it does not exist.
            FinancialYearAlreadyClosedError: If it is closed.
        """
        fy = self.lock(fy_id)
        if fy.is_closed:
            raise FinancialYearAlreadyClosedError(fy.code)

        others = self.session.execute(
            select(FinancialYear).where(
                FinancialYear.is_active.is_(True),
                FinancialYear.id != fy.id,
            )
        ).scalars().all()
        for other in others:
            other.is_active = False
            other.updated_by_id = actor_id

        fy.is_active = True
        fy.updated_by_id = actor_id
        self.session.flush()

        logger.info("financial_year_activated", extra={"fy_code": fy.code})
        return fy

    def find_for_date(self, on: date, for_share: bool = False) -> FinancialYear | None:
        stmt = select(FinancialYear).where(
            FinancialYear.start_date <= on,
            FinancialYear.end_date >= on,
        )
        if for_share:
            stmt = stmt.with_for_update(read=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def get_active(self) -> FinancialYear | None:
        return self.session.execute(
            select(FinancialYear).where(FinancialYear.is_active.is_(True)).limit(1)
        ).scalar_one_or_none()

    def assert_open_for(self, on: date) -> FinancialYear | None:
        """
        Refuse postings dated inside a closed year.

        Dates outside every defined year are accepted.

        Raises:
            ClosedFinancialYearError: If the covering year is closed.
        """
        fy = self.find_for_date(on, for_share=True)
        if fy is not None and fy.is_closed:
            logger.warning(
                "closed_financial_year_posting_rejected",
                extra={"fy_code": fy.code, "posting_date": str(on)},
            )
            raise ClosedFinancialYearError(fy.code, str(on))
        return fy

    def code_for(self, on: date) -> str:
        """
        Year code used in document numbers for a date.

        Uses the defined year covering the date, otherwise the April-March
        code derived from the date.

        Raises:
            ClosedFinancialYearError: If the covering year is closed.
        """
        fy = self.assert_open_for(on)
        return fy.code if fy is not None else derive_fy_code(on)

    def find_successor(self, fy: FinancialYear) -> FinancialYear | None:
        """Earliest open year starting after ``fy`` ends."""
        return self.session.execute(
            select(FinancialYear)
            .where(
                FinancialYear.start_date > fy.end_date,
                FinancialYear.is_closed.is_(False),
            )
            .order_by(FinancialYear.start_date)
            .limit(1)
        ).scalar_one_or_none()

    def upsert_opening_balance(
        self,
        fy_id: UUID,
        party_id: UUID,
        opening_debit: Decimal,
        opening_credit: Decimal,
        actor_id: UUID,
    ) -> OpeningBalance:
        """Write the opening balance for (year, party), replacing any existing one."""
        existing = self.session.execute(
            select(OpeningBalance)
            .where(
                OpeningBalance.financial_year_id == fy_id,
                OpeningBalance.party_id == party_id,
            )
            .with_for_update()
        ).scalar_one_or_none()

        if existing is not None:
            existing.opening_debit = opening_debit
            existing.opening_credit = opening_credit
            existing.updated_by_id = actor_id
            self.session.flush()
            return existing

        row = OpeningBalance(
            financial_year_id=fy_id,
            party_id=party_id,
            opening_debit=opening_debit,
            opening_credit=opening_credit,
            created_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()
        return row

    def opening_balances(self, fy_id: UUID) -> list[OpeningBalance]:
        return list(
            self.session.execute(
                select(OpeningBalance).where(OpeningBalance.financial_year_id == fy_id)
            ).scalars().all()
        )
