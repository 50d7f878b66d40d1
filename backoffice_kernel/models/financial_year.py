"""
Module: backoffice_kernel.models.financial_year
Responsibility: ORM persistence for financial years (April-March in
    practice) and the per-party opening balances carried into them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique; date ranges do not overlap (checked by
      FinancialYearService at creation).
    - A closed year is immutable (ORM listener in db/immutability.py) and
      refuses postings dated inside it (ClosedFinancialYearError).
    - At most one opening balance per (financial_year, party).

Audit relevance:
    Closing a year is a privileged operation that writes opening balances
    for the successor year and produces a FINANCIAL_YEAR_CLOSED audit record.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase, UUIDString


class FinancialYear(TrackedBase):
    """
    Accounting year.

    Guarantees:
        - code is unique, e.g. "2024-25".
        - start_date <= end_date (enforced by the service layer).
        - close() requires actor_id and a clock-injected timestamp.
    """

    __tablename__ = "financial_years"

    __table_args__ = (
        UniqueConstraint("code", name="uq_financial_year_code"),
        Index("idx_financial_year_dates", "start_date", "end_date"),
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    closing_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date

    def close(self, actor_id: UUID, closed_at: datetime, notes: str | None) -> None:
        """Seal the year.

        Raises: ValueError if already closed.
        """
        if self.is_closed:
            raise ValueError(f"Financial year {self.code} is already closed")

        self.is_closed = True
        self.is_active = False
        self.closing_notes = notes
        self.closed_at = closed_at
        self.closed_by_id = actor_id

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<FinancialYear {self.code}: {state}>"


class OpeningBalance(TrackedBase):
    """Balance a party carries into a financial year, netted to one side."""

    __tablename__ = "opening_balances"

    __table_args__ = (
        UniqueConstraint(
            "financial_year_id", "party_id", name="uq_opening_balance_fy_party"
        ),
    )

    financial_year_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("financial_years.id"), nullable=False
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=False
    )

    opening_debit: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    opening_credit: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    @property
    def net(self) -> Decimal:
        return self.opening_debit - self.opening_credit
