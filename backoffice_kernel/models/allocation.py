"""
Module: backoffice_kernel.models.allocation
Responsibility: ORM persistence for settlement allocations: how much of a
    payment, advance, credit note or debit note was applied to which bill.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0.
    - A live allocation has released_at NULL.  Releasing (on void of either
      side) stamps released_at; the row itself is kept as history.
    - Σ live allocations into a bill == bill.amount_paid.
    - Σ live allocations out of a source == source.adjusted_amount.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase, UUIDString


class Allocation(TrackedBase):
    """Application of a settlement source against a bill."""

    __tablename__ = "allocations"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_allocation_positive"),
        Index("idx_allocation_source", "source_id"),
        Index("idx_allocation_target", "target_id"),
    )

    source_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False
    )

    target_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=False
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    allocated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    released_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    released_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_live(self) -> bool:
        return self.released_at is None

    def __repr__(self) -> str:
        state = "live" if self.is_live else "released"
        return f"<Allocation {self.amount} {self.source_id}->{self.target_id} {state}>"
