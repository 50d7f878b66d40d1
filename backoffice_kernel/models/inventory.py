"""
Module: backoffice_kernel.models.inventory
Responsibility: ORM persistence for the append-only batch stock movement log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only (ORM listeners in db/immutability.py).
    - Exactly one of qty_in / qty_out is positive.
    - For every batch, Σqty_in - Σqty_out == ProductBatch.current_qty.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase, UUIDString


class InventoryTxnType(str, Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    SALE_RETURN = "SALE_RETURN"
    PURCHASE_RETURN = "PURCHASE_RETURN"
    ADJUSTMENT = "ADJUSTMENT"


class InventoryTxn(TrackedBase):
    """One stock movement into or out of a batch."""

    __tablename__ = "inventory_txn"

    __table_args__ = (
        CheckConstraint(
            "(qty_in > 0 AND qty_out = 0) OR (qty_out > 0 AND qty_in = 0)",
            name="ck_inventory_one_sided",
        ),
        Index("idx_inventory_batch", "batch_id"),
        Index("idx_inventory_document", "document_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("product_batches.id"), nullable=False
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    txn_type: Mapped[InventoryTxnType] = mapped_column(String(20), nullable=False)

    txn_date: Mapped[date] = mapped_column(Date, nullable=False)

    qty_in: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    qty_out: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    document_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("documents.id"), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryTxn {self.txn_type} in={self.qty_in} out={self.qty_out}>"
