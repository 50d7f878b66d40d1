"""
Module: backoffice_kernel.models.product
Responsibility: ORM persistence for the product catalogue and the stock
    batches each product is held in.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (product_id, batch_no) is unique.
    - ProductBatch.current_qty is a cache of Σqty_in - Σqty_out over the
      batch's inventory transactions.  It is written ONLY by
      InventoryLedger, under a row lock, and never goes negative.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import TrackedBase, UUIDString


class Product(TrackedBase):
    """
    Catalogue item.

    gst_rate is a percentage (18 means 18%).  hsn_code and uqc feed the
    GSTR-1 HSN summary.
    """

    __tablename__ = "products"

    __table_args__ = (
        UniqueConstraint("sku", name="uq_product_sku"),
        Index("idx_product_active", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    sku: Mapped[str] = mapped_column(String(50), nullable=False)

    hsn_code: Mapped[str | None] = mapped_column(String(8), nullable=True)

    gst_rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Selling unit shown on documents
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="PCS")

    # Unit quantity code reported in the HSN summary
    uqc: Mapped[str | None] = mapped_column(String(10), nullable=True)

    sale_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    purchase_price: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    batches: Mapped[list["ProductBatch"]] = relationship(
        back_populates="product",
        order_by="ProductBatch.batch_no",
    )

    def __repr__(self) -> str:
        return f"<Product {self.sku}: {self.name}>"


class ProductBatch(TrackedBase):
    """
    A lot of a product with its own quantity, cost and expiry.

    Contract:
        current_qty changes only through InventoryLedger.debit/credit.
    """

    __tablename__ = "product_batches"

    __table_args__ = (
        UniqueConstraint("product_id", "batch_no", name="uq_batch_product_no"),
        CheckConstraint("current_qty >= 0", name="ck_batch_qty_non_negative"),
        Index("idx_batch_product", "product_id"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    batch_no: Mapped[str] = mapped_column(String(50), nullable=False)

    current_qty: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    purchase_rate: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0")
    )

    mfg_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    exp_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    product: Mapped[Product] = relationship(back_populates="batches", lazy="selectin")

    def __repr__(self) -> str:
        return f"<ProductBatch {self.batch_no}: {self.current_qty}>"
