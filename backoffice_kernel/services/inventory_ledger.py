"""
InventoryLedger -- batch-level stock movements with a non-negativity invariant.

Responsibility:
    The ONLY writer of ``ProductBatch.current_qty``.  Every stock change
    appends one InventoryTxn row and adjusts the cached quantity of the
    batch while that batch row is locked.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the document factory
    (sales, purchases, returns), the reversal engine (void compensation)
    and the stock-in operation.

Invariants enforced:
    - For every batch, Σqty_in - Σqty_out >= 0 at all times.  A debit that
      would take the batch below zero raises InsufficientStockError and
      writes nothing.
    - current_qty == quantity_from_transactions(batch) after every call.
    - Quantities are strictly positive.

Failure modes:
    - InsufficientStockError, BatchNotFoundError, InvalidQuantityError,
      ProductNotFoundError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backoffice_kernel.db.types import to_decimal
from backoffice_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStockError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.inventory import InventoryTxn, InventoryTxnType
from backoffice_kernel.models.product import Product, ProductBatch
from backoffice_kernel.services.base import BaseService

logger = get_logger("services.inventory")


class InventoryLedger(BaseService[InventoryTxn]):
    """
    Append-only stock ledger over product batches.

    Contract:
        ``debit`` removes stock and may fail; ``credit`` adds stock and
        always succeeds for a positive quantity.

    Guarantees:
        - The batch row is locked (``SELECT ... FOR UPDATE``) for the
          read-check-write, so two concurrent sales of the last unit
          cannot both succeed.

    Non-goals:
        - Does NOT commit -- caller controls boundaries.
    """

    def __init__(self, session: Session, actor_id: UUID):
        super().__init__(session)
        self._actor_id = actor_id

    def lock_batch(self, batch_id: UUID) -> ProductBatch:
        """Load a batch with a row lock.

        Raises:
            BatchNotFoundError: If the batch does not exist.
        """
        batch = self.session.execute(
            select(ProductBatch)
            .where(ProductBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))
        return batch

    def _append(
        self,
        batch: ProductBatch,
        txn_type: InventoryTxnType,
        txn_date: date,
        qty_in: Decimal,
        qty_out: Decimal,
        rate: Decimal,
        document_id: UUID | None,
        notes: str | None,
    ) -> InventoryTxn:
        txn = InventoryTxn(
            batch_id=batch.id,
            product_id=batch.product_id,
            txn_type=InventoryTxnType(txn_type).value,
            txn_date=txn_date,
            qty_in=qty_in,
            qty_out=qty_out,
            rate=rate,
            document_id=document_id,
            notes=notes,
            created_by_id=self._actor_id,
        )
        self.session.add(txn)
        batch.current_qty = batch.current_qty + qty_in - qty_out
        self.session.flush()
        return txn

    def debit(
        self,
        batch_id: UUID,
        qty: Decimal,
        txn_type: InventoryTxnType,
        txn_date: date,
        document_id: UUID | None = None,
        rate: Decimal = Decimal("0"),
        notes: str | None = None,
    ) -> InventoryTxn:
        """
        Remove ``qty`` from a batch.

        Raises:
            InvalidQuantityError: If qty <= 0.
            BatchNotFoundError: If the batch does not exist.
            InsufficientStockError: If the batch holds less than qty.
        """
        qty = to_decimal(qty)
        if qty <= 0:
            raise InvalidQuantityError(qty)

        batch = self.lock_batch(batch_id)
        if batch.current_qty < qty:
            logger.warning(
                "insufficient_stock",
                extra={
                    "batch_id": str(batch.id),
                    "batch_no": batch.batch_no,
                    "requested": str(qty),
                    "available": str(batch.current_qty),
                },
            )
            raise InsufficientStockError(
                batch_id=str(batch.id),
                requested=qty,
                available=batch.current_qty,
                batch_no=batch.batch_no,
            )

        txn = self._append(
            batch, txn_type, txn_date, Decimal("0"), qty, rate, document_id, notes
        )
        logger.debug(
            "stock_debited",
            extra={
                "batch_id": str(batch.id),
                "qty": str(qty),
                "txn_type": InventoryTxnType(txn_type).value,
                "remaining": str(batch.current_qty),
            },
        )
        return txn

    def credit(
        self,
        batch_id: UUID,
        qty: Decimal,
        txn_type: InventoryTxnType,
        txn_date: date,
        document_id: UUID | None = None,
        rate: Decimal = Decimal("0"),
        notes: str | None = None,
    ) -> InventoryTxn:
        """
        Add ``qty`` to a batch.

        Raises:
            InvalidQuantityError: If qty <= 0.
            BatchNotFoundError: If the batch does not exist.
        """
        qty = to_decimal(qty)
        if qty <= 0:
            raise InvalidQuantityError(qty)

        batch = self.lock_batch(batch_id)
        txn = self._append(
            batch, txn_type, txn_date, qty, Decimal("0"), rate, document_id, notes
        )
        logger.debug(
            "stock_credited",
            extra={
                "batch_id": str(batch.id),
                "qty": str(qty),
                "txn_type": InventoryTxnType(txn_type).value,
                "remaining": str(batch.current_qty),
            },
        )
        return txn

    def find_or_create_batch(
        self,
        product_id: UUID,
        batch_no: str,
        purchase_rate: Decimal,
        mfg_date: date | None = None,
        exp_date: date | None = None,
    ) -> ProductBatch:
        """Return the product's batch with ``batch_no``, creating it empty if new.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))

        batch = self.session.execute(
            select(ProductBatch).where(
                ProductBatch.product_id == product_id,
                ProductBatch.batch_no == batch_no,
            )
        ).scalar_one_or_none()
        if batch is not None:
            return batch

        batch = ProductBatch(
            product_id=product_id,
            batch_no=batch_no,
            current_qty=Decimal("0"),
            purchase_rate=purchase_rate,
            mfg_date=mfg_date,
            exp_date=exp_date,
            created_by_id=self._actor_id,
        )
        self.session.add(batch)
        self.session.flush()
        logger.info(
            "batch_created",
            extra={"product_id": str(product_id), "batch_no": batch_no},
        )
        return batch

    def receive_stock(
        self,
        product_id: UUID,
        batch_no: str,
        qty: Decimal,
        rate: Decimal,
        txn_date: date,
        mfg_date: date | None = None,
        exp_date: date | None = None,
        notes: str | None = None,
    ) -> ProductBatch:
        """
        Manual stock-in: find or create the batch and credit it as an
        ADJUSTMENT with no document.
        """
        qty = to_decimal(qty)
        if qty <= 0:
            raise InvalidQuantityError(qty)

        batch = self.find_or_create_batch(
            product_id, batch_no, to_decimal(rate), mfg_date, exp_date
        )
        self.credit(
            batch.id,
            qty,
            InventoryTxnType.ADJUSTMENT,
            txn_date,
            rate=to_decimal(rate),
            notes=notes or "Stock in",
        )
        logger.info(
            "stock_received",
            extra={"batch_id": str(batch.id), "batch_no": batch_no, "qty": str(qty)},
        )
        return batch

    def quantity_from_transactions(self, batch_id: UUID) -> Decimal:
        """Recompute Σqty_in - Σqty_out for a batch from the movement log."""
        qty_in, qty_out = self.session.execute(
            select(
                func.coalesce(func.sum(InventoryTxn.qty_in), 0),
                func.coalesce(func.sum(InventoryTxn.qty_out), 0),
            ).where(InventoryTxn.batch_id == batch_id)
        ).one()
        return Decimal(qty_in) - Decimal(qty_out)
