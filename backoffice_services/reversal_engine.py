"""
backoffice_services.reversal_engine -- one-time void of a posted document.

Responsibility:
    Voids an invoice, purchase invoice, note, payment or advance by
    compensation: every ledger row the document posted gets a mirror row,
    every stock movement gets an opposite ADJUSTMENT, and every live
    allocation touching it is released.  The document row itself is only
    re-stamped (status, reason, actor, time); nothing is deleted.

Architecture position:
    Services -- orchestration over the kernel ledgers and the allocator.

Invariants enforced:
    - A document is voided at most once.  A second attempt raises
      AlreadyVoidError before anything is written.
    - The document row and its allocation counterparties are locked
      together in id order for the whole void, so a void and an
      allocation of the same document serialize.
    - After a void, Σ ledger rows of the document == 0 and every batch it
      touched holds the quantity it held before the document.
    - An invoice with live credit notes (or a purchase invoice with live
      debit notes) cannot be voided; the notes must be voided first.

Failure modes:
    - ValidationError: empty reason.
    - AlreadyVoidError, NotVoidableError, DependentDocumentsError.
    - InsufficientStockError: stock bought on a purchase invoice has
      already been sold.
    - ClosedFinancialYearError: today's date falls in a closed year.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice_kernel.domain.clock import Clock
from backoffice_kernel.exceptions import (
    AlreadyVoidError,
    DependentDocumentsError,
    NotVoidableError,
    ValidationError,
)
from backoffice_kernel.logging_config import LogContext, get_logger
from backoffice_kernel.models.document import ORDER_KINDS, Document, DocumentStatus
from backoffice_kernel.models.inventory import InventoryTxn, InventoryTxnType
from backoffice_kernel.selectors.document_selector import DocumentSelector
from backoffice_kernel.services.document_lock import DocumentLock
from backoffice_kernel.services.inventory_ledger import InventoryLedger
from backoffice_kernel.services.ledger_service import LedgerService
from backoffice_services.advance_allocator import AdvanceAllocator

logger = get_logger("services.reversal")


class ReversalEngine:
    """
    Voids documents through compensating entries.

    Contract:
        Never commits.  The compensating ledger rows are dated with the
        clock's today, not the document date, so a void never writes into
        a period that has since been closed.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        allocator: AdvanceAllocator | None = None,
    ) -> None:
        self._session = session
        self._clock = clock
        self._allocator = allocator or AdvanceAllocator(session, clock)
        self._locks = DocumentLock(session)
        self._documents = DocumentSelector(session)

    def void(self, document_id: UUID, reason: str, actor_id: UUID) -> Document:
        if reason is None or not reason.strip():
            raise ValidationError("A void reason is required", field="reason")
        reason = reason.strip()

        with LogContext.bind(document_id=str(document_id)):
            # Document and counterparties in one id-ordered pass, as allocate() does.
            counterparties = self._allocator.counterparty_ids(document_id)
            locked = self._locks.lock_many({document_id, *counterparties})
            document = locked[document_id]
            self._check_voidable(document)

            released = self._allocator.release(document, actor_id, locked)

            today = self._clock.today()
            description = f"Void of {document.number}: {reason}"
            ledger = LedgerService(self._session, actor_id)
            reversed_entries = [
                ledger.reverse(entry, today, description)
                for entry in ledger.entries_for_document(document.id)
            ]

            moves = self._reverse_stock(document, actor_id)

            document.transition_to(DocumentStatus.VOID)
            document.void_reason = reason
            document.voided_at = self._clock.now()
            document.voided_by_id = actor_id
            document.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "document_voided",
                extra={
                    "number": document.number,
                    "kind": document.kind_enum.value,
                    "reason": reason,
                    "ledger_reversals": len(reversed_entries),
                    "stock_reversals": moves,
                    "allocations_released": len(released),
                },
            )
        return document

    def _check_voidable(self, document: Document) -> None:
        if document.is_void:
            logger.warning(
                "void_rejected_already_void",
                extra={"number": document.number},
            )
            raise AlreadyVoidError(str(document.id), document.number)
        if document.kind_enum in ORDER_KINDS:
            raise NotVoidableError(
                str(document.id),
                document.kind_enum.value,
                "orders have no postings; cancel them instead",
            )
        dependents = self._documents.live_notes_against(document)
        if dependents:
            raise DependentDocumentsError(
                str(document.id), [note.number for note in dependents]
            )

    def _reverse_stock(self, document: Document, actor_id: UUID) -> int:
        """Undo each stock movement of the document; returns how many."""
        movements = self._session.execute(
            select(InventoryTxn)
            .where(InventoryTxn.document_id == document.id)
            .order_by(InventoryTxn.created_at, InventoryTxn.id)
        ).scalars().all()

        inventory = InventoryLedger(self._session, actor_id)
        notes = f"Void of {document.number}"
        today = self._clock.today()
        for movement in movements:
            if movement.qty_out > 0:
                inventory.credit(
                    movement.batch_id,
                    movement.qty_out,
                    InventoryTxnType.ADJUSTMENT,
                    today,
                    document_id=document.id,
                    rate=movement.rate,
                    notes=notes,
                )
            else:
                inventory.debit(
                    movement.batch_id,
                    movement.qty_in,
                    InventoryTxnType.ADJUSTMENT,
                    today,
                    document_id=document.id,
                    rate=movement.rate,
                    notes=notes,
                )
        return len(movements)
