"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The party ledger, the inventory movement log and the audit trail are
append-only: a mistake is corrected by a compensating row, never by editing
history.  Closed financial years and voided documents are frozen.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below intercept those events and raise
ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                       | Allowed changes
----------------|--------------------------------------|-------------------------
LedgerEntry     | ALWAYS                               | none
InventoryTxn    | ALWAYS                               | none
AuditRecord     | ALWAYS                               | none
DocumentLine    | ALWAYS                               | none
Document        | After status = void                  | updated_at/updated_by_id
FinancialYear   | After is_closed = True               | updated_at/updated_by_id

updated_at / updated_by_id are audit metadata, not financial data, and may
change on frozen rows.

===============================================================================
USAGE
===============================================================================

    from backoffice_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to tamper with rows on purpose:

    unregister_immutability_listeners()
    ...
    register_immutability_listeners()
===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from backoffice_kernel.exceptions import ImmutabilityViolationError
from backoffice_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _AUDIT_METADATA_FIELDS and attr.history.has_changes()
    ]


def _append_only_update(mapper, connection, target):
    """Block every UPDATE of an append-only row."""
    name = type(target).__name__
    _block(name, target, "UPDATE", f"{name} rows are append-only")


def _append_only_delete(mapper, connection, target):
    """Block every DELETE of an append-only row."""
    name = type(target).__name__
    _block(name, target, "DELETE", f"{name} rows cannot be deleted")


def _check_document_update(mapper, connection, target):
    """
    Freeze a document once it is void.

    The void itself (status moving to void in this flush) is allowed.
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        was_void = status_history.deleted[0] == "void"
    else:
        was_void = target.status == "void"

    if not was_void:
        return

    changed = _changed_fields(target)
    if changed:
        _block(
            "Document",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on a void document",
            field=changed[0],
        )


def _check_document_delete(mapper, connection, target):
    _block("Document", target, "DELETE", "Documents cannot be deleted; void them")


def _check_financial_year_update(mapper, connection, target):
    """
    Freeze a financial year once closed.

    The close itself (is_closed False -> True in this flush) is allowed.
    """
    closed_history = get_history(target, "is_closed")
    if closed_history.deleted:
        was_closed = bool(closed_history.deleted[0])
    else:
        was_closed = bool(target.is_closed)

    if not was_closed:
        return

    changed = _changed_fields(target)
    if changed:
        _block(
            "FinancialYear",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on closed financial year",
            field=changed[0],
        )


def _check_financial_year_delete(mapper, connection, target):
    if target.is_closed:
        _block("FinancialYear", target, "DELETE", "Closed financial years cannot be deleted")


def _listener_table():
    from backoffice_kernel.models.audit_record import AuditRecord
    from backoffice_kernel.models.document import Document, DocumentLine
    from backoffice_kernel.models.financial_year import FinancialYear
    from backoffice_kernel.models.inventory import InventoryTxn
    from backoffice_kernel.models.ledger import LedgerEntry

    return [
        (LedgerEntry, "before_update", _append_only_update),
        (LedgerEntry, "before_delete", _append_only_delete),
        (InventoryTxn, "before_update", _append_only_update),
        (InventoryTxn, "before_delete", _append_only_delete),
        (AuditRecord, "before_update", _append_only_update),
        (AuditRecord, "before_delete", _append_only_delete),
        (DocumentLine, "before_update", _append_only_update),
        (DocumentLine, "before_delete", _append_only_delete),
        (Document, "before_update", _check_document_update),
        (Document, "before_delete", _check_document_delete),
        (FinancialYear, "before_update", _check_financial_year_update),
        (FinancialYear, "before_delete", _check_financial_year_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call this after all models are imported but before any database
    operations begin.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn, propagate=True)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
