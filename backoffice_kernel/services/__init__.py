"""Kernel services: the only writers of sub-ledger rows."""

from backoffice_kernel.services.audit_recorder import AuditRecorder, AuditTrailEntry, audited
from backoffice_kernel.services.document_lock import DocumentLock
from backoffice_kernel.services.financial_year_service import (
    FinancialYearService,
    derive_fy_code,
)
from backoffice_kernel.services.inventory_ledger import InventoryLedger
from backoffice_kernel.services.ledger_service import LedgerService
from backoffice_kernel.services.sequence_service import (
    SequenceService,
    format_document_number,
)

__all__ = [
    "AuditRecorder",
    "AuditTrailEntry",
    "DocumentLock",
    "FinancialYearService",
    "InventoryLedger",
    "LedgerService",
    "SequenceService",
    "audited",
    "derive_fy_code",
    "format_document_number",
]
