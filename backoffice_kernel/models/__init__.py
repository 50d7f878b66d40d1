"""Domain models for the back office kernel."""

from backoffice_kernel.models.allocation import Allocation
from backoffice_kernel.models.audit_record import AuditAction, AuditRecord
from backoffice_kernel.models.document import (
    BILL_KINDS,
    INITIAL_STATUS,
    MODEL_BY_KIND,
    ORDER_KINDS,
    SETTLEMENT_KINDS,
    VALID_TRANSITIONS,
    AdvanceReceipt,
    CreditNote,
    DebitNote,
    Document,
    DocumentKind,
    DocumentLine,
    DocumentStatus,
    Invoice,
    Order,
    Payment,
    PaymentDirection,
    PurchaseInvoice,
    PurchaseOrder,
)
from backoffice_kernel.models.financial_year import FinancialYear, OpeningBalance
from backoffice_kernel.models.inventory import InventoryTxn, InventoryTxnType
from backoffice_kernel.models.ledger import LedgerEntry, LedgerEntryType
from backoffice_kernel.models.party import Party, PartyKind
from backoffice_kernel.models.product import Product, ProductBatch
from backoffice_kernel.models.sequence import SequenceCounter

__all__ = [
    "Allocation",
    "AuditAction",
    "AuditRecord",
    "BILL_KINDS",
    "INITIAL_STATUS",
    "MODEL_BY_KIND",
    "ORDER_KINDS",
    "SETTLEMENT_KINDS",
    "VALID_TRANSITIONS",
    "AdvanceReceipt",
    "CreditNote",
    "DebitNote",
    "Document",
    "DocumentKind",
    "DocumentLine",
    "DocumentStatus",
    "Invoice",
    "Order",
    "Payment",
    "PaymentDirection",
    "PurchaseInvoice",
    "PurchaseOrder",
    "FinancialYear",
    "OpeningBalance",
    "InventoryTxn",
    "InventoryTxnType",
    "LedgerEntry",
    "LedgerEntryType",
    "Party",
    "PartyKind",
    "Product",
    "ProductBatch",
    "SequenceCounter",
]
