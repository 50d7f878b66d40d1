"""Read-only query selectors."""

from backoffice_kernel.selectors.document_selector import (
    DocumentSelector,
    bill_kind_for,
    bill_model_for,
    settlement_order,
)
from backoffice_kernel.selectors.ledger_selector import LedgerSelector, signed_outstanding

__all__ = [
    "DocumentSelector",
    "bill_kind_for",
    "LedgerSelector",
    "bill_model_for",
    "settlement_order",
    "signed_outstanding",
]
