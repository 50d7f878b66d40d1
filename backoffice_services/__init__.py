"""
backoffice_services -- orchestration over the kernel and the engines.

``BackOffice`` is the public entry point; the other classes are exported
for callers that compose their own transaction handling.
"""

from backoffice_services.advance_allocator import AdvanceAllocator, AllocationResult
from backoffice_services.back_office import BackOffice
from backoffice_services.compliance_service import (
    ComplianceService,
    PartyReconciliation,
    to_return_document,
)
from backoffice_services.document_factory import DocumentFactory
from backoffice_services.financial_year_closer import CloseResult, FinancialYearCloser
from backoffice_services.reversal_engine import ReversalEngine

__all__ = [
    "AdvanceAllocator",
    "AllocationResult",
    "BackOffice",
    "CloseResult",
    "ComplianceService",
    "DocumentFactory",
    "FinancialYearCloser",
    "PartyReconciliation",
    "ReversalEngine",
    "to_return_document",
]
