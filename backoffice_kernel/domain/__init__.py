"""
Pure domain layer.

Value objects and the clock abstraction with NO dependencies on the ORM,
the database or I/O.
"""

from backoffice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from backoffice_kernel.domain.dtos import (
    LedgerStatement,
    LedgerStatementRow,
    LineInput,
    OpenBill,
    PartyBalance,
    PurchaseLineInput,
    ReturnLineInput,
    TransportDetails,
    UnappliedCredit,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "LedgerStatement",
    "LedgerStatementRow",
    "LineInput",
    "OpenBill",
    "PartyBalance",
    "PurchaseLineInput",
    "ReturnLineInput",
    "TransportDetails",
    "UnappliedCredit",
]
