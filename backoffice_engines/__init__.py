"""
Module: backoffice_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    backoffice_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import backoffice_kernel/domain, backoffice_kernel/db/types
    and the kernel logger.  MUST NOT import backoffice_services.

Invariants enforced:
    - Engines never read the clock; dates are passed in.
    - Decimal-only arithmetic; floats are rejected.
    - Identical inputs always produce identical outputs.
"""

from backoffice_engines.aging import (
    DEFAULT_BUCKETS,
    AgeBucket,
    AgedBill,
    AgingReport,
    PartyAging,
    build_aging_report,
    classify,
)
from backoffice_engines.allocation import (
    AllocationCandidate,
    AllocationPlan,
    AllocationSlice,
    plan_fifo_allocation,
)
from backoffice_engines.gst import (
    DocumentTotals,
    GSTBreakdown,
    LineAmounts,
    calculate_gst,
    is_intra_state,
    price_line,
    sum_lines,
)
from backoffice_engines.gst_returns import (
    DeductionPayment,
    DeductionSummaryRow,
    ReturnDocument,
    ReturnLine,
    build_deduction_summary,
    build_gstr1,
    build_gstr3b,
    dumps_portal_json,
    filing_period,
    format_return_date,
)
from backoffice_engines.tracer import traced_engine

__all__ = [
    "DEFAULT_BUCKETS",
    "AgeBucket",
    "AgedBill",
    "AgingReport",
    "PartyAging",
    "build_aging_report",
    "classify",
    "AllocationCandidate",
    "AllocationPlan",
    "AllocationSlice",
    "plan_fifo_allocation",
    "DocumentTotals",
    "GSTBreakdown",
    "LineAmounts",
    "calculate_gst",
    "is_intra_state",
    "price_line",
    "sum_lines",
    "DeductionPayment",
    "DeductionSummaryRow",
    "ReturnDocument",
    "ReturnLine",
    "build_deduction_summary",
    "build_gstr1",
    "build_gstr3b",
    "dumps_portal_json",
    "filing_period",
    "format_return_date",
    "traced_engine",
]
