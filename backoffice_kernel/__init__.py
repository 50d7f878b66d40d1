"""
Back Office Kernel

The transactional core of the distribution back office:
- Party, product and batch master data
- Append-only party ledger and batch inventory ledger
- Locked-counter document numbering
- Financial year control
- Hash-chained audit trail
"""

__version__ = "0.1.0"
