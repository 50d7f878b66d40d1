"""
Module: backoffice_kernel.db.types
Responsibility: Annotated column types and the single sanctioned rounding
    helper for rupee amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and the pure engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - No floats.  Every amount, rate and quantity is a Decimal.
    - round_money() is the ONLY rounding function for monetary values.  The
      GST calculator passes ROUND_DOWN explicitly for the central half; all
      other callers use the ROUND_HALF_UP default.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Rupee amounts: 38 digits total, 9 decimal places in storage
Money = Annotated[Decimal, Numeric(38, 9)]

# Stock quantities (fractional units allowed, e.g. litres)
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Percentage rates such as 18 (GST) or 0.1 (TDS)
Percent = Annotated[Decimal, Numeric(9, 4)]

Sequence = Annotated[int, BigInteger]

# SHA-256 hash as hex string (64 characters)
PayloadHash = Annotated[str, String(64)]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce an int, str or Decimal into a Decimal.

    Floats are rejected: a float has already lost the cent.

    Raises:
        TypeError: If value is a float.
    """
    if isinstance(value, float):
        raise TypeError(f"Float amounts are not accepted: {value!r}")
    if isinstance(value, Decimal):
        return value
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)
