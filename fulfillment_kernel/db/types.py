"""
Module: fulfillment_kernel.db.types
Responsibility: Annotated type aliases and utility functions for column types
    shared by every model.  Centralizes price precision and rounding.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Prices are Decimal with 2 decimal places, rounded ROUND_HALF_UP by
      round_money(), the only sanctioned rounding function.
    - LEGACY_SKU_ID (0) is the reserved "unmigrated" SKU identifier.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric

# Price with 2 decimal places
Money = Annotated[Decimal, Numeric(20, 2)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# Placeholder meaning "not yet assigned to a real SKU".  Never a valid id.
LEGACY_SKU_ID = 0


def round_money(
    value: Decimal | int | str,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a price to the stored precision.

    Args:
        value: Amount as Decimal, int or numeric string.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return Decimal(value).quantize(Decimal(quantize_str), rounding=rounding)
