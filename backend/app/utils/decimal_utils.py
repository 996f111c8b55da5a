"""
Decimal precision utilities for GoldLedger.

Provides functions to work with database numeric precision and decimal truncation.
All gram and price columns in the database use NUMERIC(18, 6).

Usage:
    from backend.app.utils.decimal_utils import get_model_column_precision, truncate_to_db_precision

    precision, scale = get_model_column_precision(Trade, "total_amount")
    # Returns: (18, 6)

    value = Decimal("60000.1234567")
    truncated = truncate_to_db_precision(value, Trade, "total_amount")
    # Returns: Decimal("60000.123456")
"""
from decimal import Decimal, ROUND_DOWN
from typing import Type, Tuple

from sqlalchemy import Numeric
from sqlmodel import SQLModel

from backend.app.db.models import Member, Trade


def get_model_column_precision(model: Type[SQLModel], column_name: str) -> Tuple[int, int]:
    """
    Get (precision, scale) for a numeric column from SQLModel.

    Reads the column type definition from the model to get the actual
    precision and scale values, avoiding hardcoded constants.

    Args:
        model: SQLModel class (e.g., Trade, Member)
        column_name: Column name (e.g., "quantity", "gold_holdings")

    Returns:
        Tuple of (precision, scale)

    Raises:
        ValueError: If column not found or not a Numeric type

    Example:
        >>> get_model_column_precision(Member, "gold_holdings")
        (18, 6)
    """
    if not hasattr(model, '__table__'):
        raise ValueError(f"Model {model.__name__} has no __table__ attribute")

    table = model.__table__

    if column_name not in table.columns:
        raise ValueError(f"Column '{column_name}' not found in {model.__name__}")

    column_type = table.columns[column_name].type

    if not isinstance(column_type, Numeric):
        raise ValueError(
            f"Column '{column_name}' in {model.__name__} is not Numeric type "
            f"(found: {type(column_type).__name__})"
            )

    precision = column_type.precision
    scale = column_type.scale

    if precision is None or scale is None:
        raise ValueError(f"Column '{column_name}' in {model.__name__} has undefined precision/scale")

    return precision, scale


def truncate_to_db_precision(value: Decimal, model: Type[SQLModel], column_name: str) -> Decimal:
    """
    Truncate decimal to match database column precision.

    The value written is then exactly the value read back, so holdings
    comparisons and reconciliation never see sub-scale noise.

    Note:
        Uses ROUND_DOWN so a truncated amount never exceeds the exact product.
    """
    _, scale = get_model_column_precision(model, column_name)
    quantizer = Decimal(10) ** -scale
    return value.quantize(quantizer, rounding=ROUND_DOWN)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def truncate_grams(value: Decimal) -> Decimal:
    """Truncate a gram quantity with the precision used in DB members.gold_holdings."""
    return truncate_to_db_precision(value, Member, "gold_holdings")


def truncate_trade_amount(value: Decimal) -> Decimal:
    """Truncate a monetary amount with the precision used in DB trades.total_amount."""
    return truncate_to_db_precision(value, Trade, "total_amount")
