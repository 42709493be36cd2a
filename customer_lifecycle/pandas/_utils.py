"""Shared utilities for pandas conversion operations."""

from decimal import Decimal
from typing import Any

import pandas as pd  # type: ignore


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert float to Decimal, avoiding binary float artefacts.

    Example:
        >>> float_to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, Decimal):
        return value
    if not isinstance(value, (int, float)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))


def optional_str(value: Any) -> str | None:
    """Return None for missing cells (None/NaN/NaT), otherwise ``str(value)``."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return str(value)


def require_columns(df: pd.DataFrame, required: list[str]) -> None:
    missing_cols = set(required) - set(df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {sorted(missing_cols)}")
