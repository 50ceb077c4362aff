"""
Data Validation Utilities for F1 Data Quality Checks

Provides validation functions for rainfall flags and dataset structure.
"""

from typing import Any, List, Optional, Tuple
from enum import Enum


class RainfallLevel(str, Enum):
    """User-facing rainfall levels."""

    NO = "No"
    YES = "Yes"

    @property
    def code(self) -> int:
        """Dataset encoding of the level (0 = not raining, 1 = raining)."""
        return 1 if self is RainfallLevel.YES else 0


RAINFALL_CODES = {level.value: level.code for level in RainfallLevel}


def parse_rainfall(value: Any) -> int:
    """
    Map a rainfall flag as it appears in raw data to its 0/1 code.

    Accepts booleans, 0/1 and the ``No``/``Yes`` levels. Anything else is
    rejected rather than guessed.

    Raises:
        ValueError: If the value is not a recognized rainfall flag
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, str):
        if value in RAINFALL_CODES:
            return RAINFALL_CODES[value]
        raise ValueError(f"Unrecognized rainfall level: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Unrecognized rainfall level: {value!r}") from None
    if number in (0.0, 1.0):
        return int(number)
    raise ValueError(f"Unrecognized rainfall level: {value!r}")


def validate_dataframe(
    df,
    required_columns: Optional[List[str]] = None,
    min_rows: int = 1,
    check_nulls: bool = True,
    column_dtypes: Optional[dict] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate pandas DataFrame structure and content.

    Args:
        df: pandas DataFrame to validate
        required_columns: List of column names that must be present
        min_rows: Minimum number of rows required (default 1)
        check_nulls: If True, check for null values in required columns
        column_dtypes: Optional dict mapping column names to expected dtypes

    Returns:
        Tuple of (is_valid, error_message)

    Examples:
        >>> import pandas as pd
        >>> df = pd.DataFrame({'a': [1, 2, 3], 'b': [4, 5, 6]})
        >>> validate_dataframe(df, required_columns=['a', 'b'])
        (True, None)
        >>> validate_dataframe(df, required_columns=['a', 'c'])
        (False, "Missing required columns: ['c']")
    """
    import pandas as pd

    if not isinstance(df, pd.DataFrame):
        return False, f"Expected pandas DataFrame, got {type(df).__name__}"

    if required_columns:
        missing_cols = set(required_columns) - set(df.columns)
        if missing_cols:
            return False, f"Missing required columns: {sorted(list(missing_cols))}"

    if len(df) < min_rows:
        return False, f"DataFrame has {len(df)} rows, minimum required is {min_rows}"

    if check_nulls and required_columns:
        for col in required_columns:
            if df[col].isnull().any():
                null_count = df[col].isnull().sum()
                return False, f"Column '{col}' contains {null_count} null values"

    if column_dtypes:
        for col, expected_dtype in column_dtypes.items():
            if col not in df.columns:
                continue

            actual_dtype = df[col].dtype
            if expected_dtype == 'numeric':
                if not pd.api.types.is_numeric_dtype(actual_dtype):
                    return False, f"Column '{col}' has dtype {actual_dtype}, expected numeric"
            elif str(actual_dtype) != str(expected_dtype):
                return False, f"Column '{col}' has dtype {actual_dtype}, expected {expected_dtype}"

    return True, None
