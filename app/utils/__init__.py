"""
Utilities Module - Shared helper functions for the F1 qualifying analysis
"""

from app.utils.logger import get_logger, setup_logging, setup_logging_from_settings
from app.utils.validators import (
    RainfallLevel,
    parse_rainfall,
    validate_dataframe,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "setup_logging_from_settings",
    "RainfallLevel",
    "parse_rainfall",
    "validate_dataframe",
]
