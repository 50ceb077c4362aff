"""
F1 Qualifying Weather Analysis - Core Application Package
"""

__version__ = "0.1.0"

from app.utils.logger import get_logger
from app.utils.validators import parse_rainfall, validate_dataframe

__all__ = [
    "get_logger",
    "parse_rainfall",
    "validate_dataframe",
]
