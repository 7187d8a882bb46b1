# hourly_direction/validators/__init__.py - Public API for validation functions
"""
Validation module for bars delivered to the direction model.
Provides ordering checks and OHLCV integrity reports.
"""

from .data_quality import DataQualityReport
from .bars import (
    check_bar_order,
    check_minute_order,
    validate_ohlcv_integrity,
    ensure_valid_batch,
)

__all__ = [
    'DataQualityReport',

    'check_bar_order',
    'check_minute_order',
    'validate_ohlcv_integrity',
    'ensure_valid_batch',
]
