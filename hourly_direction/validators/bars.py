# hourly_direction/validators/bars.py - Bar ordering and OHLCV validation
"""
Ordering checks used by the model before it accepts bars, and OHLCV
integrity validation applied to freshly fetched batches.
"""

from typing import Optional, Sequence

import pandas as pd

from ..exceptions import DirectionDataError
from ..models import Bar
from ..utils import bars_to_dataframe
from .data_quality import DataQualityReport


def check_bar_order(bars: Sequence[Bar], label: str = 'hourly') -> None:
    """
    [FUNCTION SUMMARY]
    Purpose: Require strictly increasing open times within one series
    Parameters:
        - bars (sequence of Bar): Bars oldest-to-newest
        - label (str): Series name used in the error
    Raises: DirectionDataError on the first out-of-order or duplicate bar
    """
    for i in range(1, len(bars)):
        previous, current = bars[i - 1].open_time, bars[i].open_time
        if current <= previous:
            raise DirectionDataError(
                f"{label} bars out of order at position {i}",
                data_type=label,
                field='open_time',
                value=current,
                previous_open_time=previous
            )


def check_minute_order(last_time: Optional[int], open_time: Optional[int]) -> None:
    """Minute pushes must be non-decreasing in time; untimed pushes are not checked"""
    if last_time is None or open_time is None:
        return
    if open_time < last_time:
        raise DirectionDataError(
            "Minute close pushed out of time order",
            data_type='minute',
            field='open_time',
            value=open_time,
            previous_open_time=last_time
        )


def validate_ohlcv_integrity(df: pd.DataFrame, label: Optional[str] = None) -> DataQualityReport:
    """
    [FUNCTION SUMMARY]
    Purpose: OHLCV integrity validation for one fetched batch
    Parameters:
        - df (DataFrame): OHLCV data indexed by open time, in delivery order
        - label (str, optional): Context for the report
    Returns: DataQualityReport - Detailed validation report
    Example: report = validate_ohlcv_integrity(bars_to_dataframe(bars), 'BTCUSDT 1h')
    """
    report = DataQualityReport()
    if label:
        report.add_metric('label', label)

    if df.empty:
        report.add_issue("No bars returned", critical=False)
        return report

    report.add_metric('row_count', len(df))
    report.add_metric('date_range', f"{df.index.min()} to {df.index.max()}")

    # 1. Required columns
    required_cols = ['open', 'high', 'low', 'close']
    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        report.add_issue(f"Missing required columns: {missing_cols}")
        return report

    # 2. NaN values
    nan_counts = df[required_cols].isna().sum()
    if nan_counts.any():
        report.add_issue(f"NaN values found: {nan_counts[nan_counts > 0].to_dict()}")

    # 3. Prices must be positive
    for col in required_cols:
        non_positive = (df[col] <= 0).sum()
        if non_positive > 0:
            report.add_issue(f"Non-positive values in {col}: {non_positive} rows")

    # 4. OHLC relationships
    relationship_issues = {
        'high < low': (df['high'] < df['low']).sum(),
        'open > high': (df['open'] > df['high']).sum(),
        'open < low': (df['open'] < df['low']).sum(),
        'close > high': (df['close'] > df['high']).sum(),
        'close < low': (df['close'] < df['low']).sum(),
    }
    for issue, count in relationship_issues.items():
        if count > 0:
            report.add_issue(f"Invalid OHLC relationship ({issue}): {count} rows")

    # 5. Ordering and duplicates
    duplicate_count = int(df.index.duplicated().sum())
    if duplicate_count > 0:
        report.add_issue(f"Duplicate timestamps: {duplicate_count}")
    if not df.index.is_monotonic_increasing:
        report.add_issue("Bars are not in ascending time order")

    # 6. Volume (informational)
    if 'volume' in df.columns:
        negative_volume = int((df['volume'] < 0).sum())
        if negative_volume > 0:
            report.add_issue(f"Negative volume: {negative_volume} rows")
        zero_volume = int((df['volume'] == 0).sum())
        if zero_volume > 0:
            report.add_issue(f"Zero volume bars: {zero_volume} rows", critical=False)

    report.add_metric('mean_range', float((df['high'] - df['low']).mean()))

    return report


def ensure_valid_batch(bars: Sequence[Bar], label: str) -> DataQualityReport:
    """
    Validate a fetched batch and raise if it is unusable.

    Raises: DirectionDataError listing the critical issues
    """
    report = validate_ohlcv_integrity(bars_to_dataframe(bars), label)
    if not report.is_valid:
        raise DirectionDataError(
            f"Fetched batch failed integrity checks: {'; '.join(report.issues)}",
            data_type='kline',
            label=label
        )
    return report
