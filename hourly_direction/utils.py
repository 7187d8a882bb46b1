# hourly_direction/utils.py - Utility functions for the direction package
"""
Numeric helpers, input normalisation and conversion functions
used throughout the hourly_direction package.
"""

import math
import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from .config import get_config, MARKET_TIMEZONE, MINUTE_MS, HOUR_MS
from .exceptions import DirectionDataError, DirectionSymbolError
from .models import Bar


# --- numeric helpers ---

def clamp(low: float, high: float, x: float) -> float:
    """Bound x into [low, high]"""
    return max(low, min(high, x))


def sigmoid(x: float) -> float:
    """Logistic function, evaluated without overflow for large |x|"""
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    ex = math.exp(x)
    return ex / (1.0 + ex)


def logit(p: float, eps: float = 1e-6) -> float:
    """Log-odds of p, with p pre-clamped into [eps, 1 - eps]"""
    p = clamp(eps, 1.0 - eps, p)
    return math.log(p / (1.0 - p))


def ensure_finite(value: float, field: str) -> float:
    """
    [FUNCTION SUMMARY]
    Purpose: Coerce a price to float and reject NaN / infinity
    Parameters:
        - value: Incoming price
        - field (str): Name used in the error
    Returns: float - The validated value
    Raises: DirectionDataError if value is not a finite number
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise DirectionDataError(f"{field} must be numeric", field=field, value=value)

    if not math.isfinite(number):
        raise DirectionDataError(f"{field} must be finite", field=field, value=value)

    return number


# --- symbol / interval handling ---

def validate_symbol(symbol: str) -> str:
    """
    [FUNCTION SUMMARY]
    Purpose: Validate and normalize a trading pair symbol
    Parameters:
        - symbol (str): Pair symbol such as 'btcusdt'
    Returns: str - Normalized uppercase symbol
    Example: validate_symbol(' ethusdt ') -> 'ETHUSDT'
    Raises: DirectionSymbolError if symbol is invalid
    """
    if not isinstance(symbol, str):
        raise DirectionSymbolError(str(symbol), "Symbol must be a string")

    symbol = symbol.strip().upper()

    if not symbol:
        raise DirectionSymbolError(symbol, "Symbol cannot be empty")

    # Exchange pairs are letters and digits only: BTCUSDT, 1INCHUSDT
    if not re.match(r'^[A-Z0-9]{2,20}$', symbol):
        raise DirectionSymbolError(
            symbol,
            f"Invalid symbol format: {symbol}",
            valid_pattern='Letters and digits only'
        )

    return symbol


def validate_interval(interval: str) -> str:
    """Check a kline interval against the exchange's supported list"""
    config = get_config()
    if interval not in config.valid_intervals:
        raise DirectionDataError(
            f"Invalid kline interval: {interval}",
            field='interval',
            value=interval,
            valid_intervals=config.valid_intervals
        )
    return interval


# --- time handling ---

def timestamp_to_datetime(timestamp: Union[int, float], unit: str = 'ms') -> datetime:
    """
    [FUNCTION SUMMARY]
    Purpose: Convert Unix timestamp to UTC datetime
    Parameters:
        - timestamp: Unix timestamp
        - unit (str): Timestamp unit ('s', 'ms')
    Returns: datetime - UTC datetime object
    Example: timestamp_to_datetime(1640995200000) -> datetime(2022, 1, 1, 0, 0, 0, tzinfo=UTC)
    """
    unit_multipliers = {
        's': 1,
        'ms': 1000,
    }

    if unit not in unit_multipliers:
        raise DirectionDataError(f"Invalid timestamp unit: {unit}", field='unit', value=unit)

    try:
        return datetime.fromtimestamp(timestamp / unit_multipliers[unit], tz=MARKET_TIMEZONE)
    except (ValueError, OSError, OverflowError) as e:
        raise DirectionDataError(
            f"Invalid timestamp: {timestamp}",
            field='timestamp',
            value=timestamp,
            error=str(e)
        )


def datetime_to_timestamp(dt: datetime) -> int:
    """Convert a datetime to UTC epoch milliseconds; naive values are taken as UTC"""
    if dt.tzinfo is None:
        dt = MARKET_TIMEZONE.localize(dt)
    else:
        dt = dt.astimezone(MARKET_TIMEZONE)
    return int(dt.timestamp() * 1000)


def minute_close_time(bar: Bar) -> int:
    """Close time of a one-minute bar in epoch milliseconds"""
    return bar.open_time + MINUTE_MS


def is_hour_boundary(bar: Bar) -> bool:
    """
    True when a closed one-minute bar completes an hour.

    Decided from the bar itself (finality flag plus its own timestamp),
    never from the wall clock.
    """
    return bar.is_final and minute_close_time(bar) % HOUR_MS == 0


def current_hour_start(bar: Bar) -> int:
    """Open time of the hour in progress once this minute has closed"""
    return minute_close_time(bar) // HOUR_MS * HOUR_MS


# --- display precision ---

def precision_from_tick_size(tick_size: Optional[str], default: int = 2) -> int:
    """
    [FUNCTION SUMMARY]
    Purpose: Derive display decimals from an exchange tick size string
    Parameters:
        - tick_size (str): e.g. '0.01000000'
        - default (int): Returned when tick_size is missing or unparseable
    Returns: int - Number of significant decimal places
    Example: precision_from_tick_size('0.01000000') -> 2
    """
    if not tick_size or not isinstance(tick_size, str):
        return default

    tick_size = tick_size.strip()
    if not re.match(r'^\d+(\.\d+)?$', tick_size):
        return default

    if '.' not in tick_size:
        return 0

    decimals = tick_size.split('.', 1)[1].rstrip('0')
    return len(decimals)


# --- tabular conversion ---

def bars_to_dataframe(bars: Iterable[Bar]) -> pd.DataFrame:
    """
    [FUNCTION SUMMARY]
    Purpose: Normalize bars into an OHLCV DataFrame indexed by UTC open time
    Parameters:
        - bars (iterable of Bar): Bars in delivery order
    Returns: DataFrame - columns open/high/low/close/volume/close_time/is_final
    Note: Delivery order is preserved (no sorting or de-duplication) so that
          ordering problems stay visible to the validators
    """
    columns = ['open', 'high', 'low', 'close', 'volume', 'close_time', 'is_final']
    rows: List[dict] = [bar.to_dict() for bar in bars]

    if not rows:
        empty = pd.DataFrame(columns=columns)
        empty.index = pd.DatetimeIndex([], tz='UTC', name='datetime')
        return empty

    df = pd.DataFrame(rows)
    df['datetime'] = pd.to_datetime(df['open_time'], unit='ms', utc=True)
    df = df.set_index('datetime').drop(columns=['open_time'])

    for col in ['open', 'high', 'low', 'close', 'volume']:
        df[col] = pd.to_numeric(df[col], errors='coerce')

    return df[columns]
