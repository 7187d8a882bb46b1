# hourly_direction/features.py
"""
Intra-hour feature extraction from the minute close history.

Three features feed the fusion step:
    - displacement of the latest close from the hour open, in units of the
      hourly volatility scale (z)
    - least-squares slope of the most recent closes, in units of the implied
      per-minute volatility (slope_z)
    - a 14-period relative strength index over minute closes
"""

from typing import Optional, Sequence

import numpy as np

from .config import DirectionConfig, get_config
from .models import FeatureSet


def linreg_slope(values: Sequence[float], floor: float = 1e-9) -> float:
    """
    Ordinary least-squares slope of values against their index 0..N-1.

    slope = sum((x - x_mean) * y) / max(floor, sum((x - x_mean)^2))
    """
    y = np.asarray(values, dtype=float)
    if y.size == 0:
        return 0.0
    dx = np.arange(y.size, dtype=float) - (y.size - 1) / 2.0
    return float(np.dot(dx, y) / max(floor, float(np.dot(dx, dx))))


def relative_strength_index(closes: Sequence[float], period: int = 14,
                            floor: float = 1e-9) -> float:
    """
    [FUNCTION SUMMARY]
    Purpose: Simple (non-smoothed) RSI over the last ``period`` differences
    Parameters:
        - closes (sequence of float): Closes oldest-to-newest
        - period (int): Number of differences to sum
        - floor (float): Losses at or below this count as no losses
    Returns: float - RSI in [0, 100]; 50 when fewer than period + 1 closes
    Example: relative_strength_index(range(20)) -> 100.0
    """
    if len(closes) < period + 1:
        return 50.0

    window = np.asarray(closes[-(period + 1):], dtype=float)
    diffs = np.diff(window)
    gains = float(diffs[diffs >= 0].sum())
    losses = float(-diffs[diffs < 0].sum())

    if losses > floor:
        rs = gains / losses
    elif gains > floor:
        # Only gains in the window
        return 100.0
    else:
        rs = 1.0

    return 100.0 - 100.0 / (1.0 + rs)


def volatility_scale(atr: float, hour_open: float,
                     config: Optional[DirectionConfig] = None) -> float:
    """ATR when usable, else a synthetic scale proportional to the hour open"""
    config = config or get_config()
    if atr and atr > 0:
        return atr
    return max(config.scale_floor, abs(hour_open) * config.fallback_scale_fraction)


def extract_features(minutes: Sequence[float], hour_open: float, atr: float,
                     config: Optional[DirectionConfig] = None) -> FeatureSet:
    """
    [FUNCTION SUMMARY]
    Purpose: Compute displacement, momentum and oscillator features
    Parameters:
        - minutes (sequence of float): Minute closes, at least 3
        - hour_open (float): Opening price of the current hour
        - atr (float): Hourly mean range; 0 triggers the fallback scale
        - config (DirectionConfig, optional): Windows and floors
    Returns: FeatureSet
    """
    config = config or get_config()
    floor = config.denominator_floor
    closes = list(minutes)

    latest = closes[-1]
    scale = volatility_scale(atr, hour_open, config)

    delta = latest - hour_open
    z = delta / max(floor, scale)

    n = min(config.slope_window, len(closes))
    slope = linreg_slope(closes[-n:], floor)
    slope_z = slope / max(floor, scale / 60.0)

    rsi = relative_strength_index(closes, config.rsi_period, floor)

    return FeatureSet(
        latest=latest,
        delta=delta,
        scale=scale,
        z=z,
        slope=slope,
        slope_z=slope_z,
        rsi=rsi,
    )
