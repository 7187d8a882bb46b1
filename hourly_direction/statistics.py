# hourly_direction/statistics.py
"""
Derivation of the hourly statistics: base-rate prior, first-order Markov
transition rates between up and down hours, range-based volatility scale,
and the direction of the most recent hourly bar.
"""

from typing import Optional, Sequence, Tuple

import numpy as np

from .config import DirectionConfig, get_config
from .models import Bar, HourlyStatistics
from .utils import clamp


def up_labels(bars: Sequence[Bar]) -> np.ndarray:
    """1 where the bar closed at or above its open, else 0"""
    opens = np.fromiter((b.open for b in bars), dtype=float, count=len(bars))
    closes = np.fromiter((b.close for b in bars), dtype=float, count=len(bars))
    return (closes >= opens).astype(int)


def transition_counts(labels: np.ndarray, pseudocount: float = 1) -> Tuple[float, float, float, float]:
    """
    Count consecutive label pairs (prev -> curr) with additive smoothing.

    Returns: (up->up, up->down, down->up, down->down)
    """
    prev, curr = labels[:-1], labels[1:]
    uu = pseudocount + int(np.sum((prev == 1) & (curr == 1)))
    ud = pseudocount + int(np.sum((prev == 1) & (curr == 0)))
    du = pseudocount + int(np.sum((prev == 0) & (curr == 1)))
    dd = pseudocount + int(np.sum((prev == 0) & (curr == 0)))
    return uu, ud, du, dd


def mean_range(bars: Sequence[Bar], window: int) -> float:
    """Mean high-low range over the most recent ``window`` bars"""
    recent = bars[-window:]
    ranges = np.fromiter((b.high - b.low for b in recent), dtype=float, count=len(recent))
    return float(ranges.mean()) if len(ranges) else 0.0


def derive_hourly_stats(bars: Sequence[Bar],
                        config: Optional[DirectionConfig] = None) -> Optional[HourlyStatistics]:
    """
    [FUNCTION SUMMARY]
    Purpose: Compute every hourly statistic from one bar sequence
    Parameters:
        - bars (sequence of Bar): Hourly bars oldest-to-newest
        - config (DirectionConfig, optional): Clamp bands and windows
    Returns: HourlyStatistics, or None when fewer than 2 bars are supplied
    Example: stats = derive_hourly_stats(bars); stats.p_up_given_up -> 0.6
    """
    config = config or get_config()

    if len(bars) < 2:
        return None

    labels = up_labels(bars)
    prior_low, prior_high = config.prior_clamp
    trans_low, trans_high = config.transition_clamp

    prior_up = clamp(prior_low, prior_high, float(labels.mean()))

    uu, ud, du, dd = transition_counts(labels, config.laplace_pseudocount)
    p_up_given_up = clamp(trans_low, trans_high, uu / (uu + ud))
    p_up_given_down = clamp(trans_low, trans_high, du / (du + dd))

    return HourlyStatistics(
        prior_up=prior_up,
        p_up_given_up=p_up_given_up,
        p_up_given_down=p_up_given_down,
        atr=mean_range(bars, config.atr_window),
        last_closed_hour_dir=bars[-1].direction,
        bar_count=len(bars),
    )
