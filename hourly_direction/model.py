# hourly_direction/model.py
"""
Online model for the direction of the current hourly candle.

The model state is an explicit ``ModelState`` value. Module-level functions
perform the state transitions (hourly reload, hour open, minute append) and
``predict_state`` is a pure read of a state. ``HourlyModel`` owns one state
per tracked symbol and serialises every operation behind a single lock.

Fusion works in log-odds: the Markov prior for the current hour is turned
into a logit, each evidence source adds a fixed adjustment, and the sum is
mapped back through the logistic function. A directional call is issued only
when the resulting confidence clears the threshold.
"""

import copy
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, Optional, Tuple

from .config import DirectionConfig, get_config
from .evidence import apply_evidence
from .features import extract_features
from .models import Bar, Decision, HourlyStatistics, Prediction
from .statistics import derive_hourly_stats
from .utils import ensure_finite, logit, sigmoid
from .validators import check_bar_order, check_minute_order

INSUFFICIENT_DATA = "insufficient data"


@dataclass
class ModelState:
    """Everything the model knows about one symbol"""
    minutes: Deque[float]
    stats: HourlyStatistics = field(default_factory=HourlyStatistics)
    hourly_bars: Tuple[Bar, ...] = ()
    hour_open: Optional[float] = None
    last_minute_time: Optional[int] = None


def new_state(config: Optional[DirectionConfig] = None) -> ModelState:
    config = config or get_config()
    return ModelState(minutes=deque(maxlen=config.minute_capacity))


# --- state transitions ---

def apply_hourly_bars(state: ModelState, bars: Iterable[Bar],
                      config: Optional[DirectionConfig] = None) -> Optional[HourlyStatistics]:
    """
    [FUNCTION SUMMARY]
    Purpose: Replace the hourly history and, given 2+ bars, its statistics
    Parameters:
        - state (ModelState): State to update
        - bars (iterable of Bar): Hourly bars oldest-to-newest
        - config (DirectionConfig, optional): Windows, bands, ordering policy
    Returns: HourlyStatistics - the new statistics, or None if they were kept
    Raises: DirectionDataError if ordering validation rejects the batch
            (state is left untouched)
    """
    config = config or get_config()
    bars = tuple(bars)

    if config.validate_ordering:
        check_bar_order(bars, 'hourly')

    stats = derive_hourly_stats(bars, config)

    state.hourly_bars = bars[-config.atr_window:]
    if stats is not None:
        state.stats = stats
    return stats


def apply_hour_open(state: ModelState, price: float) -> None:
    state.hour_open = ensure_finite(price, 'hour_open')


def apply_minute(state: ModelState, close: float, open_time: Optional[int] = None,
                 config: Optional[DirectionConfig] = None) -> None:
    """Append one minute close; the deque bound evicts the oldest when full"""
    config = config or get_config()
    close = ensure_finite(close, 'close')

    if config.validate_ordering:
        check_minute_order(state.last_minute_time, open_time)

    state.minutes.append(close)
    if open_time is not None:
        state.last_minute_time = open_time


# --- scoring ---

def _validate_threshold(threshold: float) -> float:
    if not (0.0 < threshold < 1.0):
        raise ValueError(f"Confidence threshold must lie in (0, 1), got {threshold}")
    return threshold


def has_sufficient_data(state: ModelState, config: Optional[DirectionConfig] = None) -> bool:
    config = config or get_config()
    return (
        state.hour_open is not None
        and len(state.minutes) >= config.min_minutes
        and state.stats.atr is not None
    )


def predict_state(state: ModelState, confidence_threshold: Optional[float] = None,
                  config: Optional[DirectionConfig] = None) -> Prediction:
    """
    [FUNCTION SUMMARY]
    Purpose: Fuse the prior and intra-hour evidence into a directional call
    Parameters:
        - state (ModelState): State to read (never modified)
        - confidence_threshold (float, optional): Minimum confidence for a call,
          defaults to the configured threshold
        - config (DirectionConfig, optional)
    Returns: Prediction - decision, probability, confidence, reasons, raw features
    Example: predict_state(state, 0.62).decision -> Decision.UP
    """
    config = config or get_config()
    threshold = _validate_threshold(
        config.confidence_threshold if confidence_threshold is None else confidence_threshold
    )

    if not has_sufficient_data(state, config):
        return Prediction(
            decision=Decision.NO_CALL,
            prob_up=0.5,
            confidence=0.5,
            signals=[INSUFFICIENT_DATA],
        )

    stats = state.stats
    features = extract_features(state.minutes, state.hour_open, stats.atr, config)

    # Markov prior conditioned on the last hour's direction
    prior = stats.p_up_given_up if stats.last_closed_hour_dir > 0 else stats.p_up_given_down
    value = logit(prior, config.probability_epsilon)
    reasons = [f"prior={prior:.2f}"]

    value, evidence_reasons = apply_evidence(value, features)
    reasons.extend(evidence_reasons)

    prob_up = sigmoid(value)
    confidence = max(prob_up, 1.0 - prob_up)

    if confidence >= threshold:
        decision = Decision.UP if prob_up >= 0.5 else Decision.DOWN
    else:
        decision = Decision.NO_CALL

    return Prediction(
        decision=decision,
        prob_up=prob_up,
        confidence=confidence,
        signals=reasons,
        z=features.z,
        slope_z=features.slope_z,
        rsi=features.rsi,
    )


class HourlyModel:
    """
    [CLASS SUMMARY]
    Purpose: Per-symbol owner of one ModelState
    Responsibilities:
        - Serialise reloads, minute appends and predictions behind one lock
        - Expose the derived statistics for status display
    Usage:
        model = HourlyModel()
        model.load_hourly(hourly_bars)
        model.set_hour_open(hourly_bars[-1].open)
        model.push_minute(close)
        result = model.predict(0.62)
    """

    def __init__(self, config: Optional[DirectionConfig] = None, symbol: Optional[str] = None):
        self.config = config or get_config()
        self.symbol = symbol
        self.logger = self.config.get_logger(__name__)

        self._lock = threading.RLock()
        self._state = new_state(self.config)

    # --- mutations ---

    def load_hourly(self, bars: Iterable[Bar]) -> HourlyStatistics:
        """
        Replace the hourly history; with 2+ bars also recompute statistics.

        Returns the statistics in effect after the call.
        """
        with self._lock:
            stats = apply_hourly_bars(self._state, bars, self.config)

            if stats is None:
                self.logger.debug(
                    f"{self.symbol or 'model'}: hourly reload with "
                    f"{len(self._state.hourly_bars)} bars, statistics kept"
                )
            else:
                self.logger.info(
                    f"{self.symbol or 'model'}: reloaded {stats.bar_count} hourly bars "
                    f"(prior_up={stats.prior_up:.2f}, p_up|up={stats.p_up_given_up:.2f}, "
                    f"p_up|down={stats.p_up_given_down:.2f}, atr={stats.atr:.6g}, "
                    f"last_dir={stats.last_closed_hour_dir:+d})"
                )
            return self._state.stats

    def set_hour_open(self, price: float) -> None:
        with self._lock:
            apply_hour_open(self._state, price)

    def push_minute(self, close: float, open_time: Optional[int] = None) -> None:
        with self._lock:
            apply_minute(self._state, close, open_time, self.config)

    # --- reads ---

    def predict(self, confidence_threshold: Optional[float] = None) -> Prediction:
        with self._lock:
            return predict_state(self._state, confidence_threshold, self.config)

    def preview(self, close: float, confidence_threshold: Optional[float] = None) -> Prediction:
        """Score a still-forming minute without recording it"""
        close = ensure_finite(close, 'close')
        with self._lock:
            trial = copy.copy(self._state)
            trial.minutes = deque(self._state.minutes, maxlen=self._state.minutes.maxlen)
            trial.minutes.append(close)
            return predict_state(trial, confidence_threshold, self.config)

    @property
    def statistics(self) -> HourlyStatistics:
        with self._lock:
            return self._state.stats

    @property
    def prior_up(self) -> float:
        return self.statistics.prior_up

    @property
    def p_up_given_up(self) -> float:
        return self.statistics.p_up_given_up

    @property
    def p_up_given_down(self) -> float:
        return self.statistics.p_up_given_down

    @property
    def atr(self) -> Optional[float]:
        return self.statistics.atr

    @property
    def last_closed_hour_dir(self) -> int:
        return self.statistics.last_closed_hour_dir

    @property
    def hour_open(self) -> Optional[float]:
        with self._lock:
            return self._state.hour_open

    @property
    def minute_history(self) -> Tuple[float, ...]:
        with self._lock:
            return tuple(self._state.minutes)

    @property
    def hourly_history(self) -> Tuple[Bar, ...]:
        with self._lock:
            return self._state.hourly_bars

    def status(self) -> Dict[str, Any]:
        """Snapshot of the values shown alongside a prediction"""
        with self._lock:
            stats = self._state.stats
            return {
                'symbol': self.symbol,
                'prior_up': stats.prior_up,
                'p_up_given_up': stats.p_up_given_up,
                'p_up_given_down': stats.p_up_given_down,
                'atr': stats.atr,
                'last_closed_hour_dir': stats.last_closed_hour_dir,
                'hour_open': self._state.hour_open,
                'minute_count': len(self._state.minutes),
                'hourly_count': len(self._state.hourly_bars),
            }
