# hourly_direction/__init__.py - Public API for the hourly direction model
"""
Hourly Direction Model

Estimates whether the current one-hour candle of a trading pair will close
above or below its open. A Markov prior over past hourly closes is fused with
intra-hour minute evidence in log-odds space; a call is issued only when the
confidence clears a threshold, otherwise the model abstains ("NO CALL").

Basic Usage:
    from hourly_direction import HourlyModel

    model = HourlyModel()
    model.load_hourly(hourly_bars)
    model.set_hour_open(hourly_bars[-1].open)
    for close in minute_closes:
        model.push_minute(close)
    result = model.predict(0.62)

Live Usage:
    from hourly_direction import DirectionTracker

    tracker = DirectionTracker('BTCUSDT', on_update=print)
    await tracker.start()
    await tracker.run()
"""

__version__ = '1.0.0'

from typing import Iterable, Optional

from .config import get_config, DirectionConfig
from .exceptions import (
    DirectionError,
    DirectionAPIError,
    DirectionRateLimitError,
    DirectionNetworkError,
    DirectionDataError,
    DirectionSymbolError,
    DirectionConfigurationError,
    DirectionWebSocketError,
)
from .models import Bar, Decision, FeatureSet, HourlyStatistics, Prediction
from .model import HourlyModel, ModelState, new_state, predict_state
from .evidence import EvidenceRule, EvidenceSource, DEFAULT_SOURCES, apply_evidence
from .core import BinanceClient, BinanceSession
from .websocket import BinanceWebSocketClient, KlineSubscription, parse_kline_message
from .tracker import DirectionTracker, TrackerUpdate
from .formatter import format_prediction, format_price, format_status


def create_model(symbol: Optional[str] = None, **overrides) -> HourlyModel:
    """
    Build a model, optionally with configuration overrides.

    Example:
        model = create_model('ETHUSDT', minute_capacity=300)
    """
    config = DirectionConfig(overrides) if overrides else get_config()
    return HourlyModel(config, symbol)


def predict_from_bars(hourly_bars: Iterable[Bar], minute_closes: Iterable[float],
                      confidence_threshold: Optional[float] = None) -> Prediction:
    """
    One-shot prediction from an hourly history and the current hour's minute closes.

    ``hourly_bars`` is laid out as REST returns it: closed hours followed by
    the hour in progress. Statistics come from the closed hours; the hour
    open is taken from the last bar.

    Example:
        result = predict_from_bars(client.fetch_klines('BTCUSDT', '1h', 720), closes)
    """
    hourly_bars = list(hourly_bars)
    model = HourlyModel()
    model.load_hourly(hourly_bars[:-1])
    if hourly_bars:
        model.set_hour_open(hourly_bars[-1].open)
    for close in minute_closes:
        model.push_minute(close)
    return model.predict(confidence_threshold)


__all__ = [
    # Config
    'get_config', 'DirectionConfig',
    # Exceptions
    'DirectionError', 'DirectionAPIError', 'DirectionRateLimitError',
    'DirectionNetworkError', 'DirectionDataError', 'DirectionSymbolError',
    'DirectionConfigurationError', 'DirectionWebSocketError',
    # Models
    'Bar', 'Decision', 'FeatureSet', 'HourlyStatistics', 'Prediction',
    # Model
    'HourlyModel', 'ModelState', 'new_state', 'predict_state',
    'EvidenceRule', 'EvidenceSource', 'DEFAULT_SOURCES', 'apply_evidence',
    # Market data
    'BinanceClient', 'BinanceSession',
    'BinanceWebSocketClient', 'KlineSubscription', 'parse_kline_message',
    'DirectionTracker', 'TrackerUpdate',
    # Display
    'format_prediction', 'format_price', 'format_status',
    # Helpers
    'create_model', 'predict_from_bars',
]
