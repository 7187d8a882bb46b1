# hourly_direction/tracker.py - Live driver wiring market data into the model
"""
Streaming driver for one symbol.

The tracker seeds an HourlyModel from REST history, consumes the kline
subscription queue, and emits a TrackerUpdate for every processed bar.
Hourly statistics are refreshed when a closed minute completes an hour.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import (
    DirectionConfig, get_config, DEFAULT_PRICE_PRECISION,
    HOURLY_INTERVAL, MINUTE_INTERVAL, MARKET_TIMEZONE
)
from .core import BinanceClient
from .exceptions import DirectionDataError, DirectionError
from .model import HourlyModel
from .models import Bar, Prediction
from .utils import (
    current_hour_start, is_hour_boundary, timestamp_to_datetime, validate_symbol
)
from .websocket import BinanceWebSocketClient, KlineSubscription


@dataclass
class TrackerUpdate:
    """One refresh of the displayed call"""
    symbol: str
    price: Optional[float]
    prediction: Prediction
    status: Dict[str, Any]
    precision: int
    is_final: bool = True
    received_at: datetime = field(default_factory=lambda: datetime.now(MARKET_TIMEZONE))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'price': self.price,
            'prediction': self.prediction.to_dict(),
            'status': dict(self.status),
            'precision': self.precision,
            'is_final': self.is_final,
            'received_at': self.received_at.isoformat(),
        }


class DirectionTracker:
    """
    [CLASS SUMMARY]
    Purpose: Keep one symbol's model current from REST history plus the kline stream
    Responsibilities:
        - Seed statistics, hour open and minute history on start
        - Push closed minutes, preview forming ones
        - Refresh hourly statistics on hour boundaries, retrying failed refreshes
        - Deliver TrackerUpdate objects to the on_update callback
    Usage:
        tracker = DirectionTracker('BTCUSDT', on_update=print)
        await tracker.start()
        await tracker.run()
    """

    def __init__(self, symbol: str, config: Optional[DirectionConfig] = None,
                 client: Optional[BinanceClient] = None,
                 ws_client: Optional[BinanceWebSocketClient] = None,
                 on_update: Optional[Callable[[TrackerUpdate], Any]] = None,
                 threshold: Optional[float] = None):
        self.config = config or get_config()
        self.logger = self.config.get_logger(__name__)

        self.symbol = validate_symbol(symbol)
        self.client = client or BinanceClient(self.config)
        self.ws_client = ws_client or BinanceWebSocketClient(self.config)
        self.on_update = on_update
        self.threshold = self.config.confidence_threshold if threshold is None else threshold

        self.model = HourlyModel(self.config, self.symbol)
        self.precision = DEFAULT_PRICE_PRECISION
        self.subscription: Optional[KlineSubscription] = None
        self.last_update: Optional[TrackerUpdate] = None
        self.update_count = 0

        self._hourly_stale = False
        self._stopped = True

    @property
    def running(self) -> bool:
        return not self._stopped

    async def _fetch_precision(self) -> int:
        try:
            return await self.client.fetch_display_precision_async(self.symbol)
        except DirectionError as e:
            self.logger.warning(
                f"{self.symbol}: display precision unavailable ({e}), "
                f"using {DEFAULT_PRICE_PRECISION} decimals"
            )
            return DEFAULT_PRICE_PRECISION

    async def start(self) -> TrackerUpdate:
        """
        [FUNCTION SUMMARY]
        Purpose: Seed the model from history and open the minute stream
        Returns: TrackerUpdate - the initial update, also delivered to on_update
        Raises: DirectionError if the history fetch fails; the current model
                is left in place and start() may be retried
        """
        precision = await self._fetch_precision()

        hourly = await self.client.fetch_klines_async(
            self.symbol, HOURLY_INTERVAL, self.config.hourly_fetch_limit
        )
        minutes = await self.client.fetch_klines_async(
            self.symbol, MINUTE_INTERVAL, self.config.minute_backfill
        )

        closed_hours, current_hour = self._split_forming(hourly)
        closed_minutes, _ = self._split_forming(minutes)

        model = HourlyModel(self.config, self.symbol)
        model.load_hourly(closed_hours)
        if current_hour is not None:
            model.set_hour_open(current_hour.open)
        for bar in closed_minutes:
            model.push_minute(bar.close, bar.open_time)

        self.model = model
        self.precision = precision
        self._hourly_stale = False
        self.logger.info(
            f"{self.symbol}: seeded with {len(closed_hours)} closed hours and {len(closed_minutes)} closed minutes"
        )

        price = self._latest_price(minutes, hourly)
        update = await self._emit(price, self.model.predict(self.threshold))

        self.subscription = await self.ws_client.subscribe(self.symbol, MINUTE_INTERVAL)
        self._stopped = False
        return update

    @staticmethod
    def _split_forming(bars: List[Bar]) -> Tuple[List[Bar], Optional[Bar]]:
        """Closed bars and the still-open one; REST klines always end with the open bar"""
        if not bars:
            return [], None
        return bars[:-1], bars[-1]

    @staticmethod
    def _latest_price(minutes: List[Bar], hourly: List[Bar]) -> Optional[float]:
        if minutes:
            return minutes[-1].close
        if hourly:
            return hourly[-1].close
        return None

    async def run(self):
        """Consume the subscription until it stops"""
        if self.subscription is None:
            raise RuntimeError("start() must complete before run()")

        async for bar in self.subscription:
            try:
                await self.process_bar(bar)
            except DirectionDataError as e:
                opened = timestamp_to_datetime(bar.open_time)
                self.logger.warning(f"{self.symbol}: skipping bar at {opened:%Y-%m-%d %H:%M}: {e}")

    async def process_bar(self, bar: Bar) -> TrackerUpdate:
        """
        [FUNCTION SUMMARY]
        Purpose: Apply one stream bar and emit the resulting update
        Parameters:
            - bar (Bar): Minute bar from the stream
        Returns: TrackerUpdate
        Raises: DirectionDataError for out-of-order or non-finite bars
        """
        if bar.is_final or self.config.push_partial_minutes:
            self.model.push_minute(bar.close, bar.open_time)
            prediction = self.model.predict(self.threshold)
        else:
            prediction = self.model.preview(bar.close, self.threshold)

        update = await self._emit(bar.close, prediction, bar.is_final)

        if bar.is_final and (is_hour_boundary(bar) or self._hourly_stale):
            await self.refresh_hourly(current_hour_start(bar))

        return update

    async def refresh_hourly(self, hour_start: Optional[int] = None) -> bool:
        """
        Reload hourly statistics from closed hours and the hour open from the open one

        Parameters:
            - hour_start (int): Expected open time of the current hour; a batch
              whose last bar belongs to another hour is rejected
        Returns: False when the reload failed; the next closed minute retries
        """
        try:
            bars = await self.client.fetch_klines_async(
                self.symbol, HOURLY_INTERVAL, self.config.hourly_refresh_limit
            )
            closed_hours, current_hour = self._split_forming(bars)
            if current_hour is None:
                raise DirectionDataError("No hourly bars returned", data_type='hourly')
            if hour_start is not None and current_hour.open_time != hour_start:
                raise DirectionDataError(
                    f"Latest hourly bar opens at {timestamp_to_datetime(current_hour.open_time):%H:%M}, "
                    f"expected {timestamp_to_datetime(hour_start):%H:%M}",
                    data_type='hourly'
                )
            self.model.load_hourly(closed_hours)
            self.model.set_hour_open(current_hour.open)
        except DirectionError as e:
            self._hourly_stale = True
            self.logger.error(f"{self.symbol}: hourly refresh failed, will retry: {e}")
            return False

        self._hourly_stale = False
        self.logger.info(f"{self.symbol}: hourly statistics refreshed, hour open {self.model.hour_open}")
        return True

    async def _emit(self, price: Optional[float], prediction: Prediction,
                    is_final: bool = True) -> TrackerUpdate:
        update = TrackerUpdate(
            symbol=self.symbol,
            price=price,
            prediction=prediction,
            status=self.model.status(),
            precision=self.precision,
            is_final=is_final,
        )
        self.last_update = update
        self.update_count += 1

        if self.on_update is not None:
            try:
                if asyncio.iscoroutinefunction(self.on_update):
                    await self.on_update(update)
                else:
                    self.on_update(update)
            except Exception as e:
                self.logger.error(f"Update callback error for {self.symbol}: {e}")

        return update

    async def stop(self):
        """Close the stream; safe to call repeatedly"""
        if self.subscription is not None:
            await self.subscription.stop()
        if not self._stopped:
            self.logger.info(f"{self.symbol}: tracker stopped")
        self._stopped = True

    async def switch_symbol(self, symbol: str) -> TrackerUpdate:
        """Stop the current stream, start over on another symbol with a fresh model"""
        symbol = validate_symbol(symbol)
        await self.stop()

        self.symbol = symbol
        self.model = HourlyModel(self.config, symbol)
        self.precision = DEFAULT_PRICE_PRECISION
        self.subscription = None
        self.last_update = None
        return await self.start()

    async def close(self):
        await self.stop()
        await self.ws_client.close_all()
        await self.client.close_async()

    def get_status(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'running': self.running,
            'precision': self.precision,
            'hourly_stale': self._hourly_stale,
            'update_count': self.update_count,
            'model': self.model.status(),
            'stream': self.subscription.get_status() if self.subscription else None,
        }
