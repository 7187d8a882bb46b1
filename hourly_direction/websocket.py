# hourly_direction/websocket.py
import asyncio
import json
from datetime import datetime
from typing import Dict, Optional, Set, Union

import websockets

from .config import get_config
from .exceptions import DirectionDataError, DirectionWebSocketError
from .models import Bar
from .utils import validate_interval, validate_symbol

_STOP = object()


def parse_kline_message(message: Union[str, bytes]) -> Optional[Bar]:
    """
    Parse one stream frame into a Bar.

    Args:
        message: Raw frame text

    Returns:
        Bar for kline events, None for other frames (subscription acks etc.)

    Raises:
        DirectionDataError: frame is not JSON or the kline payload is malformed
    """
    try:
        data = json.loads(message)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        raise DirectionDataError(f"Unparseable frame: {e}", data_type='kline_event')

    # Combined streams wrap the event as {"stream": ..., "data": {...}}
    if isinstance(data, dict) and 'data' in data and 'stream' in data:
        data = data['data']

    if not isinstance(data, dict) or 'k' not in data:
        return None

    return Bar.from_stream(data['k'])


class KlineSubscription:
    """
    One kline stream delivered through an asyncio queue

    A background task owns the connection, parses frames and enqueues bars
    in arrival order. Consumers ``await get()`` or ``async for`` over the
    subscription; iteration ends once the subscription stops.
    """

    def __init__(self, url: str, symbol: str, interval: str, config=None):
        self.config = config or get_config()
        self.logger = self.config.get_logger(__name__)

        self.url = url
        self.symbol = symbol
        self.interval = interval

        self.queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.queue_maxsize)
        self.connection = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self.error: Optional[DirectionWebSocketError] = None

        # Reconnection settings
        self.reconnect_attempts = 0
        self.max_reconnect_attempts = self.config.max_reconnect_attempts
        self.reconnect_delay = self.config.reconnect_delay
        self.max_reconnect_delay = self.config.max_reconnect_delay

        # Performance tracking
        self.message_count = 0
        self.dropped_count = 0
        self.last_message_time: Optional[datetime] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> 'KlineSubscription':
        """Launch the connection task; must be called inside a running loop"""
        if self._task is None and not self._stopped:
            self._task = asyncio.create_task(self._run())
        return self

    async def _connect(self):
        self.logger.info(f"Connecting to kline stream: {self.url}")
        self.connection = await websockets.connect(
            self.url,
            ping_interval=20,
            ping_timeout=10,
            close_timeout=10
        )
        self.reconnect_attempts = 0
        self.logger.info(f"Subscribed to {self.symbol} {self.interval} klines")

    async def _run(self):
        """Receive loop with reconnection"""
        while not self._stopped:
            try:
                await self._connect()
                async for message in self.connection:
                    self._handle_message(message)

            except websockets.exceptions.ConnectionClosedError as e:
                self.logger.warning(f"Kline stream closed: {e}")

            except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as e:
                self.logger.error(f"Kline stream error: {e}")

            if self._stopped:
                break
            if not await self._backoff():
                break

        if not self._stopped:
            self.error = DirectionWebSocketError(
                "Reconnect attempts exhausted",
                connection_state="disconnected",
                subscription=f"{self.symbol}@kline_{self.interval}"
            )
            self.logger.error(str(self.error))
            self._stopped = True
            self._put_stop()

    async def _backoff(self) -> bool:
        """Sleep before the next reconnect; False once attempts are exhausted"""
        if self.reconnect_attempts >= self.max_reconnect_attempts:
            return False

        self.reconnect_attempts += 1
        delay = min(
            self.reconnect_delay * (2 ** (self.reconnect_attempts - 1)),
            self.max_reconnect_delay
        )
        self.logger.info(f"Reconnecting in {delay} seconds (attempt {self.reconnect_attempts})")
        await asyncio.sleep(delay)
        return True

    def _handle_message(self, message: Union[str, bytes]) -> Optional[Bar]:
        """
        Parse and enqueue one frame

        A malformed frame is logged and dropped; the stream carries on.
        """
        self.message_count += 1
        self.last_message_time = datetime.now()

        try:
            bar = parse_kline_message(message)
        except DirectionDataError as e:
            self.dropped_count += 1
            self.logger.warning(f"Dropping malformed frame on {self.symbol}: {e}")
            return None

        if bar is None:
            return None

        self._enqueue(bar)
        return bar

    def _enqueue(self, item) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.logger.warning(f"{self.symbol} queue full, oldest bar discarded")
        self.queue.put_nowait(item)

    def _put_stop(self) -> None:
        self._enqueue(_STOP)

    async def get(self) -> Optional[Bar]:
        """Next bar in arrival order, or None once the subscription has stopped"""
        if self._stopped and self.queue.empty():
            return None
        item = await self.queue.get()
        if item is _STOP:
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Bar:
        bar = await self.get()
        if bar is None:
            raise StopAsyncIteration
        return bar

    async def stop(self):
        """Stop receiving; safe to call any number of times"""
        if self._stopped:
            return
        self._stopped = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self.connection is not None:
            try:
                await self.connection.close()
            except websockets.exceptions.WebSocketException as e:
                self.logger.debug(f"Error closing connection: {e}")

        self._put_stop()
        self.logger.info(f"Kline stream for {self.symbol} stopped")

    def get_status(self) -> Dict:
        return {
            'symbol': self.symbol,
            'interval': self.interval,
            'stopped': self._stopped,
            'message_count': self.message_count,
            'dropped_count': self.dropped_count,
            'queued': self.queue.qsize(),
            'last_message_time': self.last_message_time.isoformat() if self.last_message_time else None,
            'reconnect_attempts': self.reconnect_attempts,
        }


class BinanceWebSocketClient:
    """
    Factory for kline subscriptions on the public stream endpoint
    """

    def __init__(self, config=None):
        self.config = config or get_config()
        self.logger = self.config.get_logger(__name__)
        self.subscriptions: Set[KlineSubscription] = set()

    def stream_url(self, symbol: str, interval: str) -> str:
        return f"{self.config.stream_base}/ws/{symbol.lower()}@kline_{interval}"

    async def subscribe(self, symbol: str, interval: str = '1m') -> KlineSubscription:
        """
        Open a kline stream for one symbol

        Args:
            symbol: Pair symbol, e.g. 'BTCUSDT'
            interval: Kline interval

        Returns:
            KlineSubscription: started subscription; call ``stop()`` to end it
        """
        symbol = validate_symbol(symbol)
        interval = validate_interval(interval)

        subscription = KlineSubscription(
            self.stream_url(symbol, interval), symbol, interval, self.config
        )
        subscription.start()
        self.subscriptions.add(subscription)
        return subscription

    async def close_all(self):
        for subscription in list(self.subscriptions):
            await subscription.stop()
        self.subscriptions.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_all()
