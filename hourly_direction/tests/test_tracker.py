# hourly_direction/tests/test_tracker.py
"""
Module: Direction Tracker Tests
Purpose: Seeding, minute processing, hour-boundary refresh and failure handling
Features: REST and stream collaborators replaced with AsyncMock
"""

from collections import deque
from unittest.mock import AsyncMock, Mock

import pytest

from hourly_direction.config import DirectionConfig, HOUR_MS
from hourly_direction.core import BinanceClient
from hourly_direction.exceptions import DirectionAPIError, DirectionDataError
from hourly_direction.models import Bar, Decision
from hourly_direction.tracker import DirectionTracker, TrackerUpdate
from hourly_direction.utils import is_hour_boundary
from hourly_direction.websocket import BinanceWebSocketClient, KlineSubscription

from .conftest import BASE_TIME, make_hourly_bars, make_minute_bar

# Ten closed hours precede the hour in progress
HOUR_START = BASE_TIME + 10 * HOUR_MS


def forming_hour(open_time, price):
    """Hourly kline that has only just opened"""
    return Bar(open_time=open_time, open=price, high=price, low=price, close=price,
               volume=0.1, close_time=open_time + HOUR_MS - 1, is_final=False)


class FakeSubscription:
    """Deque-backed stand-in for a KlineSubscription"""

    def __init__(self, bars=()):
        self.bars = deque(bars)
        self.stop_calls = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.bars:
            raise StopAsyncIteration
        return self.bars.popleft()

    async def stop(self):
        self.stop_calls += 1

    def get_status(self):
        return {'stop_calls': self.stop_calls}


@pytest.fixture
def hourly():
    """Ten closed up hours followed by the current hour opening at 100"""
    return make_hourly_bars([1] * 10, start=BASE_TIME) + [forming_hour(HOUR_START, 100.0)]


@pytest.fixture
def next_hour():
    """History as served once the current hour has closed"""
    return make_hourly_bars([1] * 11, start=BASE_TIME) + [forming_hour(HOUR_START + HOUR_MS, 101.0)]


@pytest.fixture
def minutes():
    """Three closed minutes and the minute still forming"""
    return ([make_minute_bar(100.3, i, start=HOUR_START) for i in range(3)]
            + [make_minute_bar(100.35, 3, start=HOUR_START, is_final=False)])


@pytest.fixture
def client(hourly, minutes):
    client = Mock(spec=BinanceClient)
    client.fetch_display_precision_async = AsyncMock(return_value=4)

    async def fetch(symbol, interval, limit, validate=True):
        return list(hourly) if interval == '1h' else list(minutes)

    client.fetch_klines_async = AsyncMock(side_effect=fetch)
    client.close_async = AsyncMock()
    return client


@pytest.fixture
def ws_client():
    ws_client = Mock(spec=BinanceWebSocketClient)
    ws_client.subscribe = AsyncMock(return_value=FakeSubscription())
    ws_client.close_all = AsyncMock()
    return ws_client


@pytest.fixture
def updates():
    return []


@pytest.fixture
def tracker(config, client, ws_client, updates):
    return DirectionTracker('btcusdt', config=config, client=client,
                            ws_client=ws_client, on_update=updates.append)


class TestStart:
    """Test seeding from history"""

    @pytest.mark.asyncio
    async def test_seeds_model_and_emits_initial_update(self, tracker, updates, ws_client):
        update = await tracker.start()

        assert isinstance(update, TrackerUpdate)
        assert updates == [update]
        assert update.symbol == 'BTCUSDT'
        assert update.precision == 4
        assert update.price == pytest.approx(100.35)
        assert update.prediction.decision == Decision.UP
        assert tracker.model.hour_open == 100.0
        assert tracker.model.minute_history == (100.3, 100.3, 100.3)
        assert tracker.running
        ws_client.subscribe.assert_awaited_once_with('BTCUSDT', '1m')

    @pytest.mark.asyncio
    async def test_open_hour_excluded_from_statistics(self, tracker, hourly):
        """Test statistics come from closed hours while the open hour only sets the hour open"""
        hourly[:] = make_hourly_bars([-1] * 10, start=BASE_TIME) + [forming_hour(HOUR_START, 100.0)]

        await tracker.start()

        assert tracker.model.last_closed_hour_dir == -1
        assert tracker.model.statistics.bar_count == 10
        assert tracker.model.hour_open == 100.0

    @pytest.mark.asyncio
    async def test_forming_minute_not_seeded(self, tracker):
        """Test the backfill's open minute is left to the stream's final bar"""
        await tracker.start()
        assert len(tracker.model.minute_history) == 3

        await tracker.process_bar(make_minute_bar(100.4, 3, start=HOUR_START))

        assert tracker.model.minute_history == (100.3, 100.3, 100.3, 100.4)

    @pytest.mark.asyncio
    async def test_fetch_sizes(self, tracker, client):
        await tracker.start()

        calls = [c.args for c in client.fetch_klines_async.await_args_list]
        assert calls == [('BTCUSDT', '1h', 720), ('BTCUSDT', '1m', 200)]

    @pytest.mark.asyncio
    async def test_precision_failure_defaults_to_two(self, tracker, client):
        client.fetch_display_precision_async.side_effect = DirectionAPIError("down", status_code=500)

        update = await tracker.start()

        assert update.precision == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_model_untouched(self, tracker, client, ws_client):
        """Test a failed history fetch propagates and keeps the previous model"""
        previous = tracker.model
        client.fetch_klines_async.side_effect = DirectionAPIError("down", status_code=503)

        with pytest.raises(DirectionAPIError):
            await tracker.start()

        assert tracker.model is previous
        assert not tracker.running
        ws_client.subscribe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_async_callback(self, config, client, ws_client):
        received = []

        async def on_update(update):
            received.append(update)

        tracker = DirectionTracker('BTCUSDT', config=config, client=client,
                                   ws_client=ws_client, on_update=on_update)
        await tracker.start()

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self, config, client, ws_client):
        tracker = DirectionTracker('BTCUSDT', config=config, client=client, ws_client=ws_client,
                                   on_update=Mock(side_effect=RuntimeError("render failed")))
        update = await tracker.start()
        assert tracker.last_update is update


class TestProcessBar:
    """Test per-bar handling"""

    @pytest.mark.asyncio
    async def test_final_bar_is_pushed(self, tracker):
        await tracker.start()

        update = await tracker.process_bar(make_minute_bar(100.4, 3, start=HOUR_START))

        assert tracker.model.minute_history[-1] == 100.4
        assert len(tracker.model.minute_history) == 4
        assert update.is_final

    @pytest.mark.asyncio
    async def test_forming_bar_is_previewed(self, tracker):
        """Test a non-final bar changes the prediction but not the history"""
        await tracker.start()

        update = await tracker.process_bar(
            make_minute_bar(99.0, 3, start=HOUR_START, is_final=False)
        )

        assert len(tracker.model.minute_history) == 3
        assert update.prediction.z < 0
        assert not update.is_final

    @pytest.mark.asyncio
    async def test_partial_minutes_pushed_when_configured(self, client, ws_client):
        config = DirectionConfig({'push_partial_minutes': True})
        tracker = DirectionTracker('BTCUSDT', config=config, client=client, ws_client=ws_client)
        await tracker.start()

        await tracker.process_bar(make_minute_bar(99.0, 3, start=HOUR_START, is_final=False))

        assert len(tracker.model.minute_history) == 4

    @pytest.mark.asyncio
    async def test_out_of_order_bar_raises(self, tracker):
        await tracker.start()
        with pytest.raises(DirectionDataError):
            await tracker.process_bar(make_minute_bar(100.0, 0, start=BASE_TIME))


class TestHourBoundary:
    """Test hourly refresh on the closing minute of an hour"""

    def test_boundary_detection(self):
        last_minute = make_minute_bar(100.0, 59, start=HOUR_START)
        assert is_hour_boundary(last_minute)
        assert not is_hour_boundary(make_minute_bar(100.0, 58, start=HOUR_START))
        assert not is_hour_boundary(make_minute_bar(100.0, 59, start=HOUR_START, is_final=False))

    @pytest.mark.asyncio
    async def test_refresh_on_boundary(self, tracker, client, next_hour):
        await tracker.start()

        async def fetch(symbol, interval, limit, validate=True):
            return list(next_hour)

        client.fetch_klines_async.side_effect = fetch

        await tracker.process_bar(make_minute_bar(100.8, 59, start=HOUR_START))

        client.fetch_klines_async.assert_awaited_with('BTCUSDT', '1h', 720)
        assert tracker.model.hour_open == 101.0
        assert tracker.model.statistics.bar_count == 11
        assert tracker.get_status()['hourly_stale'] is False

    @pytest.mark.asyncio
    async def test_refresh_after_down_hours_uses_closed_direction(self, tracker, client):
        """Test a just-opened hour with close equal to open does not count as an up hour"""
        await tracker.start()
        down_history = make_hourly_bars([-1] * 11, start=BASE_TIME) + [
            forming_hour(HOUR_START + HOUR_MS, 99.5)
        ]

        async def fetch(symbol, interval, limit, validate=True):
            return list(down_history)

        client.fetch_klines_async.side_effect = fetch

        await tracker.process_bar(make_minute_bar(99.5, 59, start=HOUR_START))

        assert tracker.model.last_closed_hour_dir == -1
        assert tracker.model.statistics.prior_up == pytest.approx(0.35)
        assert tracker.model.hour_open == 99.5

    @pytest.mark.asyncio
    async def test_refresh_rejects_lagging_history(self, tracker, client, hourly):
        """Test history whose open bar is still the previous hour is retried later"""
        await tracker.start()
        stats = tracker.model.statistics

        async def fetch(symbol, interval, limit, validate=True):
            return list(hourly)

        client.fetch_klines_async.side_effect = fetch

        await tracker.process_bar(make_minute_bar(100.8, 59, start=HOUR_START))

        assert tracker.model.statistics is stats
        assert tracker.model.hour_open == 100.0
        assert tracker.get_status()['hourly_stale'] is True

    @pytest.mark.asyncio
    async def test_no_refresh_mid_hour(self, tracker, client):
        await tracker.start()
        client.fetch_klines_async.reset_mock()

        await tracker.process_bar(make_minute_bar(100.4, 30, start=HOUR_START))

        client.fetch_klines_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_refresh_retried_next_minute(self, tracker, client, next_hour):
        """Test a failed refresh keeps state and is retried on the next closed minute"""
        await tracker.start()
        stats = tracker.model.statistics
        client.fetch_klines_async.side_effect = DirectionAPIError("down", status_code=503)

        await tracker.process_bar(make_minute_bar(100.8, 59, start=HOUR_START))

        assert tracker.model.statistics is stats
        assert tracker.get_status()['hourly_stale'] is True

        async def fetch(symbol, interval, limit, validate=True):
            return list(next_hour)

        client.fetch_klines_async.side_effect = fetch
        await tracker.process_bar(make_minute_bar(100.9, 60, start=HOUR_START))

        assert tracker.get_status()['hourly_stale'] is False
        assert tracker.model.hour_open == 101.0
        assert client.fetch_klines_async.await_count == 4


class TestRunAndStop:
    """Test the consumer loop and shutdown"""

    @pytest.mark.asyncio
    async def test_run_consumes_queue(self, tracker, ws_client, updates):
        ws_client.subscribe.return_value = FakeSubscription([
            make_minute_bar(100.4, 3, start=HOUR_START),
            make_minute_bar(100.5, 4, start=HOUR_START, is_final=False),
            make_minute_bar(100.6, 4, start=HOUR_START),
        ])
        await tracker.start()

        await tracker.run()

        assert len(updates) == 4
        assert tracker.model.minute_history[-2:] == (100.4, 100.6)

    @pytest.mark.asyncio
    async def test_run_skips_bad_bar(self, tracker, ws_client, updates):
        ws_client.subscribe.return_value = FakeSubscription([
            make_minute_bar(100.4, 3, start=HOUR_START),
            make_minute_bar(100.0, 0, start=BASE_TIME),
            make_minute_bar(100.6, 4, start=HOUR_START),
        ])
        await tracker.start()

        await tracker.run()

        assert tracker.model.minute_history[-2:] == (100.4, 100.6)

    @pytest.mark.asyncio
    async def test_run_requires_start(self, tracker):
        with pytest.raises(RuntimeError):
            await tracker.run()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, tracker):
        await tracker.start()
        subscription = tracker.subscription

        await tracker.stop()
        await tracker.stop()

        assert not tracker.running
        assert subscription.stop_calls == 2

    @pytest.mark.asyncio
    async def test_switch_symbol_recreates_model(self, tracker, ws_client):
        await tracker.start()
        old_model = tracker.model
        old_subscription = tracker.subscription
        ws_client.subscribe.return_value = FakeSubscription()

        await tracker.switch_symbol('ethusdt')

        assert tracker.symbol == 'ETHUSDT'
        assert tracker.model is not old_model
        assert old_subscription.stop_calls == 1
        ws_client.subscribe.assert_awaited_with('ETHUSDT', '1m')

    @pytest.mark.asyncio
    async def test_close_releases_clients(self, tracker, client, ws_client):
        await tracker.start()
        await tracker.close()

        ws_client.close_all.assert_awaited_once()
        client.close_async.assert_awaited_once()


def test_kline_subscription_satisfies_tracker_protocol():
    """The fake mirrors the real subscription's consumer surface"""
    for name in ('__aiter__', '__anext__', 'stop', 'get_status'):
        assert hasattr(KlineSubscription, name)
