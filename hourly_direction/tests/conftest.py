# hourly_direction/tests/conftest.py
"""
Shared fixtures: fresh configuration per test and bar factories.
"""

import pytest

from hourly_direction.config import DirectionConfig, get_config, HOUR_MS, MINUTE_MS
from hourly_direction.models import Bar

# Fixed start aligned to an hour: 2024-01-01 00:00:00 UTC
BASE_TIME = 1_704_067_200_000


@pytest.fixture(autouse=True)
def reset_config(monkeypatch):
    """Each test starts from default configuration, unaffected by the host's environment"""
    for var in ('BINANCE_REST_BASE', 'BINANCE_STREAM_BASE',
                'HOURLY_DIRECTION_CONFIDENCE_THRESHOLD',
                'HOURLY_DIRECTION_LOG_LEVEL', 'HOURLY_DIRECTION_LOG_FILE'):
        monkeypatch.delenv(var, raising=False)
    get_config(reset=True)
    yield
    # Restore the environment first so the reset never sees a test's values
    monkeypatch.undo()
    get_config(reset=True)


@pytest.fixture
def config():
    return DirectionConfig({'max_retries': 1})


def make_hourly_bars(directions, start=BASE_TIME, base=100.0, rng=1.0):
    """
    Hourly bars from a list of +1 / -1 directions.

    Every bar opens at ``base`` and spans exactly ``rng`` from low to high.
    """
    bars = []
    for i, direction in enumerate(directions):
        close = base + 0.5 * rng if direction > 0 else base - 0.5 * rng
        bars.append(Bar(
            open_time=start + i * HOUR_MS,
            open=base,
            high=base + 0.5 * rng,
            low=base - 0.5 * rng,
            close=close,
            volume=10.0,
            close_time=start + (i + 1) * HOUR_MS - 1,
        ))
    return bars


def make_minute_bar(close, index=0, start=BASE_TIME, is_final=True):
    return Bar(
        open_time=start + index * MINUTE_MS,
        open=close,
        high=close,
        low=close,
        close=close,
        volume=1.0,
        close_time=start + (index + 1) * MINUTE_MS - 1,
        is_final=is_final,
    )


@pytest.fixture
def hourly_factory():
    return make_hourly_bars


@pytest.fixture
def minute_factory():
    return make_minute_bar


@pytest.fixture
def up_hours():
    """Ten consecutive up hours, each with a high-low range of 1"""
    return make_hourly_bars([1] * 10)
