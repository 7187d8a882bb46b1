# hourly_direction/core.py - REST client for public Binance market data
"""
Core API client module for the market-data collaborator.
Handles HTTP sessions, request execution, response parsing and kline conversion.
"""

import asyncio
import json
import time
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urljoin

import aiohttp
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import DirectionConfig, get_config, DEFAULT_PRICE_PRECISION
from .exceptions import (
    DirectionAPIError,
    DirectionDataError,
    DirectionNetworkError,
    DirectionRateLimitError,
    DirectionSymbolError,
    get_retry_delay,
    is_retryable_error,
)
from .models import Bar
from .utils import precision_from_tick_size, validate_interval, validate_symbol
from .validators import ensure_valid_batch

USER_AGENT = 'hourly-direction/1.0'


class BinanceSession:
    """
    [CLASS SUMMARY]
    Purpose: Manage HTTP sessions for market-data requests
    Responsibilities:
        - Session lifecycle management (sync and async)
        - Request/response handling
        - Error mapping and retries
        - Per-minute request accounting
    Usage:
        session = BinanceSession()
        data = session.request('GET', '/api/v3/klines', {'symbol': 'BTCUSDT', ...})
    """

    def __init__(self, config: Optional[DirectionConfig] = None):
        self.config = config or get_config()
        self.logger = self.config.get_logger(__name__)

        # Session objects (created on demand)
        self._sync_session: Optional[requests.Session] = None
        self._async_session: Optional[aiohttp.ClientSession] = None

        self.request_timestamps: List[float] = []

    @property
    def sync_session(self) -> requests.Session:
        """
        [FUNCTION SUMMARY]
        Purpose: Get or create synchronous session with retry configuration
        Returns: requests.Session - Configured session instance
        Note: Connection-level retries only; status codes are mapped by _handle_response
        """
        if self._sync_session is None:
            self._sync_session = requests.Session()

            retry_strategy = Retry(
                total=self.config.max_retries,
                backoff_factor=0.5,
                status_forcelist=[502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False
            )

            adapter = HTTPAdapter(max_retries=retry_strategy)
            self._sync_session.mount("http://", adapter)
            self._sync_session.mount("https://", adapter)

            self._sync_session.headers.update({
                'User-Agent': USER_AGENT,
                'Accept': 'application/json',
            })

        return self._sync_session

    async def get_async_session(self) -> aiohttp.ClientSession:
        """Get or create the asynchronous session; must be called inside a running loop"""
        if self._async_session is None or self._async_session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
            self._async_session = aiohttp.ClientSession(
                timeout=timeout,
                headers={
                    'User-Agent': USER_AGENT,
                    'Accept': 'application/json',
                }
            )

        return self._async_session

    def _check_rate_limits(self) -> None:
        """
        [FUNCTION SUMMARY]
        Purpose: Refuse a request that would exceed the per-minute budget
        Raises: DirectionRateLimitError if the limit would be exceeded
        """
        current_time = time.time()

        self.request_timestamps = [
            ts for ts in self.request_timestamps
            if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.config.requests_per_minute:
            wait_time = 60 - (current_time - self.request_timestamps[0])
            raise DirectionRateLimitError(
                f"Local rate limit reached: {self.config.requests_per_minute} requests per minute",
                retry_after=max(1, int(wait_time))
            )

    def _record_request(self) -> None:
        self.request_timestamps.append(time.time())

    def _build_url(self, endpoint: str) -> str:
        if endpoint.startswith('http'):
            return endpoint
        return urljoin(self.config.rest_base, endpoint)

    def _handle_response(self, response: requests.Response, endpoint: str,
                         symbol: Optional[str] = None) -> Union[Dict[str, Any], List[Any]]:
        """
        [FUNCTION SUMMARY]
        Purpose: Parse and validate a synchronous API response
        Parameters:
            - response: Raw response object
            - endpoint (str): Endpoint for error context
            - symbol (str, optional): Requested symbol, reported on symbol errors
        Returns: Parsed JSON payload
        Raises: DirectionAPIError subclasses for non-success responses,
                DirectionDataError for bodies that are not JSON
        """
        status_code = response.status_code

        if status_code == 200:
            try:
                data = response.json()
            except (json.JSONDecodeError, ValueError):
                raise DirectionDataError(
                    f"Invalid JSON response from {endpoint}",
                    data_type='json',
                    response_text=response.text[:500]
                )
            self.logger.debug(f"Successful response from {endpoint}")
            return data

        self._handle_error_response(status_code, response.text, endpoint,
                                    response.headers.get('Retry-After'), symbol)

    def _handle_error_response(self, status_code: int, response_text: str,
                               endpoint: str, retry_after: Optional[str] = None,
                               symbol: Optional[str] = None) -> None:
        """
        [FUNCTION SUMMARY]
        Purpose: Map HTTP error responses to specific exceptions
        Parameters:
            - status_code (int): HTTP status code
            - response_text (str): Raw response body
            - endpoint (str): API endpoint for context
            - retry_after (str, optional): Retry-After header value
        Raises: DirectionAPIError subclass based on status code
        """
        try:
            error_data = json.loads(response_text)
            error_message = error_data.get('msg', f"HTTP {status_code} error")
            error_code = error_data.get('code')
        except (json.JSONDecodeError, ValueError, AttributeError):
            error_message = f"HTTP {status_code} error"
            error_code = None

        if status_code in (418, 429):
            raise DirectionRateLimitError(
                error_message,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                status_code=status_code,
                endpoint=endpoint
            )

        # -1121 is the exchange's "Invalid symbol." code
        if status_code == 400 and error_code == -1121:
            raise DirectionSymbolError(symbol or '', error_message,
                                       status_code=status_code, endpoint=endpoint)

        if 400 <= status_code < 500:
            raise DirectionAPIError(
                f"Client error: {error_message}",
                status_code=status_code,
                response_body=response_text[:500],
                endpoint=endpoint
            )

        if 500 <= status_code < 600:
            raise DirectionAPIError(
                f"Server error: {error_message}",
                status_code=status_code,
                response_body=response_text[:500],
                endpoint=endpoint
            )

        raise DirectionAPIError(
            f"Unexpected status code {status_code}: {error_message}",
            status_code=status_code,
            response_body=response_text[:500],
            endpoint=endpoint
        )

    def request(self, method: str, endpoint: str,
                params: Optional[Dict[str, Any]] = None,
                retry: bool = True) -> Union[Dict[str, Any], List[Any]]:
        """
        [FUNCTION SUMMARY]
        Purpose: Execute synchronous HTTP request with retry logic
        Parameters:
            - method (str): HTTP method
            - endpoint (str): API endpoint path
            - params (dict, optional): Query parameters
            - retry (bool): Retry retryable failures
        Returns: Parsed JSON payload
        Example: rows = session.request('GET', '/api/v3/klines', {'symbol': 'BTCUSDT', 'interval': '1h'})
        """
        self._check_rate_limits()

        url = self._build_url(endpoint)
        self.logger.debug(f"{method} {url} with params: {params}")

        attempts = self.config.max_retries if retry else 1
        last_error = None
        for attempt in range(attempts):
            try:
                self._record_request()
                response = self.sync_session.request(
                    method,
                    url,
                    params=params,
                    timeout=self.config.request_timeout
                )
                return self._handle_response(response, endpoint, (params or {}).get('symbol'))

            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = DirectionNetworkError(
                    f"Network error: {e}",
                    url=url,
                    timeout=self.config.request_timeout
                )

            except DirectionAPIError as e:
                last_error = e

            if retry and is_retryable_error(last_error) and attempt < attempts - 1:
                delay = get_retry_delay(last_error, attempt + 1)
                self.logger.warning(
                    f"Request failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.1f} seconds: {last_error}"
                )
                time.sleep(delay)
            else:
                raise last_error

        raise last_error

    async def request_async(self, method: str, endpoint: str,
                            params: Optional[Dict[str, Any]] = None,
                            retry: bool = True) -> Union[Dict[str, Any], List[Any]]:
        """
        [FUNCTION SUMMARY]
        Purpose: Execute asynchronous HTTP request with retry logic
        Returns: Parsed JSON payload
        Example: rows = await session.request_async('GET', '/api/v3/klines', params)
        """
        self._check_rate_limits()

        url = self._build_url(endpoint)
        self.logger.debug(f"{method} {url} with params: {params} (async)")

        session = await self.get_async_session()

        attempts = self.config.max_retries if retry else 1
        last_error = None
        for attempt in range(attempts):
            try:
                self._record_request()
                async with session.request(method, url, params=params) as response:
                    response_text = await response.text()
                    if response.status == 200:
                        try:
                            return json.loads(response_text)
                        except json.JSONDecodeError:
                            raise DirectionDataError(
                                f"Invalid JSON response from {endpoint}",
                                data_type='json',
                                response_text=response_text[:500]
                            )

                    self._handle_error_response(
                        response.status,
                        response_text,
                        endpoint,
                        response.headers.get('Retry-After'),
                        (params or {}).get('symbol')
                    )

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = DirectionNetworkError(
                    f"Async network error: {e}",
                    url=url
                )

            except DirectionAPIError as e:
                last_error = e

            if retry and is_retryable_error(last_error) and attempt < attempts - 1:
                delay = get_retry_delay(last_error, attempt + 1)
                self.logger.warning(
                    f"Async request failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.1f} seconds: {last_error}"
                )
                await asyncio.sleep(delay)
            else:
                raise last_error

        raise last_error

    def close(self) -> None:
        """Close the sync session; the async one must be closed with close_async"""
        if self._sync_session:
            self._sync_session.close()
            self._sync_session = None

        if self._async_session and not self._async_session.closed:
            self.logger.warning("Async session not properly closed")

    async def close_async(self) -> None:
        if self._async_session and not self._async_session.closed:
            await self._async_session.close()
        self._async_session = None

        self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close_async()


class BinanceClient:
    """
    [CLASS SUMMARY]
    Purpose: High-level client for the public endpoints the model needs
    Responsibilities:
        - Historical klines as Bar lists (sync and async)
        - Display precision lookup
        - Rejecting malformed batches instead of returning partial data
    Usage:
        client = BinanceClient()
        bars = client.fetch_klines('BTCUSDT', '1h', 720)
    """

    def __init__(self, config: Optional[DirectionConfig] = None,
                 session: Optional[BinanceSession] = None):
        self.config = config or get_config()
        self.session = session or BinanceSession(self.config)
        self.logger = self.config.get_logger(__name__)

    def _kline_params(self, symbol: str, interval: str, limit: int) -> Dict[str, Any]:
        if not 1 <= int(limit) <= 1000:
            raise DirectionDataError("Kline limit must be between 1 and 1000",
                                     field='limit', value=limit)
        return {
            'symbol': validate_symbol(symbol),
            'interval': validate_interval(interval),
            'limit': int(limit),
        }

    def _parse_klines(self, payload: Any, params: Dict[str, Any], validate: bool) -> List[Bar]:
        """
        [FUNCTION SUMMARY]
        Purpose: Convert a kline payload into bars, all or nothing
        Raises: DirectionDataError on any malformed row or failed integrity check
        """
        if not isinstance(payload, list):
            raise DirectionDataError(
                "Kline response is not a list",
                data_type='kline',
                value=str(payload)[:200]
            )

        bars = [Bar.from_kline(row) for row in payload]

        if validate:
            report = ensure_valid_batch(bars, f"{params['symbol']} {params['interval']}")
            for warning in report.warnings:
                self.logger.warning(f"{params['symbol']} {params['interval']}: {warning}")

        self.logger.debug(f"Fetched {len(bars)} {params['interval']} bars for {params['symbol']}")
        return bars

    def fetch_klines(self, symbol: str, interval: str, limit: int = 500,
                     validate: bool = True) -> List[Bar]:
        """
        [FUNCTION SUMMARY]
        Purpose: Fetch the most recent klines for a symbol
        Parameters:
            - symbol (str): Pair symbol, e.g. 'BTCUSDT'
            - interval (str): Kline interval, e.g. '1h', '1m'
            - limit (int): Number of bars (1..1000)
            - validate (bool): Run OHLCV integrity checks
        Returns: list of Bar, oldest first
        Example: bars = client.fetch_klines('BTCUSDT', '1h', 720)
        """
        params = self._kline_params(symbol, interval, limit)
        payload = self.session.request('GET', self.config.endpoints['klines'], params=params)
        return self._parse_klines(payload, params, validate)

    async def fetch_klines_async(self, symbol: str, interval: str, limit: int = 500,
                                 validate: bool = True) -> List[Bar]:
        """Async twin of fetch_klines"""
        params = self._kline_params(symbol, interval, limit)
        payload = await self.session.request_async('GET', self.config.endpoints['klines'], params=params)
        return self._parse_klines(payload, params, validate)

    def _parse_precision(self, payload: Any, symbol: str) -> int:
        symbols = payload.get('symbols') if isinstance(payload, dict) else None
        if not symbols:
            return DEFAULT_PRICE_PRECISION

        filters = symbols[0].get('filters', [])
        price_filter = next((f for f in filters if f.get('filterType') == 'PRICE_FILTER'), None)
        if price_filter is None:
            return DEFAULT_PRICE_PRECISION

        precision = precision_from_tick_size(price_filter.get('tickSize'), DEFAULT_PRICE_PRECISION)
        self.logger.debug(f"{symbol} display precision: {precision}")
        return precision

    def fetch_display_precision(self, symbol: str) -> int:
        """
        [FUNCTION SUMMARY]
        Purpose: Number of decimals to display prices with
        Parameters:
            - symbol (str): Pair symbol
        Returns: int - decimals from the PRICE_FILTER tick size, 2 when unavailable
        Raises: DirectionAPIError on a non-success response
        """
        symbol = validate_symbol(symbol)
        payload = self.session.request('GET', self.config.endpoints['exchange_info'],
                                       params={'symbol': symbol})
        return self._parse_precision(payload, symbol)

    async def fetch_display_precision_async(self, symbol: str) -> int:
        symbol = validate_symbol(symbol)
        payload = await self.session.request_async('GET', self.config.endpoints['exchange_info'],
                                                   params={'symbol': symbol})
        return self._parse_precision(payload, symbol)

    def close(self) -> None:
        self.session.close()

    async def close_async(self) -> None:
        await self.session.close_async()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
