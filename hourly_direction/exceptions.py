# hourly_direction/exceptions.py - Custom exceptions for the direction model
"""
Custom exception classes for the hourly direction package.
Provides specific error types for upstream feed failures, bad input and setup issues.
"""

import random
from typing import Optional, Dict, Any
from datetime import datetime, timezone


class DirectionError(Exception):
    """
    [CLASS SUMMARY]
    Purpose: Base exception class for all package errors
    Usage: Base class for inheritance, rarely raised directly
    Attributes:
        - message: Error description
        - details: Additional context dictionary
        - timestamp: When the error occurred (UTC)
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        [FUNCTION SUMMARY]
        Purpose: Initialize base exception with message and optional details
        Parameters:
            - message (str): Human-readable error description
            - details (dict, optional): Additional context about the error
        Example: DirectionError("Kline request failed", {"status_code": 500})
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        """Format error message with details if available"""
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class DirectionAPIError(DirectionError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when the market-data REST API returns a non-success response
    Common scenarios:
        - 400: Bad Request (unknown symbol, bad interval)
        - 403: Forbidden (WAF block)
        - 5xx: Exchange-side failure
    """

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: Optional[str] = None, **kwargs):
        """
        [FUNCTION SUMMARY]
        Purpose: Initialize API error with HTTP details
        Parameters:
            - message (str): Error description
            - status_code (int, optional): HTTP status code
            - response_body (str, optional): Raw API response
            - **kwargs: Additional details
        Example: DirectionAPIError("Invalid symbol", status_code=400)
        """
        details = kwargs
        if status_code:
            details['status_code'] = status_code
        if response_body:
            details['response_body'] = response_body

        super().__init__(message, details)
        self.status_code = status_code
        self.response_body = response_body


class DirectionRateLimitError(DirectionAPIError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when the request weight limit is exceeded (HTTP 429, or 418 once banned)
    Attributes:
        - retry_after: Seconds to wait before retrying
    """

    def __init__(self, message: str = "Rate limit exceeded",
                 retry_after: Optional[int] = None,
                 status_code: int = 429, **kwargs):
        details = kwargs
        if retry_after:
            details['retry_after'] = retry_after

        super().__init__(message, status_code=status_code, **details)
        self.retry_after = retry_after


class DirectionNetworkError(DirectionError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when network connectivity issues occur
    Common scenarios:
        - Connection timeout
        - DNS resolution failure
        - SSL certificate errors
    """

    def __init__(self, message: str, url: Optional[str] = None,
                 timeout: Optional[int] = None, **kwargs):
        details = kwargs
        if url:
            details['url'] = url
        if timeout:
            details['timeout'] = timeout

        super().__init__(message, details)
        self.url = url
        self.timeout = timeout


class DirectionDataError(DirectionError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when input data is malformed or violates the model's contract
    Common scenarios:
        - Kline rows with missing or non-numeric fields
        - Non-finite prices handed to the model
        - Bars delivered out of time order
        - A fetched batch failing OHLCV integrity checks
    """

    def __init__(self, message: str, data_type: Optional[str] = None,
                 field: Optional[str] = None, value: Any = None, **kwargs):
        """
        [FUNCTION SUMMARY]
        Purpose: Initialize data error with validation details
        Parameters:
            - message (str): Error description
            - data_type (str, optional): Type of data (e.g., 'kline', 'minute')
            - field (str, optional): Field that failed validation
            - value (Any, optional): The invalid value
        Example: DirectionDataError("Non-finite price", field="close", value=float('nan'))
        """
        details = kwargs
        if data_type:
            details['data_type'] = data_type
        if field:
            details['field'] = field
        if value is not None:
            details['value'] = value

        super().__init__(message, details)
        self.data_type = data_type
        self.field = field
        self.value = value


class DirectionSymbolError(DirectionError):
    """Raised when a trading pair symbol is malformed or unknown"""

    def __init__(self, symbol: str, message: Optional[str] = None, **kwargs):
        if message is None:
            message = f"Invalid or unknown symbol: {symbol}"

        details = kwargs
        details['symbol'] = symbol

        super().__init__(message, details)
        self.symbol = symbol


class DirectionConfigurationError(DirectionError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when configuration is invalid
    Common scenarios:
        - Inverted or out-of-range clamp bands
        - Confidence threshold outside (0, 1)
        - Unparseable environment values
    """

    def __init__(self, message: str, config_key: Optional[str] = None,
                 config_value: Any = None, **kwargs):
        details = kwargs
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = config_value

        super().__init__(message, details)
        self.config_key = config_key
        self.config_value = config_value


class DirectionWebSocketError(DirectionError):
    """
    [CLASS SUMMARY]
    Purpose: Raised when the kline stream connection fails
    Common scenarios:
        - Connection dropped
        - Reconnect attempts exhausted
    """

    def __init__(self, message: str, connection_state: Optional[str] = None,
                 subscription: Optional[str] = None, **kwargs):
        details = kwargs
        if connection_state:
            details['connection_state'] = connection_state
        if subscription:
            details['subscription'] = subscription

        super().__init__(message, details)
        self.connection_state = connection_state
        self.subscription = subscription


# Exception utility functions
def is_retryable_error(error: Exception) -> bool:
    """
    [FUNCTION SUMMARY]
    Purpose: Determine if an error should trigger a retry
    Parameters:
        - error (Exception): The error to check
    Returns: bool - True if error is retryable
    Example: if is_retryable_error(e): retry_with_backoff()
    """
    if isinstance(error, DirectionRateLimitError):
        return True

    # Network errors are often transient
    if isinstance(error, DirectionNetworkError):
        return True

    if isinstance(error, DirectionAPIError):
        if error.status_code and 500 <= error.status_code < 600:
            return True
        if error.status_code == 408:
            return True

    if isinstance(error, DirectionWebSocketError):
        return error.connection_state == "disconnected"

    return False


def get_retry_delay(error: Exception, attempt: int = 1) -> float:
    """
    [FUNCTION SUMMARY]
    Purpose: Calculate delay before retrying after an error
    Parameters:
        - error (Exception): The error that occurred
        - attempt (int): Retry attempt number (1-based)
    Returns: float - Seconds to wait before retry
    Example: time.sleep(get_retry_delay(error, attempt=2))
    """
    if isinstance(error, DirectionRateLimitError) and error.retry_after:
        return error.retry_after

    base_delay = 1
    max_delay = 300  # Cap at 5 minutes

    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)

    # Up to 10% jitter
    jitter = random.uniform(0, delay * 0.1)

    return delay + jitter
