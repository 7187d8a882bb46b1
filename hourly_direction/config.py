# hourly_direction/config.py - Configuration and constants for the direction model
"""
Configuration module for the hourly direction model.
Handles environment variables, market-data endpoints, model constants and logging.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import json
import pytz
from dotenv import load_dotenv

from .exceptions import DirectionConfigurationError

# Load environment variables from the project root's .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

# Binance stamps every kline in UTC milliseconds
MARKET_TIMEZONE = pytz.UTC


class DirectionConfig:
    """
    [CLASS SUMMARY]
    Purpose: Centralized configuration for the direction model and its data feeds
    Responsibilities:
        - Define REST and stream endpoints
        - Hold the tuned model constants (clamp bands, windows, floors)
        - Configure stream reconnection and tracker refresh sizes
        - Provide module-wide logger construction
    Usage:
        config = DirectionConfig()
        low, high = config.prior_clamp
    """

    def __init__(self, config_override: Optional[Dict[str, Any]] = None):
        """
        [FUNCTION SUMMARY]
        Purpose: Initialize configuration with environment variables and optional overrides
        Parameters:
            - config_override (dict, optional): Override default settings for testing
        Example: DirectionConfig({'minute_capacity': 100}) -> config with a smaller window
        Raises: DirectionConfigurationError if an override is out of range
        """
        self.config_override = config_override or {}

        self._load_api_config()
        self._load_model_config()
        self._load_stream_config()
        self._setup_logging()
        self._validate()

    def _get(self, key: str, env_var: Optional[str], default: Any, cast=None) -> Any:
        """Resolve a setting from override, then environment, then default"""
        if key in self.config_override:
            return self.config_override[key]
        if env_var and os.getenv(env_var) is not None:
            raw = os.getenv(env_var)
            try:
                return cast(raw) if cast else raw
            except ValueError:
                raise DirectionConfigurationError(
                    f"Invalid value for {env_var}", config_key=key, config_value=raw
                )
        return default

    def _load_api_config(self):
        """
        [FUNCTION SUMMARY]
        Purpose: Load REST and WebSocket endpoint configuration
        Sets: rest_base, stream_base, endpoints, timeouts, retry and rate settings
        """
        self.rest_base = self._get('rest_base', 'BINANCE_REST_BASE', "https://api.binance.com")
        self.stream_base = self._get('stream_base', 'BINANCE_STREAM_BASE', "wss://stream.binance.com:9443")

        self.endpoints = {
            'klines': "/api/v3/klines",
            'exchange_info': "/api/v3/exchangeInfo",
        }

        self.request_timeout = self._get('request_timeout', None, 10)  # seconds
        self.max_retries = self._get('max_retries', None, 3)
        self.requests_per_minute = self._get('requests_per_minute', None, 1200)

        self.valid_intervals = [
            "1s", "1m", "3m", "5m", "15m", "30m",
            "1h", "2h", "4h", "6h", "8h", "12h",
            "1d", "3d", "1w", "1M"
        ]

    def _load_model_config(self):
        """
        [FUNCTION SUMMARY]
        Purpose: Load the model's tuned constants
        Sets: clamp bands, windows, numeric floors, default confidence threshold
        Note: The clamp bands are hand-tuned constants, kept configurable
        """
        self.prior_clamp: Tuple[float, float] = tuple(self._get('prior_clamp', None, (0.35, 0.65)))
        self.transition_clamp: Tuple[float, float] = tuple(self._get('transition_clamp', None, (0.40, 0.60)))
        self.laplace_pseudocount = self._get('laplace_pseudocount', None, 1)

        # Window sizes
        self.atr_window = self._get('atr_window', None, 720)          # ~30 days of hourly bars
        self.minute_capacity = self._get('minute_capacity', None, 600)
        self.min_minutes = 3
        self.slope_window = self._get('slope_window', None, 20)
        self.rsi_period = self._get('rsi_period', None, 14)

        # Numeric floors
        self.fallback_scale_fraction = self._get('fallback_scale_fraction', None, 0.003)
        self.scale_floor = 1e-8
        self.denominator_floor = 1e-9
        self.probability_epsilon = 1e-6

        self.confidence_threshold = self._get(
            'confidence_threshold', 'HOURLY_DIRECTION_CONFIDENCE_THRESHOLD', 0.62, float
        )
        self.validate_ordering = self._get('validate_ordering', None, True)

    def _load_stream_config(self):
        """
        [FUNCTION SUMMARY]
        Purpose: Configure streaming, reconnection and tracker refresh sizes
        Sets: fetch limits, reconnect backoff, queue size, partial-minute policy
        """
        self.hourly_fetch_limit = self._get('hourly_fetch_limit', None, 720)
        self.minute_backfill = self._get('minute_backfill', None, 200)
        self.hourly_refresh_limit = self._get('hourly_refresh_limit', None, 720)

        # True pushes every kline update, not just closed minutes
        self.push_partial_minutes = self._get('push_partial_minutes', None, False)

        self.max_reconnect_attempts = self._get('max_reconnect_attempts', None, 5)
        self.reconnect_delay = self._get('reconnect_delay', None, 1.0)
        self.max_reconnect_delay = self._get('max_reconnect_delay', None, 30.0)
        self.queue_maxsize = self._get('queue_maxsize', None, 1000)

    def _setup_logging(self):
        """
        [FUNCTION SUMMARY]
        Purpose: Configure logging for the package
        Sets: Logging format, level, and optional rotating log file
        """
        log_level = self._get('log_level', 'HOURLY_DIRECTION_LOG_LEVEL', 'INFO')
        level = getattr(logging, str(log_level).upper(), None)
        if not isinstance(level, int):
            raise DirectionConfigurationError(
                "Unknown log level", config_key='log_level', config_value=log_level
            )

        self.logger_config = {
            'level': level,
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        }

        log_file = self._get('log_file', 'HOURLY_DIRECTION_LOG_FILE', None)
        self.log_file = Path(log_file) if log_file else None
        self.max_log_size = 10 * 1024 * 1024  # 10 MB
        self.log_backup_count = 5

    def _validate(self):
        """Reject constant combinations the model cannot work with"""
        for key in ('prior_clamp', 'transition_clamp'):
            low, high = getattr(self, key)
            if not (0.0 < low <= high < 1.0):
                raise DirectionConfigurationError(
                    "Clamp band must satisfy 0 < low <= high < 1",
                    config_key=key, config_value=(low, high)
                )

        if not (0.0 < self.confidence_threshold < 1.0):
            raise DirectionConfigurationError(
                "Confidence threshold must lie in (0, 1)",
                config_key='confidence_threshold', config_value=self.confidence_threshold
            )

        if self.minute_capacity < self.min_minutes:
            raise DirectionConfigurationError(
                f"Minute capacity must hold at least {self.min_minutes} closes",
                config_key='minute_capacity', config_value=self.minute_capacity
            )

        for key in ('atr_window', 'slope_window', 'rsi_period'):
            if getattr(self, key) < 1:
                raise DirectionConfigurationError(
                    "Window sizes must be positive", config_key=key, config_value=getattr(self, key)
                )

    def get_logger(self, name: str) -> logging.Logger:
        """
        [FUNCTION SUMMARY]
        Purpose: Create a configured logger for a package component
        Parameters:
            - name (str): Logger name (usually __name__ of the calling module)
        Returns: logging.Logger - Configured logger instance
        Example: logger = config.get_logger(__name__)
        """
        logger = logging.getLogger(name)
        logger.setLevel(self.logger_config['level'])

        # Remove existing handlers to avoid duplicates
        logger.handlers.clear()

        formatter = logging.Formatter(
            self.logger_config['format'],
            datefmt=self.logger_config['datefmt']
        )

        console_handler = logging.StreamHandler()
        console_handler.setLevel(self.logger_config['level'])
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if self.log_file is not None:
            from logging.handlers import RotatingFileHandler
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=self.max_log_size,
                backupCount=self.log_backup_count
            )
            file_handler.setLevel(self.logger_config['level'])
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        return logger

    def to_dict(self) -> Dict[str, Any]:
        """
        [FUNCTION SUMMARY]
        Purpose: Export configuration as dictionary for debugging/inspection
        Returns: dict - All configuration values
        Example: config_dict = config.to_dict()
        """
        return {
            'api_settings': {
                'rest_base': self.rest_base,
                'stream_base': self.stream_base,
                'timeout': self.request_timeout,
                'max_retries': self.max_retries,
                'requests_per_minute': self.requests_per_minute
            },
            'model_settings': {
                'prior_clamp': list(self.prior_clamp),
                'transition_clamp': list(self.transition_clamp),
                'laplace_pseudocount': self.laplace_pseudocount,
                'atr_window': self.atr_window,
                'minute_capacity': self.minute_capacity,
                'slope_window': self.slope_window,
                'rsi_period': self.rsi_period,
                'fallback_scale_fraction': self.fallback_scale_fraction,
                'confidence_threshold': self.confidence_threshold,
                'validate_ordering': self.validate_ordering
            },
            'stream_settings': {
                'hourly_fetch_limit': self.hourly_fetch_limit,
                'minute_backfill': self.minute_backfill,
                'hourly_refresh_limit': self.hourly_refresh_limit,
                'push_partial_minutes': self.push_partial_minutes,
                'max_reconnect_attempts': self.max_reconnect_attempts,
                'reconnect_delay': self.reconnect_delay,
                'max_reconnect_delay': self.max_reconnect_delay,
                'queue_maxsize': self.queue_maxsize
            },
            'logging': {
                'level': logging.getLevelName(self.logger_config['level']),
                'log_file': str(self.log_file) if self.log_file else None
            }
        }

    def save_to_file(self, filepath: Path):
        """Write the current configuration to a JSON file"""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

        logger = self.get_logger(__name__)
        logger.info(f"Configuration saved to {filepath}")


# Module-level constants that don't require instantiation
HOURLY_INTERVAL = '1h'
MINUTE_INTERVAL = '1m'
MINUTE_MS = 60_000
HOUR_MS = 3_600_000
DEFAULT_PRICE_PRECISION = 2

_config_instance = None


def get_config(reset: bool = False, **overrides) -> DirectionConfig:
    """
    [FUNCTION SUMMARY]
    Purpose: Get or create singleton configuration instance
    Parameters:
        - reset (bool): Force create new instance
        - **overrides: Configuration overrides
    Returns: DirectionConfig - Configuration instance
    Example: config = get_config(minute_capacity=120)
    """
    global _config_instance

    if _config_instance is None or reset or overrides:
        _config_instance = DirectionConfig(overrides)

    return _config_instance
