"""Runtime configuration model for Rowstream.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import (
    DEFAULT_ACQUIRE_TIMEOUT_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DATABASE_URL,
    DEFAULT_HIGH_WATER_MARK,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POOL_MAX_SIZE,
    DEFAULT_POOL_MIN_SIZE,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import ConfigError


@dataclass(frozen=True)
class RowstreamConfig:
    """Validated runtime configuration.

    Attributes:
        database_url: PostgreSQL connection string for the pool.
        batch_size: Rows fetched per source round trip.
        high_water_mark: Chunks buffered by the sink before it reports not-ready.
        pool_min_size: Minimum open connections kept by the pool.
        pool_max_size: Maximum open connections allowed by the pool.
        acquire_timeout: Seconds to wait for a pooled connection.
        log_level: Minimum structured log level.
    """

    database_url: str
    batch_size: int
    high_water_mark: int
    pool_min_size: int
    pool_max_size: int
    acquire_timeout: float
    log_level: str

    @classmethod
    def from_env(cls) -> "RowstreamConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            ConfigError: If environment values are invalid.
        """
        pool_min_size = _parse_positive_int(
            "ROWSTREAM_POOL_MIN_SIZE", os.getenv("ROWSTREAM_POOL_MIN_SIZE"), DEFAULT_POOL_MIN_SIZE
        )
        pool_max_size = _parse_positive_int(
            "ROWSTREAM_POOL_MAX_SIZE", os.getenv("ROWSTREAM_POOL_MAX_SIZE"), DEFAULT_POOL_MAX_SIZE
        )
        if pool_max_size < pool_min_size:
            raise ConfigError(
                f"Invalid pool sizing: ROWSTREAM_POOL_MAX_SIZE ({pool_max_size}) is smaller "
                f"than ROWSTREAM_POOL_MIN_SIZE ({pool_min_size}). Raise the maximum size."
            )
        return cls(
            database_url=os.getenv("ROWSTREAM_DATABASE_URL", DEFAULT_DATABASE_URL),
            batch_size=_parse_positive_int(
                "ROWSTREAM_BATCH_SIZE", os.getenv("ROWSTREAM_BATCH_SIZE"), DEFAULT_BATCH_SIZE
            ),
            high_water_mark=_parse_positive_int(
                "ROWSTREAM_HIGH_WATER_MARK",
                os.getenv("ROWSTREAM_HIGH_WATER_MARK"),
                DEFAULT_HIGH_WATER_MARK,
            ),
            pool_min_size=pool_min_size,
            pool_max_size=pool_max_size,
            acquire_timeout=_parse_timeout(os.getenv("ROWSTREAM_ACQUIRE_TIMEOUT")),
            log_level=_parse_log_level(os.getenv("ROWSTREAM_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def _parse_positive_int(name: str, raw_value: str | None, default: int) -> int:
    """Parse a positive integer environment value.

    Args:
        name: Environment variable name for error context.
        raw_value: Raw string from environment, or None when unset.
        default: Value used when the variable is unset.

    Returns:
        Parsed positive integer.

    Raises:
        ConfigError: If value is not an integer or is below one.
    """
    if raw_value is None:
        return default
    try:
        value = int(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {name} value: expected integer, got '{raw_value}'. "
            f"Set {name} to a positive number."
        ) from error
    if value < 1:
        raise ConfigError(
            f"Invalid {name} value: expected a value >= 1, got {value}. "
            f"Set {name} to a positive number."
        )
    return value


def _parse_timeout(raw_value: str | None) -> float:
    """Parse the pool acquire timeout in seconds."""
    if raw_value is None:
        return DEFAULT_ACQUIRE_TIMEOUT_SECONDS
    try:
        value = float(raw_value)
    except ValueError as error:
        raise ConfigError(
            "Invalid ROWSTREAM_ACQUIRE_TIMEOUT value: "
            f"expected seconds, got '{raw_value}'. "
            "Set ROWSTREAM_ACQUIRE_TIMEOUT to a positive number."
        ) from error
    if value <= 0:
        raise ConfigError(
            f"Invalid ROWSTREAM_ACQUIRE_TIMEOUT value: expected > 0, got {value}."
        )
    return value


def _parse_log_level(raw_value: str) -> str:
    """Normalize and validate the log level name."""
    level = raw_value.strip().upper()
    if level not in SUPPORTED_LOG_LEVELS:
        raise ConfigError(
            f"Invalid ROWSTREAM_LOG_LEVEL value '{raw_value}'. "
            f"Supported levels: {', '.join(SUPPORTED_LOG_LEVELS)}."
        )
    return level
