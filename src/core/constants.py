"""Core constants used across Rowstream modules.

This module centralizes defaults for pipeline, pool, and CLI settings.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_DATABASE_URL = "postgresql://postgres@localhost:5432/postgres"
DEFAULT_BATCH_SIZE = 1000
DEFAULT_HIGH_WATER_MARK = 1024
DEFAULT_POOL_MIN_SIZE = 1
DEFAULT_POOL_MAX_SIZE = 5
DEFAULT_ACQUIRE_TIMEOUT_SECONDS = 30.0
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_KEY_FIELD = "num"
DEFAULT_SERIES_UPPER_BOUND = 1_000_000
DEFAULT_SERIES_QUERY = "SELECT num FROM generate_series(0, %s) AS num"
DESCRIPTION_TEMPLATE = "Row {key}"
CHUNK_FIELD_SEPARATOR = ", "
CHUNK_LINE_SEPARATOR = "\n"
OUTPUT_ENCODING = "utf-8"
INCOMPLETE_MARKER_SUFFIX = ".incomplete"
CURSOR_NAME_PREFIX = "rowstream_cursor"
EXIT_CODE_COMPLETED = 0
EXIT_CODE_FAILED = 1
EXIT_CODE_CANCELLED = 130
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
