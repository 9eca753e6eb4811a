"""Per-record enrichment and line rendering transform.

This module derives a description and capture timestamp for each record
and renders it as one text line. It holds no buffers and does no I/O.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Protocol

from core.constants import (
    CHUNK_FIELD_SEPARATOR,
    CHUNK_LINE_SEPARATOR,
    DEFAULT_KEY_FIELD,
    DESCRIPTION_TEMPLATE,
)
from core.errors import TransformError
from core.types import Chunk, EnrichedRecord, Record

Clock = Callable[[], datetime]


class RecordMapper(Protocol):
    """Transformer contract consumed by the pipeline driver."""

    def map(self, record: Record) -> Chunk:
        """Render exactly one chunk for one record."""


def utc_clock() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class RecordTransformer:
    """Stateless record-to-line mapping with an injected clock."""

    def __init__(self, clock: Clock = utc_clock, key_field: str = DEFAULT_KEY_FIELD) -> None:
        """Initialize the transformer.

        Args:
            clock: Zero-argument callable returning the capture time.
            key_field: Record field used for the description label.
        """
        self._clock = clock
        self._key_field = key_field

    def map(self, record: Record) -> Chunk:
        """Render one record into one output chunk.

        Args:
            record: Source record.

        Returns:
            Line terminated by the line separator.

        Raises:
            TransformError: If the record lacks the key field.
        """
        return render_chunk(enrich_record(record, self._clock(), self._key_field))


def enrich_record(
    record: Record,
    captured_at: datetime,
    key_field: str = DEFAULT_KEY_FIELD,
) -> EnrichedRecord:
    """Attach description and timestamp fields to a record.

    Args:
        record: Source record.
        captured_at: Clock reading for this record.
        key_field: Record field used for the description label.

    Returns:
        Enriched record.

    Raises:
        TransformError: If the record lacks the key field.
    """
    if key_field not in record:
        raise TransformError(
            f"Record is missing key field '{key_field}': got fields {sorted(record)}. "
            "Select the key column in the source query."
        )
    key = record[key_field]
    return EnrichedRecord(
        record=record,
        key=key,
        description=DESCRIPTION_TEMPLATE.format(key=key),
        timestamp=captured_at.isoformat(),
    )


def render_chunk(enriched: EnrichedRecord) -> Chunk:
    """Render ``<key>, <description>, <timestamp>`` plus a line separator."""
    fields = (str(enriched.key), enriched.description, enriched.timestamp)
    return CHUNK_FIELD_SEPARATOR.join(fields) + CHUNK_LINE_SEPARATOR
