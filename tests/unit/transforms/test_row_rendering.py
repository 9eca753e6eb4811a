"""Unit tests for row enrichment and rendering transform."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import MappingProxyType

import pytest

from core.errors import TransformError
from tests.fakes import TickingClock
from transforms.row_rendering import RecordTransformer, enrich_record, render_chunk, utc_clock

_CAPTURED_AT = datetime(2024, 5, 17, 9, 30, tzinfo=timezone(timedelta(hours=2)))


def test_enrich_record_derives_description_and_timestamp() -> None:
    """Enrichment should label the record and stamp the capture time."""
    enriched = enrich_record(MappingProxyType({"num": 7}), _CAPTURED_AT)

    assert enriched.description == "Row 7"
    assert enriched.timestamp == "2024-05-17T09:30:00+02:00"
    assert enriched.record["num"] == 7


def test_render_chunk_formats_single_line() -> None:
    """Rendered chunk should be ``<num>, Row <num>, <timestamp>`` plus newline."""
    chunk = render_chunk(enrich_record({"num": 0}, _CAPTURED_AT))

    assert chunk == "0, Row 0, 2024-05-17T09:30:00+02:00\n"


def test_transformer_reads_clock_once_per_record() -> None:
    """Each mapped record should consume exactly one clock reading."""
    clock = TickingClock()
    transformer = RecordTransformer(clock=clock)

    chunks = [transformer.map({"num": num}) for num in range(3)]

    assert clock.readings == 3
    assert [chunk.split(", ")[2].strip() for chunk in chunks] == [
        "2024-01-01T00:00:00+00:00",
        "2024-01-01T00:00:01+00:00",
        "2024-01-01T00:00:02+00:00",
    ]


def test_transformer_supports_custom_key_field() -> None:
    """Key field should be configurable for non-``num`` sources."""
    transformer = RecordTransformer(clock=TickingClock(), key_field="id")

    chunk = transformer.map({"id": "a-1", "payload": "ignored"})

    assert chunk.startswith("a-1, Row a-1, ")


def test_missing_key_field_raises_transform_error() -> None:
    """Records without the key field violate the transformer contract."""
    transformer = RecordTransformer(clock=TickingClock())

    with pytest.raises(TransformError):
        transformer.map({"value": 1})

    assert transformer.map({"num": 1}).startswith("1, ")


def test_default_clock_reads_utc() -> None:
    """Default timestamps should carry a zero offset so they sort as strings."""
    captured_at = utc_clock()

    assert captured_at.utcoffset() == timedelta(0)
    timestamp = RecordTransformer().map({"num": 1}).rstrip("\n").split(", ")[2]
    assert timestamp.endswith("+00:00")
