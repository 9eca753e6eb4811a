"""Shared typed models.

This module defines immutable data models used by source, transform,
sink, and pipeline layers to keep interfaces explicit and stable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from core.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_HIGH_WATER_MARK,
    EXIT_CODE_CANCELLED,
    EXIT_CODE_COMPLETED,
    EXIT_CODE_FAILED,
)
from core.errors import RowstreamError

Record = Mapping[str, Any]
Chunk = str


class PipelineState(str, Enum):
    """Lifecycle states of one pipeline run."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    STREAMING = "streaming"
    DRAINING = "draining"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further transitions are allowed."""
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {PipelineState.COMPLETED, PipelineState.FAILED, PipelineState.CANCELLED}
)


@dataclass(frozen=True)
class EnrichedRecord:
    """Source record with derived output fields.

    Attributes:
        record: Source record as fetched, read-only.
        key: Value of the record key field, e.g. ``num``.
        description: Deterministic label derived from the key.
        timestamp: Capture time of the transform, ISO 8601 with offset.
    """

    record: Record
    key: Any
    description: str
    timestamp: str


@dataclass(frozen=True)
class ExportRequest:
    """Request payload for one streaming export run.

    Attributes:
        query: SQL text executed by the record source.
        output_path: Destination file, truncated at run start.
        params: Positional query parameters.
        batch_size: Rows fetched per source round trip.
        high_water_mark: Chunks buffered by the sink before backpressure.
    """

    query: str
    output_path: Path
    params: tuple[Any, ...] = field(default_factory=tuple)
    batch_size: int = DEFAULT_BATCH_SIZE
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK


@dataclass(frozen=True)
class RunReport:
    """Terminal outcome of one pipeline run.

    Attributes:
        state: Terminal pipeline state.
        started_at: Run start time.
        finished_at: Run end time, after the handle was released.
        records_read: Records pulled from the source.
        chunks_written: Chunks accepted by the sink.
        output_complete: Whether the output holds the full result set.
        error: Captured error for failed runs, otherwise None.
    """

    state: PipelineState
    started_at: datetime
    finished_at: datetime
    records_read: int
    chunks_written: int
    output_complete: bool
    error: RowstreamError | None = None

    @property
    def succeeded(self) -> bool:
        """Return whether the run completed the full result set."""
        return self.state is PipelineState.COMPLETED

    @property
    def exit_code(self) -> int:
        """Map the terminal state onto a process exit code."""
        if self.state is PipelineState.COMPLETED:
            return EXIT_CODE_COMPLETED
        if self.state is PipelineState.CANCELLED:
            return EXIT_CODE_CANCELLED
        return EXIT_CODE_FAILED

    @property
    def elapsed_seconds(self) -> float:
        """Wall-clock duration of the run."""
        return max(0.0, (self.finished_at - self.started_at).total_seconds())

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serializable run summary."""
        return {
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "records_read": self.records_read,
            "chunks_written": self.chunks_written,
            "output_complete": self.output_complete,
        }

    def error_payload(self) -> dict[str, Any] | None:
        """Return the structured error object for failed runs."""
        if self.error is None:
            return None
        payload = self.summary()
        payload["error_type"] = type(self.error).__name__
        payload["error_message"] = str(self.error)
        return payload
