"""Buffered line file sink with backpressure.

This module persists rendered chunks to a UTF-8 text file. Writes land in
a bounded buffer whose fill level is the readiness signal for the driver.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, TextIO

from core.constants import DEFAULT_HIGH_WATER_MARK, INCOMPLETE_MARKER_SUFFIX, OUTPUT_ENCODING
from core.errors import ConfigError, SinkError
from core.logging_config import get_logger
from core.types import Chunk

_LOGGER = get_logger(__name__)


class RecordSink(Protocol):
    """Sink contract consumed by the pipeline driver."""

    def open(self) -> None:
        """Acquire sink resources before the first write."""

    def write(self, chunk: Chunk) -> bool:
        """Accept one chunk and return whether more writes are welcome."""

    def drain(self) -> None:
        """Block until buffered chunks are persisted and readiness is restored."""

    def close(self) -> None:
        """Flush remaining data and release sink resources, idempotently."""

    def mark_incomplete(self, reason: str) -> None:
        """Flag the persisted output as a partial result."""


class FileSink:
    """Write chunks to a truncated-at-open text file."""

    def __init__(self, path: Path, high_water_mark: int = DEFAULT_HIGH_WATER_MARK) -> None:
        """Initialize the sink.

        Args:
            path: Output file path.
            high_water_mark: Buffered chunk count at which writes report not-ready.

        Raises:
            ConfigError: If the high-water mark is below one.
        """
        if high_water_mark < 1:
            raise ConfigError(
                f"Invalid sink high-water mark {high_water_mark}: expected a value >= 1."
            )
        self._path = path
        self._high_water_mark = high_water_mark
        self._handle: TextIO | None = None
        self._buffer: list[Chunk] = []
        self._opened = False
        self._closed = False
        self._flushed_count = 0
        self._max_buffered = 0

    @property
    def path(self) -> Path:
        """Output file path."""
        return self._path

    @property
    def marker_path(self) -> Path:
        """Sidecar file flagging an incomplete output."""
        return self._path.with_name(self._path.name + INCOMPLETE_MARKER_SUFFIX)

    @property
    def ready(self) -> bool:
        """Whether the buffer has room below the high-water mark."""
        return len(self._buffer) < self._high_water_mark

    @property
    def buffered_count(self) -> int:
        """Chunks accepted but not yet written to the file."""
        return len(self._buffer)

    @property
    def max_buffered(self) -> int:
        """Highest buffer occupancy observed during the run."""
        return self._max_buffered

    @property
    def flushed_count(self) -> int:
        """Chunks persisted to the file so far."""
        return self._flushed_count

    @property
    def closed(self) -> bool:
        """Whether close has been called."""
        return self._closed

    def open(self) -> None:
        """Create or truncate the output file and drop any stale marker.

        Raises:
            SinkError: If the sink was opened before or the file cannot be created.
        """
        if self._opened:
            raise SinkError(f"File sink for {self._path} was already opened; use a new sink.")
        self._opened = True
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self.marker_path.unlink(missing_ok=True)
            self._handle = open(self._path, "w", encoding=OUTPUT_ENCODING, newline="")
        except OSError as error:
            raise SinkError(
                f"Failed to open output file {self._path}: {error}. "
                "Check that the directory is writable."
            ) from error

    def write(self, chunk: Chunk) -> bool:
        """Buffer one chunk.

        Args:
            chunk: Rendered line.

        Returns:
            True while the buffer is below the high-water mark, else False.

        Raises:
            SinkError: If the sink is not open.
        """
        if self._handle is None or self._closed:
            raise SinkError(f"Cannot write to {self._path}: sink is not open.")
        self._buffer.append(chunk)
        self._max_buffered = max(self._max_buffered, len(self._buffer))
        return self.ready

    def drain(self) -> None:
        """Write buffered chunks to the file.

        Raises:
            SinkError: If the sink is not open or the write fails.
        """
        if self._handle is None:
            raise SinkError(f"Cannot drain {self._path}: sink is not open.")
        self._flush_buffer(self._handle)

    def close(self) -> None:
        """Flush buffered chunks and release the file descriptor.

        A second call is a no-op. The descriptor is closed even when the
        final flush fails.

        Raises:
            SinkError: If the final flush or close fails.
        """
        if self._closed:
            return
        self._closed = True
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self._flush_buffer(handle)
        finally:
            self._buffer.clear()
            _close_handle(handle, self._path)
        _LOGGER.info("sink_closed", path=str(self._path), chunks=self._flushed_count)

    def mark_incomplete(self, reason: str) -> None:
        """Write the incomplete marker next to the output file.

        Args:
            reason: Human-readable cause, stored in the marker.

        Raises:
            SinkError: If the marker cannot be written.
        """
        try:
            self.marker_path.write_text(
                f"incomplete output: {self._flushed_count} lines persisted\n{reason}\n",
                encoding=OUTPUT_ENCODING,
            )
        except OSError as error:
            raise SinkError(
                f"Failed to write incomplete marker {self.marker_path}: {error}."
            ) from error

    def _flush_buffer(self, handle: TextIO) -> None:
        """Persist and clear the buffer."""
        if not self._buffer:
            return
        try:
            handle.write("".join(self._buffer))
            handle.flush()
        except OSError as error:
            raise SinkError(
                f"Failed to write {len(self._buffer)} chunks to {self._path}: {error}. "
                "Check free disk space and permissions."
            ) from error
        self._flushed_count += len(self._buffer)
        self._buffer.clear()


def _close_handle(handle: TextIO, path: Path) -> None:
    """Close a file handle, translating OS failures."""
    try:
        handle.close()
    except OSError as error:
        raise SinkError(f"Failed to close output file {path}: {error}.") from error
