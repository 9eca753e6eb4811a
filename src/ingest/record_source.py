"""Record source contract and in-process batching source.

A record source turns a leased handle plus a query into a lazy,
forward-only record iterator that fetches rows in bounded batches.
"""

from __future__ import annotations

from itertools import islice
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol, Sequence

from core.errors import ConfigError, RowstreamError, SourceError
from core.types import Record

RowFactory = Callable[[Any, str, tuple[Any, ...]], Iterable[Mapping[str, Any]]]


class RecordSource(Protocol):
    """Source contract consumed by the pipeline driver."""

    def open(
        self,
        handle: Any,
        query: str,
        params: Sequence[Any],
        batch_size: int,
    ) -> Iterator[Record]:
        """Return a lazy record iterator over the query result."""


class IterableRecordSource:
    """Batch rows from an in-process producer.

    The producer is called on first pull with ``(handle, query, params)``
    and may be any iterable of mappings, including a generator.
    """

    def __init__(self, rows: RowFactory) -> None:
        self._rows = rows
        self._batches_fetched = 0

    @property
    def batches_fetched(self) -> int:
        """Number of non-empty batches pulled from the producer."""
        return self._batches_fetched

    def open(
        self,
        handle: Any,
        query: str,
        params: Sequence[Any],
        batch_size: int,
    ) -> Iterator[Record]:
        """Return a lazy iterator that fetches ``batch_size`` rows at a time.

        Raises:
            ConfigError: If batch size is below one.
        """
        validate_batch_size(batch_size)
        return self._iterate(handle, query, tuple(params), batch_size)

    def _iterate(
        self,
        handle: Any,
        query: str,
        params: tuple[Any, ...],
        batch_size: int,
    ) -> Iterator[Record]:
        rows = self._start(handle, query, params)
        while True:
            batch = self._fetch_batch(rows, batch_size)
            if not batch:
                return
            self._batches_fetched += 1
            for row in batch:
                yield freeze_record(row)

    def _start(
        self,
        handle: Any,
        query: str,
        params: tuple[Any, ...],
    ) -> Iterator[Mapping[str, Any]]:
        try:
            return iter(self._rows(handle, query, params))
        except RowstreamError:
            raise
        except Exception as error:
            raise SourceError(
                f"Failed to open record producer for query '{query}': {error}"
            ) from error

    def _fetch_batch(
        self,
        rows: Iterator[Mapping[str, Any]],
        batch_size: int,
    ) -> list[Mapping[str, Any]]:
        try:
            return list(islice(rows, batch_size))
        except RowstreamError:
            raise
        except Exception as error:
            raise SourceError(
                f"Record producer failed after {self._batches_fetched} batches: {error}"
            ) from error


def freeze_record(row: Mapping[str, Any]) -> Record:
    """Return a read-only copy of a fetched row, preserving field order."""
    return MappingProxyType(dict(row))


def validate_batch_size(batch_size: int) -> None:
    """Reject batch sizes that cannot make progress.

    Raises:
        ConfigError: If batch size is below one.
    """
    if batch_size < 1:
        raise ConfigError(
            f"Invalid batch size {batch_size}: expected a value >= 1. "
            "Pass an explicit positive batch size."
        )
