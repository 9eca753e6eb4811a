"""PostgreSQL record source over server-side cursors.

Rows are streamed through a named cursor inside a transaction so the
server holds the result set and the client keeps one batch in memory.
"""

from __future__ import annotations

from typing import Any, Iterator, Sequence
from uuid import uuid4

from core.constants import CURSOR_NAME_PREFIX
from core.errors import SourceError
from core.logging_config import get_logger
from core.types import Record
from ingest.psycopg_support import import_psycopg
from ingest.record_source import freeze_record, validate_batch_size

_LOGGER = get_logger(__name__)


class PostgresRecordSource:
    """Stream query results from a psycopg connection in batches."""

    def __init__(self) -> None:
        self._batches_fetched = 0

    @property
    def batches_fetched(self) -> int:
        """Number of non-empty ``fetchmany`` round trips."""
        return self._batches_fetched

    def open(
        self,
        handle: Any,
        query: str,
        params: Sequence[Any],
        batch_size: int,
    ) -> Iterator[Record]:
        """Return a lazy iterator over the query result.

        The query runs on the first pull. The read transaction is rolled
        back on exhaustion and when the iterator is closed early; an early
        close raises no error.

        Args:
            handle: psycopg connection leased from the pool.
            query: SQL text with ``%s`` placeholders.
            params: Positional query parameters.
            batch_size: Rows per ``fetchmany`` round trip.

        Returns:
            Iterator of read-only records.

        Raises:
            ConfigError: If batch size is below one.
            DependencyError: If psycopg is not installed.
        """
        validate_batch_size(batch_size)
        psycopg = import_psycopg()
        return self._iterate(psycopg, handle, query, tuple(params), batch_size)

    def _iterate(
        self,
        psycopg: Any,
        handle: Any,
        query: str,
        params: tuple[Any, ...],
        batch_size: int,
    ) -> Iterator[Record]:
        cursor_name = f"{CURSOR_NAME_PREFIX}_{uuid4().hex[:12]}"
        try:
            with handle.transaction():
                with handle.cursor(name=cursor_name, row_factory=psycopg.rows.dict_row) as cursor:
                    cursor.itersize = batch_size
                    cursor.execute(query, params)
                    _LOGGER.info("source_opened", cursor=cursor_name, batch_size=batch_size)
                    while True:
                        rows = cursor.fetchmany(batch_size)
                        if not rows:
                            break
                        self._batches_fetched += 1
                        for row in rows:
                            yield freeze_record(row)
                # The transaction only reads; end it with a rollback.
                raise psycopg.Rollback()
        except psycopg.Error as error:
            raise SourceError(
                f"PostgreSQL fetch failed after {self._batches_fetched} batches: {error}. "
                "Check the query text, parameters, and database connectivity."
            ) from error
