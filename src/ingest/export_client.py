"""Config-driven export client.

This module owns pool construction for one or more export runs and
hands each run to the pipeline runner with an explicit pool object.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from core.config import RowstreamConfig
from core.types import ExportRequest, RunReport
from ingest.connection_pool import PostgresConnectionPool
from ingest.pipeline import run_export
from ingest.postgres_source import PostgresRecordSource
from ingest.record_source import RecordSource
from transforms.row_rendering import RecordMapper

PoolFactory = Callable[[RowstreamConfig], Any]
SourceFactory = Callable[[], RecordSource]


class ExportClient:
    """Run streaming exports against a configured connection pool."""

    def __init__(
        self,
        config: RowstreamConfig,
        pool_factory: PoolFactory = PostgresConnectionPool.from_config,
        source_factory: SourceFactory = PostgresRecordSource,
    ) -> None:
        """Initialize the client.

        Args:
            config: Runtime configuration.
            pool_factory: Builds a pool usable as a context manager.
            source_factory: Builds one record source per run.
        """
        self._config = config
        self._pool_factory = pool_factory
        self._source_factory = source_factory

    @property
    def config(self) -> RowstreamConfig:
        """Runtime configuration used by this client."""
        return self._config

    def export(
        self,
        request: ExportRequest,
        transformer: RecordMapper | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RunReport:
        """Open a pool, run one export, and close the pool.

        Args:
            request: Export request payload.
            transformer: Optional record mapper override.
            cancel_event: Optional event that stops the run cleanly when set.

        Returns:
            Terminal run report.

        Raises:
            ResourceError: If the pool cannot be opened.
        """
        with self._pool_factory(self._config) as pool:
            return run_export(
                pool,
                request,
                source=self._source_factory(),
                transformer=transformer,
                cancel_event=cancel_event,
            )
