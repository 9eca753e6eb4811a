"""Public SDK surface for Rowstream.

This module provides a stable import path for library users.
It re-exports the export client, pipeline runner, and typed models.
"""

from __future__ import annotations

from core.config import RowstreamConfig
from core.errors import (
    ConfigError,
    ResourceError,
    RowstreamError,
    SinkError,
    SourceError,
    TransformError,
)
from core.types import EnrichedRecord, ExportRequest, PipelineState, RunReport
from ingest.connection_pool import PostgresConnectionPool, leased_handle
from ingest.export_client import ExportClient
from ingest.pipeline import ExportPipelineRunner, run_export
from ingest.postgres_source import PostgresRecordSource
from ingest.record_source import IterableRecordSource
from store.file_sink import FileSink
from transforms.row_rendering import RecordTransformer, enrich_record, render_chunk

__all__ = [
    "ConfigError",
    "EnrichedRecord",
    "ExportClient",
    "ExportPipelineRunner",
    "ExportRequest",
    "FileSink",
    "IterableRecordSource",
    "PipelineState",
    "PostgresConnectionPool",
    "PostgresRecordSource",
    "RecordTransformer",
    "ResourceError",
    "RowstreamConfig",
    "RowstreamError",
    "RunReport",
    "SinkError",
    "SourceError",
    "TransformError",
    "enrich_record",
    "leased_handle",
    "render_chunk",
    "run_export",
]
