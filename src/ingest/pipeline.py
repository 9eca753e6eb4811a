"""Streaming export orchestration.

This module wires a record source, a transformer, and a sink into one
backpressured run. It leases the resource handle for the run, releases it
on every exit path, and reports a single terminal outcome.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Iterator, TypeVar
from uuid import uuid4

from core.errors import RowstreamError, SinkError, SourceError, TransformError
from core.logging_config import get_logger
from core.types import Chunk, ExportRequest, PipelineState, Record, RunReport
from ingest.connection_pool import ConnectionPool, leased_handle
from ingest.pipeline_state import PipelineStateMachine
from ingest.postgres_source import PostgresRecordSource
from ingest.record_source import RecordSource
from store.file_sink import FileSink, RecordSink
from transforms.row_rendering import RecordMapper, RecordTransformer

_LOGGER = get_logger(__name__)

_T = TypeVar("_T")


class ExportPipelineRunner:
    """Single-use runner for one source-to-sink export."""

    def __init__(
        self,
        pool: ConnectionPool,
        source: RecordSource,
        transformer: RecordMapper,
        sink: RecordSink,
        request: ExportRequest,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._pool = pool
        self._source = source
        self._transformer = transformer
        self._sink = sink
        self._request = request
        self._cancel_event = cancel_event or threading.Event()
        self._run_id = uuid4().hex[:12]
        self._machine = PipelineStateMachine(self._run_id)
        self._records_read = 0
        self._chunks_written = 0
        self._backpressure_waits = 0
        self._cancelled = False
        self._output_complete = False
        self._error: RowstreamError | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._machine.state

    @property
    def state_history(self) -> tuple[PipelineState, ...]:
        """States entered by this run, in order."""
        return self._machine.history

    def run(self) -> RunReport:
        """Execute the export and return its terminal report.

        Source, transform, and sink failures are captured in the report
        instead of being raised. Unexpected exceptions raised by a stage are
        wrapped into the error type of that stage.

        Raises:
            PipelineStateError: If the runner was already used.
            KeyboardInterrupt: Propagated after the sink is closed, the output
                is marked incomplete, and the handle is released.
        """
        started_at = datetime.now(timezone.utc)
        self._machine.transition(PipelineState.ACQUIRING)
        _LOGGER.info(
            "pipeline_started",
            run_id=self._run_id,
            output_path=str(self._request.output_path),
            batch_size=self._request.batch_size,
            high_water_mark=self._request.high_water_mark,
            started_at=started_at.isoformat(),
        )
        try:
            self._run_leased()
        except RowstreamError as error:
            if self._error is None:
                self._error = error
                _log_stage_failure(self._run_id, self._machine.state, error)
        self._machine.transition(self._terminal_state())
        report = RunReport(
            state=self._machine.state,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            records_read=self._records_read,
            chunks_written=self._chunks_written,
            output_complete=self._output_complete,
            error=self._error,
        )
        _log_pipeline_finished(self._run_id, report, self._backpressure_waits)
        return report

    def _run_leased(self) -> None:
        with leased_handle(self._pool) as handle:
            records: Iterator[Record] | None = None
            try:
                _guarded(SinkError, "sink open", self._sink.open)
                records = _guarded(
                    SourceError,
                    "source open",
                    self._source.open,
                    handle,
                    self._request.query,
                    self._request.params,
                    self._request.batch_size,
                )
                self._machine.transition(PipelineState.STREAMING)
                self._pump(records)
            except RowstreamError as error:
                self._abort(error)
            except BaseException as error:
                self._close_sink_after_failure()
                self._mark_incomplete(f"interrupted by {type(error).__name__}: {error}")
                raise
            finally:
                self._close_source(records)
            if self._error is None:
                self._drain()

    def _pump(self, records: Iterator[Record]) -> None:
        """Pull, transform, and push until exhaustion or cancellation."""
        iterator = iter(records)
        while True:
            if self._cancel_event.is_set():
                self._cancelled = True
                _LOGGER.info(
                    "pipeline_cancel_requested",
                    run_id=self._run_id,
                    records_read=self._records_read,
                )
                return
            record = _guarded(SourceError, "source pull", next, iterator, None)
            if record is None:
                return
            self._records_read += 1
            chunk = self._transform(record)
            ready = _guarded(SinkError, "sink write", self._sink.write, chunk)
            self._chunks_written += 1
            if not ready:
                self._wait_for_sink()

    def _transform(self, record: Record) -> Chunk:
        try:
            return self._transformer.map(record)
        except TransformError:
            raise
        except Exception as error:
            raise TransformError(
                f"Transformer failed on record {self._records_read}: {error!r}. "
                "Transformers must not fail for well-formed records."
            ) from error

    def _wait_for_sink(self) -> None:
        """Block pulling until the sink restores readiness."""
        self._backpressure_waits += 1
        _LOGGER.debug(
            "pipeline_backpressure",
            run_id=self._run_id,
            chunks_written=self._chunks_written,
        )
        _guarded(SinkError, "sink drain", self._sink.drain)

    def _drain(self) -> None:
        self._machine.transition(PipelineState.DRAINING)
        try:
            _guarded(SinkError, "sink close", self._sink.close)
        except RowstreamError as error:
            self._record_failure(error)
            self._mark_incomplete(str(error))
            return
        if self._cancelled:
            self._mark_incomplete(
                f"run {self._run_id} cancelled after {self._records_read} records"
            )
            return
        self._output_complete = True

    def _abort(self, error: RowstreamError) -> None:
        """Record a stage failure, flush what was accepted, and flag the output."""
        self._record_failure(error)
        self._close_sink_after_failure()
        self._mark_incomplete(str(error))

    def _record_failure(self, error: RowstreamError) -> None:
        if self._error is None:
            self._error = error
        _log_stage_failure(self._run_id, self._machine.state, error)

    def _close_sink_after_failure(self) -> None:
        try:
            _guarded(SinkError, "sink close", self._sink.close)
        except RowstreamError as close_error:
            _LOGGER.warning(
                "pipeline_close_failed",
                run_id=self._run_id,
                error_type=type(close_error).__name__,
                error=str(close_error),
            )

    def _mark_incomplete(self, reason: str) -> None:
        try:
            _guarded(SinkError, "sink marker", self._sink.mark_incomplete, reason)
        except RowstreamError as marker_error:
            _LOGGER.warning(
                "pipeline_marker_failed",
                run_id=self._run_id,
                error=str(marker_error),
            )

    def _close_source(self, records: Iterator[Record] | None) -> None:
        """Close the source iterator so its cursor ends before the handle is released."""
        close = getattr(records, "close", None)
        if close is None:
            return
        try:
            _guarded(SourceError, "source close", close)
        except RowstreamError as error:
            if self._error is None:
                self._abort(error)
                return
            _LOGGER.warning(
                "pipeline_source_close_failed",
                run_id=self._run_id,
                error=str(error),
            )

    def _terminal_state(self) -> PipelineState:
        if self._error is not None:
            return PipelineState.FAILED
        if self._cancelled:
            return PipelineState.CANCELLED
        return PipelineState.COMPLETED


def run_export(
    pool: ConnectionPool,
    request: ExportRequest,
    source: RecordSource | None = None,
    transformer: RecordMapper | None = None,
    sink: RecordSink | None = None,
    cancel_event: threading.Event | None = None,
) -> RunReport:
    """Stream a query result into a line file.

    Args:
        pool: Pool supplying the resource handle for this run.
        request: Query, output, and flow-control settings.
        source: Record source; PostgreSQL server-side cursor by default.
        transformer: Record mapper; ``RecordTransformer`` by default.
        sink: Chunk sink; ``FileSink`` on ``request.output_path`` by default.
        cancel_event: Optional event that stops the run cleanly when set.

    Returns:
        Terminal run report.
    """
    runner = ExportPipelineRunner(
        pool=pool,
        source=source or PostgresRecordSource(),
        transformer=transformer or RecordTransformer(),
        sink=sink or FileSink(request.output_path, request.high_water_mark),
        request=request,
        cancel_event=cancel_event,
    )
    return runner.run()


def _log_stage_failure(run_id: str, state: PipelineState, error: RowstreamError) -> None:
    _LOGGER.error(
        "pipeline_stage_failed",
        run_id=run_id,
        state=state.value,
        error_type=type(error).__name__,
        error=str(error),
    )


def _log_pipeline_finished(run_id: str, report: RunReport, backpressure_waits: int) -> None:
    """Log pipeline completion with contextual metadata."""
    fields: dict[str, Any] = dict(report.summary())
    if report.error is not None:
        fields["error_type"] = type(report.error).__name__
        fields["error"] = str(report.error)
    _LOGGER.info(
        "pipeline_finished",
        run_id=run_id,
        backpressure_waits=backpressure_waits,
        **fields,
    )


def _guarded(
    error_type: type[RowstreamError],
    action: str,
    call: Callable[..., _T],
    *args: Any,
) -> _T:
    """Invoke one stage call, wrapping foreign exceptions into ``error_type``."""
    try:
        return call(*args)
    except RowstreamError:
        raise
    except Exception as error:
        raise error_type(f"Unexpected {type(error).__name__} in {action}: {error}") from error
