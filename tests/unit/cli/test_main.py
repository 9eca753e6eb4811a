"""Unit tests for CLI command handling."""

from __future__ import annotations

import json
import os
import signal
import threading
from pathlib import Path
from typing import Any, Iterator

import pytest

import cli.main as cli_main
from cli.main import _cancel_on_interrupt, main
from core.config import RowstreamConfig
from ingest.export_client import ExportClient
from ingest.record_source import IterableRecordSource
from tests.fakes import RecordingPool


def _series_from_params(_handle: Any, _query: str, params: tuple[Any, ...]) -> Iterator[dict]:
    for num in range(int(params[0]) + 1):
        yield {"num": num}


def _broken_producer(_handle: Any, _query: str, _params: tuple[Any, ...]) -> Iterator[dict]:
    yield {"num": 0}
    raise ConnectionError("terminating connection due to administrator command")


def _interrupting_producer(_handle: Any, _query: str, params: tuple[Any, ...]) -> Iterator[dict]:
    for num in range(int(params[0]) + 1):
        if num == 3:
            os.kill(os.getpid(), signal.SIGINT)
        yield {"num": num}


def _install_client(monkeypatch: pytest.MonkeyPatch, producer: Any) -> list[RecordingPool]:
    pools: list[RecordingPool] = []

    def build_pool(_config: RowstreamConfig) -> RecordingPool:
        pool = RecordingPool()
        pools.append(pool)
        return pool

    def build_client(config: RowstreamConfig) -> ExportClient:
        return ExportClient(
            config,
            pool_factory=build_pool,
            source_factory=lambda: IterableRecordSource(producer),
        )

    monkeypatch.setattr(cli_main, "_build_client", build_client)
    return pools


def test_cli_export_writes_file_and_prints_summary(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """CLI export should write one line per row and print a JSON summary."""
    pools = _install_client(monkeypatch, _series_from_params)
    output_path = tmp_path / "output.csv"

    exit_code = main(["export", str(output_path), "--upper-bound", "2", "--batch-size", "2"])
    summary = json.loads(capsys.readouterr().out.strip())

    assert exit_code == 0 and summary["state"] == "completed"
    assert summary["records_read"] == 3
    assert len(output_path.read_text(encoding="utf-8").splitlines()) == 3
    assert pools[0].release_count == 1


def test_cli_export_failure_exits_non_zero(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Failed runs should exit 1 and print the error object on stderr."""
    _install_client(monkeypatch, _broken_producer)
    output_path = tmp_path / "output.csv"

    exit_code = main(["export", str(output_path), "--query", "SELECT num FROM t"])
    captured = capsys.readouterr()

    assert exit_code == 1
    assert json.loads(captured.out.strip())["state"] == "failed"
    error_lines = [line for line in captured.err.splitlines() if '"error_message"' in line]
    assert json.loads(error_lines[-1])["error_type"] == "SourceError"
    assert (tmp_path / "output.csv.incomplete").exists()


def test_cli_rejects_param_without_query(tmp_path: Path) -> None:
    """Positional params only make sense with a custom query."""
    with pytest.raises(SystemExit) as exit_info:
        main(["export", str(tmp_path / "out.csv"), "--param", "5"])

    assert exit_info.value.code == 2


def test_cli_reports_invalid_environment(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Invalid env config should exit 1 before any run starts."""
    monkeypatch.setenv("ROWSTREAM_BATCH_SIZE", "lots")

    exit_code = main(["export", str(tmp_path / "out.csv")])

    assert exit_code == 1
    assert "ConfigError" in capsys.readouterr().err


def test_cli_sigint_cancels_run_cleanly(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """SIGINT mid-run should cancel, exit 130, and restore the previous handler."""
    pools = _install_client(monkeypatch, _interrupting_producer)
    output_path = tmp_path / "output.csv"
    handler_before = signal.getsignal(signal.SIGINT)

    exit_code = main(["export", str(output_path), "--upper-bound", "100", "--batch-size", "1"])
    captured = capsys.readouterr()
    summary = json.loads(captured.out.strip())

    assert exit_code == 130 and summary["state"] == "cancelled"
    assert summary["records_read"] < 101
    assert '"error_message"' not in captured.err
    assert (tmp_path / "output.csv.incomplete").exists()
    assert pools[0].release_count == 1
    assert signal.getsignal(signal.SIGINT) is handler_before


def test_cancel_on_interrupt_sets_event_and_restores_handler() -> None:
    """The installed SIGINT handler should only set the cancel event."""
    cancel_event = threading.Event()
    handler_before = signal.getsignal(signal.SIGINT)

    with _cancel_on_interrupt(cancel_event):
        handler = signal.getsignal(signal.SIGINT)
        assert callable(handler) and handler is not handler_before
        handler(signal.SIGINT, None)

    assert cancel_event.is_set()
    assert signal.getsignal(signal.SIGINT) is handler_before
