"""Rowstream CLI entry points.
This module exposes the ``export`` command for streaming query results.
It maps argparse options onto config, request, and client calls.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterator, Sequence

from core.config import RowstreamConfig
from core.constants import (
    DEFAULT_SERIES_QUERY,
    DEFAULT_SERIES_UPPER_BOUND,
    EXIT_CODE_FAILED,
    SUPPORTED_LOG_LEVELS,
)
from core.errors import RowstreamError
from core.logging_config import configure_logging
from core.types import ExportRequest
from ingest.export_client import ExportClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="rowstream", description="Stream query results into line files"
    )
    parser.add_argument("--database-url", help="Override ROWSTREAM_DATABASE_URL for this command")
    parser.add_argument(
        "--log-level",
        choices=SUPPORTED_LOG_LEVELS,
        help="Override ROWSTREAM_LOG_LEVEL for this command",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_export_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Rowstream CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args)
    except RowstreamError as error:
        _print_error(_error_payload(error))
        return EXIT_CODE_FAILED
    configure_logging(config.log_level)
    if args.command == "export":
        if args.param and args.query is None:
            parser.error("--param requires --query")
        return _run_export_command(_build_client(config), args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(args: argparse.Namespace) -> RowstreamConfig:
    """Load env config and apply command-line overrides.

    Args:
        args: Parsed CLI args.

    Returns:
        Effective runtime configuration.
    """
    config = RowstreamConfig.from_env()
    if args.database_url:
        config = replace(config, database_url=args.database_url)
    if args.log_level:
        config = replace(config, log_level=args.log_level)
    return config


def _build_client(config: RowstreamConfig) -> ExportClient:
    """Build the export client for a command run."""
    return ExportClient(config)


def _run_export_command(client: ExportClient, args: argparse.Namespace) -> int:
    """Handle export command.

    Args:
        client: Export client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    request = _build_export_request(client.config, args)
    cancel_event = threading.Event()
    try:
        with _cancel_on_interrupt(cancel_event):
            report = client.export(request, cancel_event=cancel_event)
    except RowstreamError as error:
        _print_error(_error_payload(error))
        return EXIT_CODE_FAILED
    print(json.dumps(report.summary(), sort_keys=True))
    error_payload = report.error_payload()
    if error_payload is not None:
        _print_error(error_payload)
    return report.exit_code


def _build_export_request(config: RowstreamConfig, args: argparse.Namespace) -> ExportRequest:
    """Build an export request from config defaults and CLI args."""
    if args.query is None:
        query = DEFAULT_SERIES_QUERY
        params: tuple[Any, ...] = (args.upper_bound,)
    else:
        query = args.query
        params = tuple(args.param)
    return ExportRequest(
        query=query,
        params=params,
        output_path=Path(args.output).expanduser(),
        batch_size=args.batch_size or config.batch_size,
        high_water_mark=args.high_water_mark or config.high_water_mark,
    )


@contextmanager
def _cancel_on_interrupt(cancel_event: threading.Event) -> Iterator[None]:
    """Turn SIGINT into a clean pipeline cancel for the duration of a run."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous_handler = signal.signal(signal.SIGINT, lambda _signum, _frame: cancel_event.set())
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous_handler)


def _error_payload(error: RowstreamError) -> dict[str, str]:
    return {"error_type": type(error).__name__, "error_message": str(error)}


def _print_error(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, sort_keys=True), file=sys.stderr)


def _positive_int(raw_value: str) -> int:
    """Argparse type for integers >= 1."""
    try:
        value = int(raw_value)
    except ValueError as error:
        raise argparse.ArgumentTypeError(f"expected an integer, got '{raw_value}'") from error
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a value >= 1, got {value}")
    return value


def _add_export_command(subparsers: Any) -> None:
    """Register export subcommand.

    Args:
        subparsers: Argparse subparsers handle.
    """
    parser = subparsers.add_parser("export", help="Stream a query result into a line file")
    parser.add_argument("output", help="Output file path, truncated at run start")
    parser.add_argument("--query", help="SQL with %%s placeholders; defaults to a generate_series")
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        help="Positional query parameter, repeatable",
    )
    parser.add_argument(
        "--upper-bound",
        type=int,
        default=DEFAULT_SERIES_UPPER_BOUND,
        help="Upper bound of the default generate_series query",
    )
    parser.add_argument(
        "--batch-size",
        type=_positive_int,
        help="Rows per fetch round trip; overrides ROWSTREAM_BATCH_SIZE",
    )
    parser.add_argument(
        "--high-water-mark",
        type=_positive_int,
        help="Buffered lines before backpressure; overrides ROWSTREAM_HIGH_WATER_MARK",
    )
