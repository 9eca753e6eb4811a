"""Connection pool contract and scoped handle leases.

The pipeline driver receives a pool object explicitly and leases one
handle per run. The lease releases the handle on every exit path.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from core.config import RowstreamConfig
from core.constants import DEFAULT_ACQUIRE_TIMEOUT_SECONDS
from core.errors import ResourceError
from core.logging_config import get_logger
from ingest.psycopg_support import import_psycopg, import_psycopg_pool

_LOGGER = get_logger(__name__)


class ConnectionPool(Protocol):
    """Pool contract consumed by the pipeline driver."""

    def acquire(self) -> Any:
        """Return a leased handle or raise ResourceError."""

    def release(self, handle: Any) -> None:
        """Return a handle to the pool."""


@contextmanager
def leased_handle(pool: ConnectionPool) -> Iterator[Any]:
    """Lease one handle and release it exactly once on exit.

    Args:
        pool: Pool supplying handles.

    Yields:
        The leased handle.

    Raises:
        ResourceError: If acquisition fails, or release fails after a clean
            exit. A release failure while another exception propagates is
            logged and the original exception is kept.
    """
    handle = pool.acquire()
    try:
        yield handle
    except BaseException as error:
        _release_after_failure(pool, handle, error)
        raise
    pool.release(handle)
    _LOGGER.debug("handle_released", pool=type(pool).__name__)


def _release_after_failure(pool: ConnectionPool, handle: Any, pending: BaseException) -> None:
    try:
        pool.release(handle)
    except ResourceError as release_error:
        _LOGGER.error(
            "handle_release_failed",
            pool=type(pool).__name__,
            error=str(release_error),
            pending_error_type=type(pending).__name__,
            pending_error=str(pending),
        )
        return
    _LOGGER.debug("handle_released", pool=type(pool).__name__)


class PostgresConnectionPool:
    """Adapter exposing ``psycopg_pool.ConnectionPool`` as a ConnectionPool."""

    def __init__(self, pool: Any, open_timeout: float = DEFAULT_ACQUIRE_TIMEOUT_SECONDS) -> None:
        """Wrap an already-constructed psycopg pool.

        Args:
            pool: Object with ``getconn``/``putconn``/``open``/``close``.
            open_timeout: Seconds to wait for the minimum connections on open.
        """
        self._pool = pool
        self._open_timeout = open_timeout
        self._psycopg = import_psycopg()

    @classmethod
    def from_config(cls, config: RowstreamConfig) -> "PostgresConnectionPool":
        """Build a closed pool from runtime configuration.

        Args:
            config: Runtime configuration.

        Returns:
            Pool adapter; call ``open()`` or use it as a context manager.
        """
        psycopg_pool = import_psycopg_pool()
        pool = psycopg_pool.ConnectionPool(
            conninfo=config.database_url,
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            timeout=config.acquire_timeout,
            open=False,
        )
        return cls(pool, open_timeout=config.acquire_timeout)

    def open(self) -> None:
        """Open the pool and wait for its minimum connections.

        The wait is bounded by ``open_timeout``.

        Raises:
            ResourceError: If the database is unreachable within the timeout.
        """
        try:
            self._pool.open(wait=True, timeout=self._open_timeout)
        except self._psycopg.Error as error:
            raise ResourceError(
                f"Failed to open connection pool: {error}. "
                "Check ROWSTREAM_DATABASE_URL and that the database is reachable."
            ) from error

    def close(self) -> None:
        """Close the pool and all idle connections."""
        self._pool.close()

    def acquire(self) -> Any:
        """Lease a connection from the pool.

        Raises:
            ResourceError: If no connection becomes available.
        """
        try:
            return self._pool.getconn()
        except self._psycopg.Error as error:
            raise ResourceError(
                f"Failed to acquire a database connection: {error}. "
                "Raise ROWSTREAM_ACQUIRE_TIMEOUT or ROWSTREAM_POOL_MAX_SIZE."
            ) from error

    def release(self, handle: Any) -> None:
        """Return a connection to the pool.

        Raises:
            ResourceError: If the pool rejects the connection.
        """
        try:
            self._pool.putconn(handle)
        except self._psycopg.Error as error:
            raise ResourceError(f"Failed to release database connection: {error}.") from error

    def __enter__(self) -> "PostgresConnectionPool":
        self.open()
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()
