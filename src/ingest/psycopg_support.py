"""Lazy psycopg imports.

PostgreSQL drivers load only when a Postgres pool or source is built,
so in-process sources and the test suite do not require libpq.
"""

from __future__ import annotations

from typing import Any

from core.errors import DependencyError


def import_psycopg() -> Any:
    """Import and return the psycopg module.

    Raises:
        DependencyError: If psycopg is not installed.
    """
    try:
        import psycopg
        import psycopg.rows
    except ImportError as error:
        raise DependencyError(
            "PostgreSQL sources require psycopg, but it is not installed. "
            "Install psycopg[binary] to stream from PostgreSQL."
        ) from error
    return psycopg


def import_psycopg_pool() -> Any:
    """Import and return the psycopg_pool module.

    Raises:
        DependencyError: If psycopg-pool is not installed.
    """
    try:
        import psycopg_pool
    except ImportError as error:
        raise DependencyError(
            "PostgreSQL pooling requires psycopg-pool, but it is not installed. "
            "Install psycopg-pool to lease connections from a pool."
        ) from error
    return psycopg_pool
