"""Rowstream exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each pipeline stage raises a specific error type for debuggability.
"""

from __future__ import annotations


class RowstreamError(Exception):
    """Base exception for all Rowstream failures."""


class ConfigError(RowstreamError):
    """Raised for invalid runtime configuration."""


class DependencyError(RowstreamError):
    """Raised when an optional runtime dependency is missing."""


class SourceError(RowstreamError):
    """Raised when fetching records from the source fails."""


class ResourceError(SourceError):
    """Raised when a resource handle cannot be acquired or released."""


class TransformError(RowstreamError):
    """Raised when a record violates the transformer contract."""


class SinkError(RowstreamError):
    """Raised for sink write, flush, and close failures."""


class PipelineStateError(RowstreamError):
    """Raised for illegal pipeline state transitions."""
