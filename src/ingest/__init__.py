"""Record sources and pipeline orchestration.

This module leases resource handles, opens record sources over them,
and drives records through the transform into the sink.
"""
