"""Output sinks.

This module persists rendered chunks with bounded buffering and
reports readiness back to the pipeline driver.
"""
