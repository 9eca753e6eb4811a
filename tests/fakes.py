"""Shared in-memory collaborators for pipeline tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator

from core.errors import ResourceError, SinkError


class FakeHandle:
    """Opaque leased handle."""

    def __init__(self, handle_id: int) -> None:
        self.handle_id = handle_id


class RecordingPool:
    """Pool that counts acquire/release calls."""

    def __init__(self, fail_acquire: bool = False, fail_release: bool = False) -> None:
        self.fail_acquire = fail_acquire
        self.fail_release = fail_release
        self.acquire_count = 0
        self.release_count = 0
        self.released: list[FakeHandle] = []
        self.events: list[str] | None = None

    def acquire(self) -> FakeHandle:
        if self.fail_acquire:
            raise ResourceError("pool exhausted")
        self.acquire_count += 1
        return FakeHandle(self.acquire_count)

    def release(self, handle: FakeHandle) -> None:
        self.release_count += 1
        self.released.append(handle)
        if self.events is not None:
            self.events.append("release")
        if self.fail_release:
            raise ResourceError("pool rejected handle")

    def __enter__(self) -> "RecordingPool":
        return self

    def __exit__(self, *_exc_info: object) -> None:
        return None


def series_rows(
    stop: int,
    events: list[str] | None = None,
    fail_at: int | None = None,
) -> Callable[[Any, str, tuple[Any, ...]], Iterator[dict[str, int]]]:
    """Build a producer yielding ``{"num": 0..stop}`` like ``generate_series``."""

    def produce(_handle: Any, _query: str, _params: tuple[Any, ...]) -> Iterator[dict[str, int]]:
        for num in range(stop + 1):
            if fail_at is not None and num == fail_at:
                raise ConnectionError("server closed the connection unexpectedly")
            if events is not None:
                events.append(f"pull:{num}")
            yield {"num": num}

    return produce


class TickingClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.readings = 0

    def __call__(self) -> datetime:
        value = self._current
        self._current += timedelta(seconds=1)
        self.readings += 1
        return value


class MemorySink:
    """Sink keeping chunks in memory with a bounded pending buffer."""

    def __init__(
        self,
        high_water_mark: int = 4,
        fail_on_write: int | None = None,
        fail_on_close: bool = False,
        events: list[str] | None = None,
    ) -> None:
        self.high_water_mark = high_water_mark
        self.fail_on_write = fail_on_write
        self.fail_on_close = fail_on_close
        self.events = events
        self.pending: list[str] = []
        self.persisted: list[str] = []
        self.opened = False
        self.close_calls = 0
        self.closed = False
        self.drain_calls = 0
        self.max_pending = 0
        self.incomplete_reason: str | None = None

    def open(self) -> None:
        self.opened = True

    def write(self, chunk: str) -> bool:
        if self.fail_on_write is not None and len(self.persisted) + len(self.pending) == (
            self.fail_on_write
        ):
            raise SinkError("disk full")
        self.pending.append(chunk)
        self.max_pending = max(self.max_pending, len(self.pending))
        ready = len(self.pending) < self.high_water_mark
        if self.events is not None:
            self.events.append("write" if ready else "write:not-ready")
        return ready

    def drain(self) -> None:
        self.drain_calls += 1
        if self.events is not None:
            self.events.append("drain")
        self.persisted.extend(self.pending)
        self.pending.clear()

    def close(self) -> None:
        self.close_calls += 1
        if self.closed:
            return
        self.closed = True
        if self.events is not None:
            self.events.append("close")
        if self.fail_on_close:
            raise SinkError("flush failed")
        self.persisted.extend(self.pending)
        self.pending.clear()

    def mark_incomplete(self, reason: str) -> None:
        self.incomplete_reason = reason
