"""
Reusable scratch objects for the poll loop.

A long-running exporter decodes the same kind of document every cycle; the
per-kind record lists and the read buffer are recycled instead of being
allocated again. Objects are reset before they are handed out and go back to
the free list on every exit path of `Pool.acquire()`.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from collections import deque
from typing import Callable, Deque, Dict, Generic, Iterator, List, Protocol, TypeVar

from core.models import MetricKind

DEFAULT_BUFFER_SIZE = 256 * 1024


class Resettable(Protocol):
    def reset(self) -> None: ...


T = TypeVar("T", bound=Resettable)


class Pool(Generic[T]):
    """
    Typed free list of resettable objects.

    Each `acquire()` owns its object exclusively until it exits, so two
    overlapping cycles never share one. The free list itself is guarded by a
    lock and may be used from several threads.
    """

    def __init__(self, factory: Callable[[], T], max_idle: int = 4):
        self._factory = factory
        self._idle: Deque[T] = deque()
        self._max_idle = max(0, max_idle)
        self._lock = threading.Lock()

        # Stats
        self.created = 0
        self.reused = 0

    def get(self) -> T:
        with self._lock:
            item = self._idle.pop() if self._idle else None
            if item is None:
                self.created += 1
            else:
                self.reused += 1
        if item is None:
            item = self._factory()
        item.reset()
        return item

    def release(self, item: T) -> None:
        with self._lock:
            if len(self._idle) < self._max_idle:
                self._idle.append(item)

    @contextmanager
    def acquire(self) -> Iterator[T]:
        item = self.get()
        try:
            yield item
        finally:
            self.release(item)

    def __len__(self) -> int:
        with self._lock:
            return len(self._idle)


class PooledBuffer:
    """Fixed-capacity byte buffer; `reset()` keeps the allocation."""

    def __init__(self, capacity: int = DEFAULT_BUFFER_SIZE):
        if capacity <= 0:
            raise ValueError("buffer capacity must be positive")
        self._data = bytearray(capacity)
        self._view = memoryview(self._data)
        self.length = 0

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def free(self) -> int:
        return len(self._data) - self.length

    def write(self, chunk: bytes) -> int:
        """Copy as much of `chunk` as fits; returns the number of bytes taken."""
        n = min(len(chunk), self.free)
        if n:
            self._view[self.length:self.length + n] = chunk[:n]
            self.length += n
        return n

    def drain(self) -> bytes:
        """Return the buffered bytes and empty the buffer."""
        data = bytes(self._view[:self.length])
        self.length = 0
        return data

    def reset(self) -> None:
        self.length = 0

    def __len__(self) -> int:
        return self.length


@dataclass
class RawRecord:
    """Decoded but not yet frozen metric element."""
    timestamp: datetime
    value: float
    unit: str = ""


class PooledDocument:
    """Per-kind record lists filled by one decode cycle."""

    def __init__(self):
        self.station = ""
        self.records: Dict[MetricKind, List[RawRecord]] = {kind: [] for kind in MetricKind}

    def append(self, kind: MetricKind, record: RawRecord) -> None:
        self.records[kind].append(record)

    def reset(self) -> None:
        self.station = ""
        for records in self.records.values():
            records.clear()

    def __len__(self) -> int:
        return sum(len(r) for r in self.records.values())
