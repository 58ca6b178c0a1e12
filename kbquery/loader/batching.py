"""Bounded batch accumulation with synchronous flushing."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Generic, Iterable, List, Sequence, TypeVar

from kbquery.loader.errors import BatchWriterClosedError
from kbquery.loader.types import LoaderEvent


LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

BatchSink = Callable[[Sequence[T]], int]


class BatchWriter(Generic[T]):
    """Accumulate records and write them to a sink in fixed-size batches.

    ``add`` blocks while a full batch is written, which bounds memory use and
    serializes writes against the store. Items reach the sink in the order
    they were added. A sink failure propagates to the caller and leaves the
    pending batch in place.
    """

    def __init__(
        self,
        sink: BatchSink,
        capacity: int,
        *,
        name: str = "batch",
        observers: Sequence[Callable[[LoaderEvent], None]] | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"Batch capacity must be positive, got {capacity}")
        self._sink = sink
        self._capacity = capacity
        self._name = name
        self._observers = list(observers or [])
        self._pending: List[T] = []
        self._closed = False
        self._flush_count = 0
        self._total_written = 0
        self._added_since_reset = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def pending(self) -> tuple[T, ...]:
        return tuple(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def flush_count(self) -> int:
        """Number of batches handed to the sink."""
        return self._flush_count

    @property
    def total_written(self) -> int:
        return self._total_written

    def add(self, item: T) -> None:
        if self._closed:
            raise BatchWriterClosedError(f"Cannot add to closed batch writer '{self._name}'")
        self._pending.append(item)
        self._added_since_reset += 1
        if len(self._pending) >= self._capacity:
            self.flush()

    def add_all(self, items: Iterable[T]) -> None:
        for item in items:
            self.add(item)

    def flush(self) -> int:
        """Write any pending items and return how many the sink wrote."""
        if not self._pending:
            return 0
        batch = list(self._pending)
        written = self._sink(batch)
        self._pending.clear()
        self._flush_count += 1
        self._total_written += written
        LOGGER.debug(
            "Flushed %d %s record(s); total written %d", written, self._name, self._total_written
        )
        self._emit(
            "batch_flushed",
            {"stream": self._name, "count": written, "total": self._total_written},
        )
        return written

    def close(self) -> int:
        """Flush the remaining items; later ``add`` calls are an error."""
        if self._closed:
            return 0
        written = self.flush()
        self._closed = True
        return written

    def reset_count(self) -> int:
        """Return the number of items added since the last reset and restart the count."""
        count = self._added_since_reset
        self._added_since_reset = 0
        return count

    def _emit(self, name: str, payload: dict) -> None:
        event = LoaderEvent(timestamp=datetime.utcnow(), name=name, payload=payload)
        for observer in self._observers:
            observer(event)
