"""Observers collecting loader throughput metrics."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict

from kbquery.loader.types import LoaderEvent


@dataclass
class ThroughputTracker:
    """Collect flush counts and per-source durations from loader events."""

    flushes: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    records: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    source_seconds: Dict[str, float] = field(default_factory=dict)
    _started: Dict[str, datetime] = field(default_factory=dict, repr=False)

    def __call__(self, event: LoaderEvent) -> None:
        if event.name == "batch_flushed":
            stream = str(event.payload.get("stream"))
            self.flushes[stream] += 1
            self.records[stream] += int(event.payload.get("count", 0))
        elif event.name == "source_start":
            self._started[str(event.payload.get("filename"))] = event.timestamp
        elif event.name in ("source_done", "source_failed"):
            filename = str(event.payload.get("filename"))
            started = self._started.pop(filename, None)
            if started is not None:
                self.source_seconds[filename] = (event.timestamp - started).total_seconds()

    def summary(self) -> dict[str, dict[str, float]]:
        return {
            stream: {
                "flushes": count,
                "records": self.records.get(stream, 0),
                "avg_batch": self.records.get(stream, 0) / count,
            }
            for stream, count in self.flushes.items()
        }
