"""Shared loader dataclasses and type definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from kbquery.configuration import SourceDescriptor, SourceKind


Metadata = Dict[str, Any]

HUMAN = "human"
NO_SPECIES = ""


class Priority(enum.IntEnum):
    """Precedence of an entry when resolving conflicts downstream."""

    DEFAULT = 1
    OVERRIDE = 2


@dataclass(slots=True, frozen=True)
class Entry:
    """Canonical record for one entity occurrence in a KB file."""

    text: str
    namespace: str
    external_id: str
    label: str
    is_gene_name: bool = False
    is_short_name: bool = False
    species: str = NO_SPECIES
    priority: Priority = Priority.DEFAULT
    source_id: int = 0


@dataclass(slots=True, frozen=True)
class Key:
    """Normalized lookup text referencing a stored entry by uid."""

    text: str
    entry_id: int


@dataclass(slots=True, frozen=True)
class StoredEntry:
    """An entry read back from the store for key generation."""

    entry_id: int
    text: str
    source_id: int


class SourceState(str, enum.Enum):
    IDLE = "idle"
    OPENING = "opening"
    STREAMING = "streaming"
    CLOSING = "closing"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass(slots=True)
class SourceCounts:
    """Per-source row accounting."""

    read: int = 0
    accepted: int = 0
    rejected: int = 0

    def snapshot(self) -> "SourceCounts":
        return SourceCounts(read=self.read, accepted=self.accepted, rejected=self.rejected)

    def reset(self) -> "SourceCounts":
        """Zero the counters and return their values before the reset."""
        previous = self.snapshot()
        self.read = self.accepted = self.rejected = 0
        return previous

    def as_dict(self) -> dict[str, int]:
        return {"read": self.read, "accepted": self.accepted, "rejected": self.rejected}


@dataclass(slots=True)
class SourceProgress:
    """State and counts for one source during a load run."""

    source: SourceDescriptor
    state: SourceState = SourceState.IDLE
    counts: SourceCounts = field(default_factory=SourceCounts)
    enqueued: int = 0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def kind(self) -> SourceKind:
        return self.source.kind


@dataclass(slots=True)
class LoaderEvent:
    """Event emitted from the loader for observability hooks."""

    timestamp: datetime
    name: str
    payload: Metadata


@dataclass(slots=True)
class LoadResult:
    """Final outcome of a load run."""

    run_id: str
    sources: List[SourceProgress]
    total_entries: int
    total_keys: int
    started_at: datetime
    finished_at: datetime
    events: List[LoaderEvent] = field(default_factory=list)
