"""Per-source orchestration of KB file ingestion."""

from __future__ import annotations

import gzip
import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Sequence, TextIO

from kbquery.configuration import KBVocabulary, SourceDescriptor
from kbquery.loader.batching import BatchWriter
from kbquery.loader.errors import RowValidationError, SourceAccessError, StorageError
from kbquery.loader.fields import FieldExtractor, tsv_row_to_fields
from kbquery.loader.types import (
    Entry,
    LoaderEvent,
    SourceCounts,
    SourceProgress,
    SourceState,
)


LOGGER = logging.getLogger(__name__)

GZIP_SUFFIX = ".gz"


@contextmanager
def open_source_file(path: Path) -> Iterator[TextIO]:
    """Open a KB file as UTF-8 text, decompressing ``.gz`` files transparently."""
    if not path.is_file() or not os.access(path, os.R_OK):
        raise SourceAccessError(f"Unable to find or read from KB file '{path}'")
    try:
        if path.name.endswith(GZIP_SUFFIX):
            handle = gzip.open(path, "rt", encoding="utf-8")
        else:
            handle = path.open("r", encoding="utf-8")
    except OSError as exc:
        raise SourceAccessError(f"Unable to open KB file '{path}': {exc}") from exc
    try:
        yield handle
    finally:
        handle.close()


class IngestionCoordinator:
    """Load each configured source into a shared entry writer, one at a time.

    Every source moves through ``IDLE -> OPENING -> STREAMING -> CLOSING ->
    DONE``, or ends ``SKIPPED`` when its file cannot be opened. Closing
    flushes the writer (closing it after the final source) and then calls
    ``commit_barrier`` so later sources see earlier writes committed.
    """

    def __init__(
        self,
        sources: Sequence[SourceDescriptor],
        vocabulary: KBVocabulary,
        writer: BatchWriter[Entry],
        *,
        kb_dir: Path,
        max_field_size: int,
        commit_barrier: Callable[[], None] | None = None,
        observers: Sequence[Callable[[LoaderEvent], None]] | None = None,
    ) -> None:
        self._sources = tuple(sources)
        self._vocabulary = vocabulary
        self._writer = writer
        self._kb_dir = Path(kb_dir)
        self._max_field_size = max_field_size
        self._commit_barrier = commit_barrier or (lambda: None)
        self._observers = list(observers or [])
        self._counts = SourceCounts()

    @property
    def counts(self) -> SourceCounts:
        """Counts for the source currently (or most recently) loaded."""
        return self._counts

    @property
    def writer(self) -> BatchWriter[Entry]:
        return self._writer

    def run(self) -> list[SourceProgress]:
        results: list[SourceProgress] = []
        last_index = len(self._sources) - 1
        for index, source in enumerate(self._sources):
            results.append(self.load_source(source, final=index == last_index))
        if not self._writer.closed:
            self._writer.close()
            self._commit_barrier()
        return results

    def load_source(self, source: SourceDescriptor, *, final: bool = False) -> SourceProgress:
        progress = SourceProgress(source=source, started_at=datetime.utcnow())
        self._counts = progress.counts
        self._writer.reset_count()

        progress.state = SourceState.OPENING
        if not source.filename or not source.filename.strip():
            return self._skip(progress, "no filename configured")
        path = self._kb_dir / source.filename
        try:
            with open_source_file(path) as handle:
                progress.state = SourceState.STREAMING
                self._emit("source_start", self._payload(progress))
                self._stream(handle, progress)
        except SourceAccessError as exc:
            return self._skip(progress, str(exc))
        except StorageError as exc:
            progress.error = str(exc)
            LOGGER.error("Store write failed while loading '%s': %s", source.filename, exc)
            self._emit("source_failed", self._payload(progress))
            raise

        progress.state = SourceState.CLOSING
        self._close_source(progress, final=final)
        progress.state = SourceState.DONE
        progress.finished_at = datetime.utcnow()
        self._emit("source_done", self._payload(progress))
        return progress

    def _stream(self, handle: TextIO, progress: SourceProgress) -> None:
        extractor = FieldExtractor(
            progress.source, self._vocabulary, max_field_size=self._max_field_size
        )
        counts = progress.counts
        try:
            for line in handle:
                if not line.strip():
                    continue
                counts.read += 1
                try:
                    entry = extractor.extract(tsv_row_to_fields(line))
                except RowValidationError:
                    counts.rejected += 1
                    continue
                self._writer.add(entry)
                counts.accepted += 1
        except (OSError, EOFError, UnicodeDecodeError) as exc:
            # Rows already accepted stay queued; the source still closes.
            progress.error = f"Read of KB file '{progress.source.filename}' failed: {exc}"
            LOGGER.error("%s. Ending this source early.", progress.error)

    def _close_source(self, progress: SourceProgress, *, final: bool) -> None:
        try:
            if final:
                self._writer.close()
            else:
                self._writer.flush()
            self._commit_barrier()
        except StorageError as exc:
            progress.error = str(exc)
            LOGGER.error(
                "Store write failed while closing '%s': %s", progress.source.filename, exc
            )
            self._emit("source_failed", self._payload(progress))
            raise
        progress.enqueued = self._writer.reset_count()
        if progress.enqueued != progress.counts.accepted:
            LOGGER.warning(
                "KB file '%s' accepted %d entries but enqueued %d",
                progress.source.filename,
                progress.counts.accepted,
                progress.enqueued,
            )
        self._emit("source_closing", self._payload(progress))

    def _skip(self, progress: SourceProgress, reason: str) -> SourceProgress:
        progress.state = SourceState.SKIPPED
        progress.error = reason
        progress.finished_at = datetime.utcnow()
        LOGGER.error("Skipping KB source %s: %s", progress.source.id, reason)
        self._emit("source_skipped", self._payload(progress))
        return progress

    def _payload(self, progress: SourceProgress) -> dict:
        return {
            "source_id": progress.source.id,
            "filename": progress.source.filename,
            "kind": progress.kind.value,
            "state": progress.state.value,
            "error": progress.error,
            "enqueued": progress.enqueued,
            "total": self._writer.total_written,
            **progress.counts.as_dict(),
        }

    def _emit(self, name: str, payload: dict) -> None:
        event = LoaderEvent(timestamp=datetime.utcnow(), name=name, payload=payload)
        for observer in self._observers:
            observer(event)
