"""Regenerate lookup keys from already-persisted entries."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Mapping, Sequence

from kbquery.loader.batching import BatchWriter
from kbquery.loader.errors import PipelineExecutionError
from kbquery.loader.storage import KBStore
from kbquery.loader.types import Key, LoaderEvent, StoredEntry
from kbquery.transforms import KeyTransformEngine, UnknownTransformError


LOGGER = logging.getLogger(__name__)


class KeyFillPass:
    """Stream stored entries and write the keys derived from their text.

    The pipeline for each entry is looked up by the entry's source id;
    entries from unknown sources use the engine's default pipeline. Existing
    keys are cleared first, so the pass can be re-run after a transform
    configuration change without reloading entries.
    """

    def __init__(
        self,
        store: KBStore,
        engine: KeyTransformEngine,
        pipelines: Mapping[int, Sequence[str]] | None = None,
        *,
        batch_size: int,
        writer: BatchWriter[Key] | None = None,
        observers: Sequence[Callable[[LoaderEvent], None]] | None = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._pipelines = {
            source_id: tuple(names) for source_id, names in (pipelines or {}).items()
        }
        self._batch_size = batch_size
        self._observers = list(observers or [])
        self._writer = writer or BatchWriter(
            store.write_keys, batch_size, name="keys", observers=self._observers
        )

    @property
    def writer(self) -> BatchWriter[Key]:
        return self._writer

    def pipeline_for(self, source_id: int) -> tuple[str, ...]:
        return self._pipelines.get(source_id, self._engine.default_pipeline)

    def generate_keys(self, stored: StoredEntry) -> list[Key]:
        pipeline = self.pipeline_for(stored.source_id)
        try:
            texts = self._engine.ordered_keys(stored.text, pipeline)
        except UnknownTransformError as exc:
            raise PipelineExecutionError(
                f"Source {stored.source_id} key pipeline cannot run: {exc}"
            ) from exc
        return [Key(text=text, entry_id=stored.entry_id) for text in texts]

    def run(self) -> int:
        """Rebuild every key and return how many were written."""
        LOGGER.info("Filling keys table....")
        cleared = self._store.clear_keys()
        if cleared:
            LOGGER.debug("Cleared %d existing key(s)", cleared)
        self._emit("keyfill_start", {"cleared": cleared})

        entry_count = 0
        for stored in self._store.iter_entries(page_size=self._batch_size):
            entry_count += 1
            self._writer.add_all(self.generate_keys(stored))
        self._writer.close()
        self._store.commit()

        total = self._writer.total_written
        self._emit("keyfill_done", {"entries": entry_count, "keys": total})
        return total

    def _emit(self, name: str, payload: dict) -> None:
        event = LoaderEvent(timestamp=datetime.utcnow(), name=name, payload=payload)
        for observer in self._observers:
            observer(event)
