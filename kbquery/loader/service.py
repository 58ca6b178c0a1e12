"""High-level service orchestration for KB load runs."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Callable, Sequence

from kbquery.configuration import ConfigurationError, KBQueryConfig
from kbquery.loader.batching import BatchWriter
from kbquery.loader.coordinator import IngestionCoordinator
from kbquery.loader.keyfill import KeyFillPass
from kbquery.loader.observers import (
    ThroughputTracker,
    logging_observer,
    observability_observer,
)
from kbquery.loader.storage import KBStore
from kbquery.loader.types import Entry, LoaderEvent, LoadResult
from kbquery.observability import get_event_recorder
from kbquery.reporting import LoadReport
from kbquery.transforms import KeyTransformEngine, TransformRegistry

LoaderObserver = Callable[[LoaderEvent], None]


def _default_observers(config: KBQueryConfig) -> list[LoaderObserver]:
    observers: list[LoaderObserver] = [observability_observer]
    if config.observability.verbose:
        observers.insert(0, logging_observer)
    return observers


def _collecting(events: list[LoaderEvent]) -> LoaderObserver:
    return events.append


def bootstrap_store(store: KBStore, config: KBQueryConfig, *, reset: bool) -> None:
    """Prepare the schema and copy the label, namespace and source dictionaries."""
    vocabulary = config.vocabulary()
    if reset:
        store.reset()
        store.load_vocabulary(vocabulary)
        store.load_sources(config.sources)
    else:
        store.create_tables()
        conflicts = store.sync_vocabulary(vocabulary, config.sources)
        if conflicts:
            raise ConfigurationError(
                "Stored dictionaries do not match the configuration: " + "; ".join(conflicts)
            )
    store.commit()


def run_load(
    config: KBQueryConfig,
    *,
    observers: Sequence[LoaderObserver] | None = None,
    registry: TransformRegistry | None = None,
    fill_keys: bool = True,
    store: KBStore | None = None,
) -> LoadResult:
    """Load every configured source and then fill the keys table.

    Configuration errors are raised before any file or database I/O. Store
    write failures propagate after being recorded as ``load.error``.
    """
    config.validate(registry)
    recorder = get_event_recorder("loader.service")
    engine = KeyTransformEngine(registry, config.loader.default_transforms)
    tracker = ThroughputTracker()
    events: list[LoaderEvent] = []
    all_observers = [
        *(observers if observers is not None else _default_observers(config)),
        tracker,
        _collecting(events),
    ]
    run_id = uuid.uuid4().hex
    started_at = datetime.utcnow()
    recorder.record(
        name="load.start",
        payload={
            "run_id": run_id,
            "source_count": len(config.sources),
            "database_url": config.database_url,
        },
    )

    owns_store = store is None
    store = store or KBStore(config.database_url)
    try:
        bootstrap_store(store, config, reset=config.loader.reset_schema)
        writer: BatchWriter[Entry] = BatchWriter(
            store.write_entries,
            config.loader.batch_size,
            name="entries",
            observers=all_observers,
        )
        coordinator = IngestionCoordinator(
            config.sources,
            config.vocabulary(),
            writer,
            kb_dir=config.kb_dir,
            max_field_size=config.loader.max_field_size,
            commit_barrier=store.commit,
            observers=all_observers,
        )
        progress = coordinator.run()
        total_keys = 0
        if fill_keys:
            total_keys = KeyFillPass(
                store,
                engine,
                config.source_pipelines(),
                batch_size=config.loader.batch_size,
                observers=all_observers,
            ).run()
        result = LoadResult(
            run_id=run_id,
            sources=progress,
            total_entries=writer.total_written,
            total_keys=total_keys,
            started_at=started_at,
            finished_at=datetime.utcnow(),
            events=events,
        )
        report = LoadReport.from_result(result)
        store.record_run(
            run_id,
            started_at=result.started_at,
            finished_at=result.finished_at,
            total_entries=result.total_entries,
            total_keys=result.total_keys,
            report=report.model_dump(mode="json"),
        )
    except Exception as exc:
        recorder.record(name="load.error", payload={"run_id": run_id, "error": str(exc)})
        raise
    finally:
        if owns_store:
            store.close()

    recorder.record(
        name="load.complete",
        payload={
            "run_id": run_id,
            "total_entries": result.total_entries,
            "total_keys": result.total_keys,
            "throughput": tracker.summary(),
        },
    )
    return result


def run_key_fill(
    config: KBQueryConfig,
    *,
    observers: Sequence[LoaderObserver] | None = None,
    registry: TransformRegistry | None = None,
    store: KBStore | None = None,
) -> int:
    """Regenerate the keys table from the stored entries only.

    The per-source pipelines come from the current configuration, so a
    changed transform list takes effect without re-reading any KB file.
    """
    config.validate(registry)
    recorder = get_event_recorder("loader.service")
    engine = KeyTransformEngine(registry, config.loader.default_transforms)
    owns_store = store is None
    store = store or KBStore(config.database_url)
    recorder.record(name="keyfill.start", payload={"database_url": config.database_url})
    try:
        store.create_tables()
        total = KeyFillPass(
            store,
            engine,
            config.source_pipelines(),
            batch_size=config.loader.batch_size,
            observers=list(observers if observers is not None else _default_observers(config)),
        ).run()
    except Exception as exc:
        recorder.record(name="keyfill.error", payload={"error": str(exc)})
        raise
    finally:
        if owns_store:
            store.close()
    recorder.record(name="keyfill.complete", payload={"total_keys": total})
    return total
