from __future__ import annotations

import logging
from datetime import datetime, timedelta

from kbquery.loader import LoaderEvent
from kbquery.loader.observers import ThroughputTracker, logging_observer, observability_observer
from kbquery.observability import (
    EventRecorder,
    ServiceEvent,
    attach_persistent_observer,
    get_event_recorder,
    reset_event_recorder,
)
from kbquery.observability.storage import EventLogStore


def test_event_recorder_scoped_paths_propagate_events() -> None:
    events: list[ServiceEvent] = []
    recorder = EventRecorder()
    recorder.register(events.append)
    scoped = recorder.scoped("loader.pipeline")

    event = scoped.record("source_done", {"accepted": 3})

    assert event.service == "loader.pipeline"
    assert events and events[0].name == "source_done"
    assert events[0].payload["accepted"] == 3


def test_event_recorder_namespace_stack() -> None:
    root = EventRecorder()
    nested = root.scoped("loader").scoped("service")

    assert nested.record("load.start", {}).service == "loader.service"


def test_get_event_recorder_returns_global_singleton() -> None:
    reset_event_recorder()

    assert get_event_recorder() is get_event_recorder()


def test_failing_observer_does_not_interrupt_others(caplog) -> None:
    events: list[ServiceEvent] = []
    recorder = EventRecorder()

    def broken(event: ServiceEvent) -> None:
        raise RuntimeError("boom")

    recorder.register(broken)
    recorder.register(events.append)
    with caplog.at_level(logging.ERROR):
        recorder.record("load.start")

    assert len(events) == 1
    assert "Event observer failed" in caplog.text


def test_scoped_recorder_unregister_affects_root() -> None:
    events: list[ServiceEvent] = []
    recorder = EventRecorder()
    scoped = recorder.scoped("loader")
    scoped.register(events.append)

    recorder.record("inside")
    scoped.unregister(events.append)
    recorder.record("outside")

    assert [event.name for event in events] == ["inside"]


def test_event_log_store_filters_by_run_id(tmp_path) -> None:
    store = EventLogStore(f"sqlite:///{tmp_path / 'events.db'}")
    now = datetime.utcnow()
    store.persist_events(
        [
            ServiceEvent(now, "loader.service", "load.start", {"run_id": "run-a"}),
            ServiceEvent(now, "loader.service", "load.start", {"run_id": "run-b"}),
            ServiceEvent(now, "loader.cli", "run.start", {}),
        ]
    )

    events = store.fetch_events(run_id="run-b")
    store.close()

    assert [event.payload["run_id"] for event in events] == ["run-b"]


def test_event_log_store_persist_and_filter(tmp_path) -> None:
    store = EventLogStore(f"sqlite:///{tmp_path / 'events.db'}")
    now = datetime.utcnow()
    store.persist_events(
        [
            ServiceEvent(timestamp=now, service="loader.service", name="load.start", payload={}),
            ServiceEvent(
                timestamp=now + timedelta(seconds=1),
                service="loader.pipeline",
                name="source_done",
                payload={"finished": now},
            ),
        ]
    )

    pipeline_events = store.fetch_events(service="loader.pipeline")
    store.close()

    assert len(pipeline_events) == 1
    assert pipeline_events[0].payload["finished"] == str(now)


def test_attach_persistent_observer_records_events(tmp_path) -> None:
    store = EventLogStore(f"sqlite:///{tmp_path / 'events.db'}")
    recorder = EventRecorder()

    remove = attach_persistent_observer(recorder, store)
    recorder.record("test", {"value": 1})
    remove()
    recorder.record("after_remove", {})

    events = store.fetch_events()
    store.close()
    assert [event.name for event in events] == ["test"]


def test_observability_observer_forwards_loader_events() -> None:
    events: list[ServiceEvent] = []
    get_event_recorder().register(events.append)
    stamp = datetime(2024, 5, 1)

    observability_observer(LoaderEvent(timestamp=stamp, name="batch_flushed", payload={"count": 2}))

    assert events[0].service == "loader.pipeline"
    assert events[0].timestamp == stamp
    assert events[0].payload == {"count": 2}


def test_logging_observer_reports_source_completion(caplog) -> None:
    event = LoaderEvent(
        timestamp=datetime.utcnow(),
        name="source_done",
        payload={"accepted": 4, "rejected": 1, "kind": "single-source", "filename": "hgnc.tsv", "total": 9},
    )

    with caplog.at_level(logging.INFO, logger="kbquery.loader.observers.logging"):
        logging_observer(event)

    assert "Finished loading 4 entries (1 rejected) from single-source KB file 'hgnc.tsv'" in caplog.text


def test_throughput_tracker_summarizes_flushes() -> None:
    tracker = ThroughputTracker()
    start = datetime(2024, 1, 1)
    for count in (10, 10, 4):
        tracker(LoaderEvent(start, "batch_flushed", {"stream": "entries", "count": count}))
    tracker(LoaderEvent(start, "source_start", {"filename": "a.tsv"}))
    tracker(LoaderEvent(start + timedelta(seconds=2), "source_done", {"filename": "a.tsv"}))

    summary = tracker.summary()

    assert summary["entries"]["flushes"] == 3
    assert summary["entries"]["records"] == 24
    assert summary["entries"]["avg_batch"] == 8
    assert tracker.source_seconds == {"a.tsv": 2.0}
