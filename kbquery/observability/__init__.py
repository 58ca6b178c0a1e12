"""Observability primitives for the KB loader."""

from kbquery.observability.events import (
    EventObserver,
    EventRecorder,
    ServiceEvent,
    get_event_recorder,
    reset_event_recorder,
)
from kbquery.observability.storage import (
    EventLogStore,
    attach_persistent_observer,
)

__all__ = [
    "EventObserver",
    "EventRecorder",
    "ServiceEvent",
    "EventLogStore",
    "attach_persistent_observer",
    "get_event_recorder",
    "reset_event_recorder",
]
