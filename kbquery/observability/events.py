"""Service events for the loader and the process-wide recorder that fans them out."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from threading import RLock
from typing import Any, Dict, Optional, Tuple

Metadata = Dict[str, Any]
EventObserver = Callable[["ServiceEvent"], None]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ServiceEvent:
    """Something a loader service reported, e.g. ``loader.service``/``load.start``."""

    timestamp: datetime
    service: str
    name: str
    payload: Metadata = field(default_factory=dict)


def _service_parts(service: Sequence[str] | str | None) -> Tuple[str, ...]:
    if not service:
        return ()
    parts = service.split(".") if isinstance(service, str) else service
    return tuple(part for part in parts if part)


class EventRecorder:
    """Fan service events out to observers.

    ``scoped("loader").scoped("service")`` records under ``loader.service``;
    every scope shares the observer list of the recorder it came from.
    """

    __slots__ = ("_path", "_observers", "_lock")

    def __init__(
        self,
        service: Sequence[str] | str | None = None,
        *,
        parent: "EventRecorder" | None = None,
    ) -> None:
        if parent is None:
            self._path = _service_parts(service)
            self._observers: list[EventObserver] = []
            self._lock = RLock()
        else:
            self._path = parent._path + _service_parts(service)
            self._observers = parent._observers
            self._lock = parent._lock

    @property
    def service(self) -> str:
        return ".".join(self._path)

    def scoped(self, service: Sequence[str] | str) -> "EventRecorder":
        return EventRecorder(service, parent=self)

    def register(self, observer: EventObserver) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def unregister(self, observer: EventObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def record(
        self,
        name: str,
        payload: Metadata | None = None,
        *,
        timestamp: Optional[datetime] = None,
    ) -> ServiceEvent:
        """Build an event under this recorder's service and hand it to every observer.

        An observer that raises is logged and skipped; the remaining observers
        still see the event.
        """
        event = ServiceEvent(
            timestamp=timestamp or datetime.utcnow(),
            service=self.service,
            name=name,
            payload=dict(payload or {}),
        )
        with self._lock:
            observers = tuple(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                LOGGER.exception("Event observer failed for %s.%s", event.service, name)
        return event


_GLOBAL_RECORDER = EventRecorder()


def get_event_recorder(service: Sequence[str] | str | None = None) -> EventRecorder:
    """Return the process-wide recorder, scoped to ``service`` when given."""
    if service is None:
        return _GLOBAL_RECORDER
    return _GLOBAL_RECORDER.scoped(service)


def reset_event_recorder() -> None:
    """Replace the process-wide recorder with one that has no observers."""
    global _GLOBAL_RECORDER
    _GLOBAL_RECORDER = EventRecorder()
