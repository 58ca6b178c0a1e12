"""Observer that forwards loader events to the observability recorder."""

from __future__ import annotations

from kbquery.loader.types import LoaderEvent
from kbquery.observability import get_event_recorder


def observability_observer(event: LoaderEvent) -> None:
    """Bridge loader events into the observability recorder."""

    get_event_recorder("loader.pipeline").record(
        name=event.name,
        payload=dict(event.payload),
        timestamp=event.timestamp,
    )
