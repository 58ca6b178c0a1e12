"""Logging observer for loader events."""

from __future__ import annotations

import logging

from kbquery.loader.types import LoaderEvent


LOGGER = logging.getLogger(__name__)


def logging_observer(event: LoaderEvent) -> None:
    payload = event.payload
    if event.name == "batch_flushed":
        LOGGER.debug(
            "Wrote %s %s record(s); total %s",
            payload.get("count"),
            payload.get("stream"),
            payload.get("total"),
        )
    elif event.name == "source_done":
        LOGGER.info(
            "Finished loading %s entries (%s rejected) from %s KB file '%s'. Total loaded: %s",
            payload.get("accepted"),
            payload.get("rejected"),
            payload.get("kind"),
            payload.get("filename"),
            payload.get("total"),
        )
    elif event.name == "keyfill_done":
        LOGGER.info(
            "Filled %s key(s) for %s entries", payload.get("keys"), payload.get("entries")
        )
