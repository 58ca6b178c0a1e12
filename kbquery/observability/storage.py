"""SQL event log for loader runs.

Each recorded service event becomes one ``loader_events`` row. Events that
carry a ``run_id`` in their payload are indexed by it, so the history of a
single load can be pulled back without scanning the payloads.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from kbquery.observability.events import EventObserver, EventRecorder, ServiceEvent


LOGGER = logging.getLogger(__name__)

_JSON_SCALARS = (str, int, float, bool, type(None), list, dict)


class EventLogBase(DeclarativeBase):
    pass


class LoaderEventRow(EventLogBase):
    __tablename__ = "loader_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    service: Mapped[str] = mapped_column(String(80), index=True)
    name: Mapped[str] = mapped_column(String(80), index=True)
    run_id: Mapped[str | None] = mapped_column(String(32), index=True, nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    @classmethod
    def from_event(cls, event: ServiceEvent) -> "LoaderEventRow":
        run_id = event.payload.get("run_id")
        return cls(
            recorded_at=event.timestamp,
            service=event.service,
            name=event.name,
            run_id=str(run_id) if run_id is not None else None,
            payload={
                key: value if isinstance(value, _JSON_SCALARS) else str(value)
                for key, value in event.payload.items()
            },
        )

    def to_event(self) -> ServiceEvent:
        return ServiceEvent(
            timestamp=self.recorded_at,
            service=self.service,
            name=self.name,
            payload=dict(self.payload or {}),
        )


class EventLogStore:
    """Append-only log of loader service events."""

    def __init__(self, database_url: str) -> None:
        self._engine = create_engine(database_url, future=True)
        self._sessions = sessionmaker(self._engine, expire_on_commit=False)
        EventLogBase.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def persist_events(self, events: list[ServiceEvent]) -> None:
        if not events:
            return
        with self._sessions.begin() as session:
            session.add_all(LoaderEventRow.from_event(event) for event in events)

    def fetch_events(
        self,
        *,
        service: str | None = None,
        name: str | None = None,
        run_id: str | None = None,
    ) -> list[ServiceEvent]:
        """Return logged events oldest first, filtered on any of the given fields."""
        stmt = select(LoaderEventRow).order_by(
            LoaderEventRow.recorded_at.asc(), LoaderEventRow.id.asc()
        )
        if service:
            stmt = stmt.where(LoaderEventRow.service == service)
        if name:
            stmt = stmt.where(LoaderEventRow.name == name)
        if run_id:
            stmt = stmt.where(LoaderEventRow.run_id == run_id)
        with self._sessions() as session:
            return [row.to_event() for row in session.execute(stmt).scalars()]

    def create_persistent_observer(self) -> EventObserver:
        """Return an observer that appends each event to the log."""

        def _observer(event: ServiceEvent) -> None:
            try:
                self.persist_events([event])
            except SQLAlchemyError as exc:
                # A broken event log must not stop a load.
                LOGGER.warning(
                    "Unable to log event %s.%s: %s", event.service, event.name, exc
                )

        return _observer


def attach_persistent_observer(
    recorder: EventRecorder,
    store: EventLogStore,
) -> Callable[[], None]:
    """Log every event ``recorder`` dispatches to ``store``; returns the detach callback."""
    observer = store.create_persistent_observer()
    recorder.register(observer)
    return lambda: recorder.unregister(observer)
