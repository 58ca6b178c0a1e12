"""SQLAlchemy-backed store for KB entries and lookup keys."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    create_engine,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from kbquery.configuration import KBVocabulary, SourceDescriptor
from kbquery.loader.errors import StorageError
from kbquery.loader.types import Entry, Key, Priority, StoredEntry


LOGGER = logging.getLogger(__name__)


@contextmanager
def _storage_errors(message: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(f"{message}: {exc}") from exc


class Base(DeclarativeBase):
    pass


class LabelRow(Base):
    __tablename__ = "labels"

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    label: Mapped[str] = mapped_column(String(40), nullable=False)


class NamespaceRow(Base):
    __tablename__ = "namespaces"

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    namespace: Mapped[str] = mapped_column(String(20), nullable=False)


class SourceRow(Base):
    __tablename__ = "sources"

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    namespace: Mapped[str] = mapped_column(String(20), nullable=False)
    filename: Mapped[str] = mapped_column(String(60), nullable=False)
    label: Mapped[str] = mapped_column(String(40), nullable=False)
    # Comma separated; empty when the source uses the default pipeline.
    transforms: Mapped[str] = mapped_column(String(256), nullable=False, default="")


class EntryRow(Base):
    __tablename__ = "entries"

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    external_id: Mapped[str] = mapped_column("id", String(80), nullable=False, index=True)
    is_gene_name: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_short_name: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    species: Mapped[str] = mapped_column(String(256), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    label_ndx: Mapped[int] = mapped_column(ForeignKey("labels.uid"), nullable=False)
    ns_ndx: Mapped[int] = mapped_column(ForeignKey("namespaces.uid"), nullable=False)
    source_ndx: Mapped[int] = mapped_column(ForeignKey("sources.uid"), nullable=False)


class KeyRow(Base):
    __tablename__ = "tkeys"

    uid: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    entry_ndx: Mapped[int] = mapped_column(ForeignKey("entries.uid"), nullable=False, index=True)


class LoadRunRow(Base):
    __tablename__ = "load_runs"

    run_id: Mapped[str] = mapped_column(String, primary_key=True)
    started_at: Mapped[datetime] = mapped_column(DateTime)
    finished_at: Mapped[datetime] = mapped_column(DateTime)
    total_entries: Mapped[int] = mapped_column(Integer)
    total_keys: Mapped[int] = mapped_column(Integer)
    report: Mapped[dict] = mapped_column(JSON, default=dict)


class KBStore:
    """Persist KB entries and keys to a SQL database.

    Writes go through one long-lived session: every batch write commits
    before returning, and :meth:`commit` acts as the barrier between sources.
    Reads use short-lived sessions so that no cursor stays open while the
    writer commits.
    """

    def __init__(self, database_url: str, vocabulary: KBVocabulary | None = None) -> None:
        with _storage_errors(f"Cannot open database {database_url}"):
            self._engine = create_engine(database_url, future=True)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        self._writer: Session = self._session_factory()
        self._label_ids: dict[str, int] = {}
        self._namespace_ids: dict[str, int] = {}
        if vocabulary is not None:
            self.bind_vocabulary(vocabulary)

    def __enter__(self) -> "KBStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the writer session and dispose of the engine."""
        self._writer.close()
        self._engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Short-lived session; SQLAlchemy failures surface as :class:`StorageError`."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageError(f"Database operation failed: {exc}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- schema -----------------------------------------------------------

    def create_tables(self) -> None:
        with _storage_errors("Failed to create tables"):
            Base.metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        self._writer.close()
        with _storage_errors("Failed to drop tables"):
            Base.metadata.drop_all(self._engine)

    def reset(self) -> None:
        """Drop and recreate every table."""
        self.drop_tables()
        self.create_tables()

    # -- bootstrap --------------------------------------------------------

    def bind_vocabulary(self, vocabulary: KBVocabulary) -> None:
        """Use ``vocabulary`` to resolve entry labels and namespaces to ids."""
        self._label_ids = {label.name: label.id for label in vocabulary.labels}
        self._namespace_ids = {ns.name: ns.id for ns in vocabulary.namespaces}

    def load_vocabulary(self, vocabulary: KBVocabulary) -> None:
        """Write the label and namespace tables; committed by :meth:`commit`."""
        self.bind_vocabulary(vocabulary)
        self._execute_write(
            LabelRow,
            [{"uid": label.id, "label": label.name} for label in vocabulary.labels],
        )
        self._execute_write(
            NamespaceRow,
            [{"uid": ns.id, "namespace": ns.name} for ns in vocabulary.namespaces],
        )

    def load_sources(self, sources: Sequence[SourceDescriptor]) -> None:
        """Write the sources table; committed by :meth:`commit`."""
        self._execute_write(
            SourceRow,
            [
                {
                    "uid": source.id,
                    "namespace": source.namespace,
                    "filename": source.filename,
                    "label": source.label,
                    "transforms": ",".join(source.transforms or ()),
                }
                for source in sources
            ],
        )

    def sync_vocabulary(
        self, vocabulary: KBVocabulary, sources: Sequence[SourceDescriptor]
    ) -> list[str]:
        """Insert configured labels, namespaces and sources missing from the tables.

        Rows already present are left alone. Returns a description of every
        stored row whose uid matches a configured one but whose values differ;
        nothing is written when there are any.
        """
        self.bind_vocabulary(vocabulary)
        with self.session() as session:
            labels = dict(session.execute(select(LabelRow.uid, LabelRow.label)).all())
            namespaces = dict(
                session.execute(select(NamespaceRow.uid, NamespaceRow.namespace)).all()
            )
            stored_sources = {
                row.uid: (row.namespace, row.label)
                for row in session.execute(select(SourceRow)).scalars()
            }

        conflicts: list[str] = []
        for label in vocabulary.labels:
            if label.id in labels and labels[label.id] != label.name:
                conflicts.append(
                    f"label {label.id} is stored as {labels[label.id]!r}, "
                    f"configured as {label.name!r}"
                )
        for ns in vocabulary.namespaces:
            if ns.id in namespaces and namespaces[ns.id] != ns.name:
                conflicts.append(
                    f"namespace {ns.id} is stored as {namespaces[ns.id]!r}, "
                    f"configured as {ns.name!r}"
                )
        for source in sources:
            stored = stored_sources.get(source.id)
            if stored is not None and stored != (source.namespace, source.label):
                conflicts.append(
                    f"source {source.id} is stored as {stored!r}, "
                    f"configured as {(source.namespace, source.label)!r}"
                )
        if conflicts:
            return conflicts

        self._execute_write(
            LabelRow,
            [
                {"uid": label.id, "label": label.name}
                for label in vocabulary.labels
                if label.id not in labels
            ],
        )
        self._execute_write(
            NamespaceRow,
            [
                {"uid": ns.id, "namespace": ns.name}
                for ns in vocabulary.namespaces
                if ns.id not in namespaces
            ],
        )
        missing = [source for source in sources if source.id not in stored_sources]
        if missing:
            LOGGER.info("Adding %d source(s) missing from the sources table", len(missing))
            self.load_sources(missing)
        return []

    def commit(self) -> None:
        """Commit anything outstanding on the writer session."""
        try:
            self._writer.commit()
        except SQLAlchemyError as exc:
            self._writer.rollback()
            raise StorageError(f"Commit failed: {exc}") from exc

    # -- batch sinks ------------------------------------------------------

    def write_entries(self, entries: Sequence[Entry]) -> int:
        """Bulk insert ``entries`` and commit; returns the number written."""
        rows = [self._entry_to_row(entry) for entry in entries]
        self._execute_write(EntryRow, rows)
        self.commit()
        return len(rows)

    def write_keys(self, keys: Sequence[Key]) -> int:
        """Bulk insert ``keys`` and commit; returns the number written."""
        rows = [{"text": key.text, "entry_ndx": key.entry_id} for key in keys]
        self._execute_write(KeyRow, rows)
        self.commit()
        return len(rows)

    def clear_keys(self) -> int:
        """Delete every stored key and return how many were removed."""
        try:
            result = self._writer.execute(delete(KeyRow))
            self._writer.commit()
        except SQLAlchemyError as exc:
            self._writer.rollback()
            raise StorageError(f"Failed to clear keys: {exc}") from exc
        return result.rowcount or 0

    def _execute_write(self, model: type[Base], rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            self._writer.execute(insert(model), rows)
        except SQLAlchemyError as exc:
            self._writer.rollback()
            raise StorageError(
                f"Failed to write {len(rows)} row(s) to {model.__tablename__}: {exc}"
            ) from exc

    def _entry_to_row(self, entry: Entry) -> dict[str, Any]:
        try:
            label_ndx = self._label_ids[entry.label]
            ns_ndx = self._namespace_ids[entry.namespace]
        except KeyError as exc:
            raise StorageError(
                f"No id for {exc.args[0]!r}; load or bind the vocabulary before writing entries"
            ) from exc
        return {
            "text": entry.text,
            "external_id": entry.external_id,
            "is_gene_name": entry.is_gene_name,
            "is_short_name": entry.is_short_name,
            "species": entry.species,
            "priority": int(entry.priority),
            "label_ndx": label_ndx,
            "ns_ndx": ns_ndx,
            "source_ndx": entry.source_id,
        }

    # -- reads ------------------------------------------------------------

    def iter_entries(self, page_size: int = 1000) -> Iterator[StoredEntry]:
        """Yield every stored entry in ascending uid order, one page at a time."""
        last_uid = 0
        while True:
            stmt = (
                select(EntryRow.uid, EntryRow.text, EntryRow.source_ndx)
                .where(EntryRow.uid > last_uid)
                .order_by(EntryRow.uid.asc())
                .limit(page_size)
            )
            with self.session() as session:
                rows = session.execute(stmt).all()
            if not rows:
                return
            for uid, text, source_ndx in rows:
                yield StoredEntry(entry_id=uid, text=text, source_id=source_ndx)
            last_uid = rows[-1][0]

    def fetch_entries(self, *, source_id: int | None = None) -> list[tuple[int, Entry]]:
        """Return ``(uid, entry)`` pairs in uid order."""
        stmt = (
            select(EntryRow, LabelRow.label, NamespaceRow.namespace)
            .join(LabelRow, EntryRow.label_ndx == LabelRow.uid)
            .join(NamespaceRow, EntryRow.ns_ndx == NamespaceRow.uid)
            .order_by(EntryRow.uid.asc())
        )
        if source_id is not None:
            stmt = stmt.where(EntryRow.source_ndx == source_id)
        with self.session() as session:
            rows = session.execute(stmt).all()
        return [
            (
                row.uid,
                Entry(
                    text=row.text,
                    namespace=namespace,
                    external_id=row.external_id,
                    label=label,
                    is_gene_name=row.is_gene_name,
                    is_short_name=row.is_short_name,
                    species=row.species,
                    priority=Priority(row.priority),
                    source_id=row.source_ndx,
                ),
            )
            for row, label, namespace in rows
        ]

    def fetch_keys(self, *, entry_id: int | None = None) -> list[Key]:
        stmt = select(KeyRow.text, KeyRow.entry_ndx).order_by(KeyRow.uid.asc())
        if entry_id is not None:
            stmt = stmt.where(KeyRow.entry_ndx == entry_id)
        with self.session() as session:
            rows = session.execute(stmt).all()
        return [Key(text=text, entry_id=entry_ndx) for text, entry_ndx in rows]

    def count_entries(self) -> int:
        with self.session() as session:
            return session.execute(select(func.count()).select_from(EntryRow)).scalar_one()

    def count_keys(self) -> int:
        with self.session() as session:
            return session.execute(select(func.count()).select_from(KeyRow)).scalar_one()

    # -- run history ------------------------------------------------------

    def record_run(
        self,
        run_id: str,
        *,
        started_at: datetime,
        finished_at: datetime,
        total_entries: int,
        total_keys: int,
        report: dict[str, Any],
    ) -> None:
        with self.session() as session:
            session.merge(
                LoadRunRow(
                    run_id=run_id,
                    started_at=started_at,
                    finished_at=finished_at,
                    total_entries=total_entries,
                    total_keys=total_keys,
                    report=report,
                )
            )

    def fetch_runs(self) -> list[dict[str, Any]]:
        stmt = select(LoadRunRow).order_by(LoadRunRow.started_at.asc())
        with self.session() as session:
            rows = session.execute(stmt).scalars().all()
        return [
            {
                "run_id": row.run_id,
                "started_at": row.started_at,
                "finished_at": row.finished_at,
                "total_entries": row.total_entries,
                "total_keys": row.total_keys,
                "report": dict(row.report or {}),
            }
            for row in rows
        ]
