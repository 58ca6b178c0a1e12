"""Structured models describing the outcome of a load run."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from pydantic import BaseModel, Field, computed_field

from kbquery.loader.types import LoadResult, SourceProgress


class SourceReport(BaseModel):
    """Row and entry counts for one KB source."""

    source_id: int
    filename: str
    kind: str
    state: str
    rows_read: int = Field(default=0, ge=0)
    entries_accepted: int = Field(default=0, ge=0)
    entries_rejected: int = Field(default=0, ge=0)
    entries_enqueued: int = Field(default=0, ge=0)
    error: str | None = None

    @classmethod
    def from_progress(cls, progress: SourceProgress) -> "SourceReport":
        return cls(
            source_id=progress.source.id,
            filename=progress.source.filename,
            kind=progress.kind.value,
            state=progress.state.value,
            rows_read=progress.counts.read,
            entries_accepted=progress.counts.accepted,
            entries_rejected=progress.counts.rejected,
            entries_enqueued=progress.enqueued,
            error=progress.error,
        )


class LoadReport(BaseModel):
    """Per-source counts and grand totals for a load run."""

    run_id: str
    started_at: datetime
    finished_at: datetime
    sources: list[SourceReport] = Field(default_factory=list)
    total_entries: int = Field(default=0, ge=0)
    total_keys: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_rejected(self) -> int:
        return sum(source.entries_rejected for source in self.sources)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def skipped_sources(self) -> list[int]:
        return [source.source_id for source in self.sources if source.state == "skipped"]

    @classmethod
    def from_result(cls, result: LoadResult) -> "LoadReport":
        return cls(
            run_id=result.run_id,
            started_at=result.started_at,
            finished_at=result.finished_at,
            sources=[SourceReport.from_progress(progress) for progress in result.sources],
            total_entries=result.total_entries,
            total_keys=result.total_keys,
        )


def render_summary(report: LoadReport) -> str:
    """Render a human-readable summary of ``report``."""
    lines: list[str] = [f"Load run {report.run_id}"]
    lines.extend(_source_lines(report.sources))
    duration = (report.finished_at - report.started_at).total_seconds()
    lines.append(
        f"Total entries loaded: {report.total_entries}; keys: {report.total_keys}; "
        f"rejected rows: {report.total_rejected}; elapsed: {duration:.1f}s"
    )
    return "\n".join(lines)


def _source_lines(sources: Iterable[SourceReport]) -> Iterable[str]:
    for source in sources:
        line = (
            f"  [{source.source_id}] {source.filename or '<none>'} ({source.kind}, {source.state}): "
            f"read={source.rows_read} accepted={source.entries_accepted} "
            f"rejected={source.entries_rejected}"
        )
        if source.error:
            line += f" error={source.error}"
        yield line
