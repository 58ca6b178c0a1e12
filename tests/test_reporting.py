from __future__ import annotations

from datetime import datetime, timedelta

from kbquery.configuration import SourceDescriptor
from kbquery.loader import LoadResult, SourceCounts, SourceProgress, SourceState
from kbquery.reporting import LoadReport, SourceReport, render_summary


def _result() -> LoadResult:
    started = datetime(2024, 1, 1, 9, 0, 0)
    return LoadResult(
        run_id="abc123",
        sources=[
            SourceProgress(
                source=SourceDescriptor(1, "uaz", "missing.tsv.gz"),
                state=SourceState.SKIPPED,
                error="Unable to find or read from KB file",
            ),
            SourceProgress(
                source=SourceDescriptor(2, "hgnc", "hgnc.tsv", "Gene_or_gene_product"),
                state=SourceState.DONE,
                counts=SourceCounts(read=5, accepted=4, rejected=1),
                enqueued=4,
            ),
        ],
        total_entries=4,
        total_keys=11,
        started_at=started,
        finished_at=started + timedelta(seconds=2.5),
    )


def test_load_report_from_result() -> None:
    report = LoadReport.from_result(_result())

    assert report.total_rejected == 1
    assert report.skipped_sources == [1]
    assert report.sources[1] == SourceReport(
        source_id=2,
        filename="hgnc.tsv",
        kind="single-source",
        state="done",
        rows_read=5,
        entries_accepted=4,
        entries_rejected=1,
        entries_enqueued=4,
    )


def test_report_json_includes_computed_fields() -> None:
    dumped = LoadReport.from_result(_result()).model_dump(mode="json")

    assert dumped["total_rejected"] == 1
    assert dumped["skipped_sources"] == [1]
    assert dumped["sources"][0]["kind"] == "multi-source"


def test_render_summary_lists_sources_and_totals() -> None:
    summary = render_summary(LoadReport.from_result(_result()))

    lines = summary.splitlines()
    assert lines[0] == "Load run abc123"
    assert lines[1].startswith("  [1] missing.tsv.gz (multi-source, skipped): read=0")
    assert "error=Unable to find" in lines[1]
    assert lines[2] == "  [2] hgnc.tsv (single-source, done): read=5 accepted=4 rejected=1"
    assert lines[3] == "Total entries loaded: 4; keys: 11; rejected rows: 1; elapsed: 2.5s"


def test_source_counts_reset_returns_previous_values() -> None:
    counts = SourceCounts(read=3, accepted=2, rejected=1)

    previous = counts.reset()

    assert previous.as_dict() == {"read": 3, "accepted": 2, "rejected": 1}
    assert counts.as_dict() == {"read": 0, "accepted": 0, "rejected": 0}
