"""Pytest configuration and shared fixtures for kbquery tests."""

from __future__ import annotations

import gzip
from pathlib import Path
from typing import Callable

import pytest

from kbquery.configuration import (
    KBQueryConfig,
    KBVocabulary,
    LoaderSettings,
    ObservabilitySettings,
    SourceDescriptor,
)
from kbquery.loader.storage import KBStore
from kbquery.observability import reset_event_recorder


LABELS = ("Gene_or_gene_product", "Simple_chemical", "Cellular_component")
NAMESPACES = ("uaz", "hgnc", "chebi", "go")


@pytest.fixture(autouse=True)
def _clean_event_recorder():
    """Give every test a fresh global event recorder."""
    reset_event_recorder()
    yield
    reset_event_recorder()


@pytest.fixture
def kb_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "kb"
    directory.mkdir()
    return directory


@pytest.fixture
def write_kb_file(kb_dir: Path) -> Callable[[str, list[str]], Path]:
    """Write rows to a KB file, gzipping when the name ends in ``.gz``."""

    def _write(filename: str, rows: list[str]) -> Path:
        path = kb_dir / filename
        content = "".join(f"{row}\n" for row in rows)
        if filename.endswith(".gz"):
            with gzip.open(path, "wt", encoding="utf-8") as handle:
                handle.write(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'kb.db'}"


@pytest.fixture
def make_config(tmp_path: Path, kb_dir: Path, database_url: str):
    """Build a validated-ready configuration over the test KB directory."""

    def _make(
        sources: list[SourceDescriptor],
        *,
        batch_size: int = 2,
        max_field_size: int = 80,
        default_transforms: tuple[str, ...] = ("identity", "lowercase", "canonical"),
        reset_schema: bool = True,
    ) -> KBQueryConfig:
        return KBQueryConfig.with_root(
            tmp_path / "storage",
            kb_dir=kb_dir,
            labels=LABELS,
            namespaces=NAMESPACES,
            sources=sources,
            loader=LoaderSettings(
                batch_size=batch_size,
                max_field_size=max_field_size,
                default_transforms=default_transforms,
                database_url=database_url,
                reset_schema=reset_schema,
            ),
            observability=ObservabilitySettings(verbose=False),
        )

    return _make


@pytest.fixture
def vocabulary() -> KBVocabulary:
    return KBVocabulary.from_names(LABELS, NAMESPACES)


@pytest.fixture
def store(database_url: str, vocabulary: KBVocabulary):
    """A KB store with the shared vocabulary and two sources loaded."""
    kb_store = KBStore(database_url)
    kb_store.reset()
    kb_store.load_vocabulary(vocabulary)
    kb_store.load_sources(
        [
            SourceDescriptor(1, "uaz", "override.tsv"),
            SourceDescriptor(2, "hgnc", "hgnc.tsv", "Gene_or_gene_product"),
        ]
    )
    kb_store.commit()
    yield kb_store
    kb_store.close()
