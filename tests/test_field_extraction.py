from __future__ import annotations

import logging

import pytest

from kbquery.configuration import KBVocabulary, SourceDescriptor, SourceKind
from kbquery.loader import (
    HUMAN,
    NO_SPECIES,
    FieldExtractor,
    Priority,
    RowValidationError,
    tsv_row_to_fields,
)


@pytest.fixture
def multi(vocabulary: KBVocabulary) -> FieldExtractor:
    return FieldExtractor(
        SourceDescriptor(1, "uaz", "override.tsv"), vocabulary, max_field_size=20
    )


@pytest.fixture
def uni(vocabulary: KBVocabulary) -> FieldExtractor:
    return FieldExtractor(
        SourceDescriptor(2, "hgnc", "hgnc.tsv", "Gene_or_gene_product"),
        vocabulary,
        max_field_size=20,
    )


def test_tsv_row_to_fields_trims_and_drops_trailing_empties() -> None:
    assert tsv_row_to_fields(" p53 \tHGNC:1\t\tuaz\t\t\r\n") == ["p53", "HGNC:1", "", "uaz"]
    assert tsv_row_to_fields("\n") == []


def test_extractor_kind_follows_source_label(multi, uni) -> None:
    assert multi.kind is SourceKind.MULTI
    assert uni.kind is SourceKind.UNI


def test_multi_source_row_with_label(multi) -> None:
    entry = multi.parse("p53\tHGNC:1\t\tuaz\tGene_or_gene_product")

    assert entry.text == "p53"
    assert entry.external_id == "HGNC:1"
    assert entry.species == HUMAN
    assert entry.namespace == "uaz"
    assert entry.label == "Gene_or_gene_product"
    assert entry.priority is Priority.OVERRIDE
    assert entry.source_id == 1


def test_multi_source_keeps_explicit_species(multi) -> None:
    entry = multi.parse("Trp53\tMGI:98834\tmouse\tuaz\tGene_or_gene_product")

    assert entry.species == "mouse"


def test_multi_source_row_without_any_label_is_rejected(multi) -> None:
    with pytest.raises(RowValidationError, match="no label"):
        multi.parse("p53\tHGNC:1\t\tuaz")


@pytest.mark.parametrize(
    "row",
    [
        "p53\tHGNC:1\t\t",
        "p53\tHGNC:1",
        "\tHGNC:1\t\tuaz\tGene_or_gene_product",
        "p53\t\t\tuaz\tGene_or_gene_product",
        "a-very-long-protein-name\tX:1\t\tuaz\tGene_or_gene_product",
    ],
)
def test_multi_source_invalid_rows(multi, row: str) -> None:
    with pytest.raises(RowValidationError):
        multi.parse(row)


def test_uni_source_minimal_row(uni) -> None:
    entry = uni.parse("TP53\tHGNC:11998")

    assert entry.label == "Gene_or_gene_product"
    assert entry.namespace == "hgnc"
    assert entry.species == NO_SPECIES
    assert entry.priority is Priority.DEFAULT
    assert entry.source_id == 2


def test_uni_source_row_overrides_namespace_and_ignores_label(uni) -> None:
    entry = uni.parse("TP53\tGO:1\thuman\tgo\tSimple_chemical")

    assert entry.species == "human"
    assert entry.namespace == "go"
    assert entry.label == "Gene_or_gene_product"


def test_uni_source_empty_namespace_falls_back(uni) -> None:
    entry = uni.extract(["TP53", "HGNC:11998", "human", ""])

    assert entry.namespace == "hgnc"


@pytest.mark.parametrize("row", ["TP53", "\tHGNC:1", "TP53\t"])
def test_uni_source_invalid_rows(uni, row: str) -> None:
    with pytest.raises(RowValidationError):
        uni.parse(row)


def test_text_at_max_field_size_is_accepted(uni) -> None:
    entry = uni.parse("x" * 20 + "\tID:1")

    assert len(entry.text) == 20


def test_unknown_namespace_is_rejected(uni) -> None:
    with pytest.raises(RowValidationError, match="unknown namespace"):
        uni.parse("TP53\tX:1\thuman\tensembl")


def test_unknown_label_is_rejected(multi) -> None:
    with pytest.raises(RowValidationError, match="unknown label"):
        multi.parse("p53\tHGNC:1\t\tuaz\tProtein")


def test_rejected_rows_are_logged(uni, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="kbquery.loader.fields"):
        with pytest.raises(RowValidationError) as excinfo:
            uni.parse("TP53")

    assert excinfo.value.fields == ("TP53",)
    assert "Rejected row from single-source KB file 'hgnc.tsv'" in caplog.text
