"""Field extraction and validation for KB file rows."""

from __future__ import annotations

import logging
from typing import Sequence

from kbquery.configuration import (
    NO_IMPLICIT_LABEL,
    KBVocabulary,
    SourceDescriptor,
    SourceKind,
)
from kbquery.loader.errors import RowValidationError
from kbquery.loader.types import HUMAN, NO_SPECIES, Entry, Priority


LOGGER = logging.getLogger(__name__)

MULTI_SOURCE_MIN_FIELDS = 4
UNI_SOURCE_MIN_FIELDS = 2


def tsv_row_to_fields(row: str) -> list[str]:
    """Split a TSV row into trimmed fields, dropping trailing empty fields."""
    fields = [value.strip() for value in row.rstrip("\r\n").split("\t")]
    while fields and not fields[-1]:
        fields.pop()
    return fields


class FieldExtractor:
    """Turn the fields of one KB row into a validated :class:`Entry`.

    The source shape is resolved once from the descriptor: multi-source rows
    carry their own namespace and (optionally) label, uni-source rows take
    both from the descriptor unless the row overrides the namespace.
    """

    def __init__(
        self,
        source: SourceDescriptor,
        vocabulary: KBVocabulary,
        *,
        max_field_size: int,
    ) -> None:
        self._source = source
        self._vocabulary = vocabulary
        self._max_field_size = max_field_size
        self._kind = source.kind
        if self._kind is SourceKind.MULTI:
            self._build = self._entry_from_multi_fields
        else:
            self._build = self._entry_from_uni_fields

    @property
    def kind(self) -> SourceKind:
        return self._kind

    @property
    def source(self) -> SourceDescriptor:
        return self._source

    def parse(self, row: str) -> Entry:
        return self.extract(tsv_row_to_fields(row))

    def extract(self, fields: Sequence[str]) -> Entry:
        """Return the entry for ``fields`` or raise :class:`RowValidationError`."""
        try:
            entry = self._build(fields)
            self._check_vocabulary(entry, fields)
        except RowValidationError as exc:
            LOGGER.warning(
                "Rejected row from %s KB file '%s': %s",
                self._kind.value,
                self._source.filename,
                exc.reason,
            )
            raise
        return entry

    def _entry_from_multi_fields(self, fields: Sequence[str]) -> Entry:
        #   0 text, 1 id, 2 species (optional content), 3 namespace,
        #   4 label (optional, else the source's label)
        if len(fields) < MULTI_SOURCE_MIN_FIELDS:
            raise RowValidationError(
                f"expected at least {MULTI_SOURCE_MIN_FIELDS} fields, got {len(fields)}",
                fields,
            )
        text = self._validate_text(fields)
        external_id = self._validate_id(fields)
        species = fields[2] if fields[2] != NO_SPECIES else HUMAN
        namespace = fields[3]
        if not namespace:
            raise RowValidationError("namespace field is empty", fields)
        label = fields[4] if len(fields) > 4 and fields[4] else self._source.label
        if label == NO_IMPLICIT_LABEL:
            raise RowValidationError("row has no label and the source has no implicit label", fields)
        return Entry(
            text=text,
            namespace=namespace,
            external_id=external_id,
            label=label,
            species=species,
            priority=Priority.OVERRIDE,
            source_id=self._source.id,
        )

    def _entry_from_uni_fields(self, fields: Sequence[str]) -> Entry:
        #   0 text, 1 id, 2 species (optional), 3 namespace (optional),
        #   4 label (ignored)
        if len(fields) < UNI_SOURCE_MIN_FIELDS:
            raise RowValidationError(
                f"expected at least {UNI_SOURCE_MIN_FIELDS} fields, got {len(fields)}",
                fields,
            )
        text = self._validate_text(fields)
        external_id = self._validate_id(fields)
        species = fields[2] if len(fields) > 2 else NO_SPECIES
        namespace = fields[3] if len(fields) > 3 and fields[3] else self._source.namespace
        return Entry(
            text=text,
            namespace=namespace,
            external_id=external_id,
            label=self._source.label,
            species=species,
            priority=Priority.DEFAULT,
            source_id=self._source.id,
        )

    def _validate_text(self, fields: Sequence[str]) -> str:
        text = fields[0]
        if not text or len(text) > self._max_field_size:
            raise RowValidationError(
                f"text field must be non-empty and at most {self._max_field_size} "
                f"characters: '{text}'",
                fields,
            )
        return text

    @staticmethod
    def _validate_id(fields: Sequence[str]) -> str:
        if not fields[1]:
            raise RowValidationError("id field is empty", fields)
        return fields[1]

    def _check_vocabulary(self, entry: Entry, fields: Sequence[str]) -> None:
        if not self._vocabulary.has_label(entry.label):
            raise RowValidationError(f"unknown label '{entry.label}'", fields)
        if not self._vocabulary.has_namespace(entry.namespace):
            raise RowValidationError(f"unknown namespace '{entry.namespace}'", fields)
