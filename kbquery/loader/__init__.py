"""KB loader subsystem public interface."""

from .batching import BatchWriter
from .coordinator import IngestionCoordinator, open_source_file
from .errors import (
    BatchWriterClosedError,
    LoaderError,
    PipelineExecutionError,
    RowValidationError,
    SourceAccessError,
    StorageError,
)
from .fields import FieldExtractor, tsv_row_to_fields
from .keyfill import KeyFillPass
from .storage import KBStore
from .types import (
    HUMAN,
    NO_SPECIES,
    Entry,
    Key,
    LoaderEvent,
    LoadResult,
    Priority,
    SourceCounts,
    SourceProgress,
    SourceState,
    StoredEntry,
)

__all__ = [
    "BatchWriter",
    "BatchWriterClosedError",
    "Entry",
    "FieldExtractor",
    "HUMAN",
    "IngestionCoordinator",
    "KBStore",
    "Key",
    "KeyFillPass",
    "LoadResult",
    "LoaderError",
    "LoaderEvent",
    "NO_SPECIES",
    "PipelineExecutionError",
    "Priority",
    "RowValidationError",
    "SourceAccessError",
    "SourceCounts",
    "SourceProgress",
    "SourceState",
    "StorageError",
    "StoredEntry",
    "open_source_file",
    "tsv_row_to_fields",
]
