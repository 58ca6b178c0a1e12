"""
kbquery: knowledge-base loader

Loads tab-separated knowledge-base (KB) files into a SQL database as
canonical entries, then derives normalized lookup keys from each entry's
text using configurable transform pipelines.

Main Components:
- KBQueryConfig: sources, label/namespace dictionaries and loader settings
- FieldExtractor: row parsing and validation for multi- and single-source files
- KeyTransformEngine: named text transforms expanding text into lookup keys
- BatchWriter: bounded, blocking batch accumulator in front of the store
- IngestionCoordinator / KeyFillPass: the entry load and key generation passes

Example:
    >>> from kbquery import load_config_from_file, run_load
    >>>
    >>> config = load_config_from_file("config.py")
    >>> result = run_load(config)
    >>> print(result.total_entries, result.total_keys)
"""

from kbquery.configuration import (
    ConfigurationError,
    KBQueryConfig,
    SourceDescriptor,
    SourceKind,
    load_config_from_file,
)
from kbquery.loader import (
    BatchWriter,
    Entry,
    FieldExtractor,
    IngestionCoordinator,
    KBStore,
    Key,
    KeyFillPass,
    Priority,
)
from kbquery.loader.service import run_key_fill, run_load
from kbquery.reporting import LoadReport, render_summary
from kbquery.transforms import DEFAULT_PIPELINE, KeyTransformEngine, TransformRegistry

__version__ = "0.1.0"

__all__ = [
    "BatchWriter",
    "ConfigurationError",
    "DEFAULT_PIPELINE",
    "Entry",
    "FieldExtractor",
    "IngestionCoordinator",
    "KBQueryConfig",
    "KBStore",
    "Key",
    "KeyFillPass",
    "KeyTransformEngine",
    "LoadReport",
    "Priority",
    "SourceDescriptor",
    "SourceKind",
    "TransformRegistry",
    "load_config_from_file",
    "render_summary",
    "run_key_fill",
    "run_load",
]
