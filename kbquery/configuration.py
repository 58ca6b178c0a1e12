"""
Unified configuration primitives for the KB loader.

The `KBQueryConfig` dataclass is the single entry point that downstream
components use to find the KB source files, the database to load into, the
label and namespace dictionaries, and the loader tuning knobs (batch size,
maximum text field size, default key transforms).

Example usage::

    from pathlib import Path
    from kbquery.configuration import KBQueryConfig, SourceDescriptor

    config = KBQueryConfig.with_root(
        Path.cwd() / "kbquery_storage",
        labels=["Gene_or_gene_product"],
        namespaces=["uaz", "hgnc"],
        sources=[SourceDescriptor(1, "hgnc", "hgnc.tsv.gz", "Gene_or_gene_product")],
    )
    print(config.database_url)

The configuration loader can execute a user supplied `config.py` file::

    from kbquery.configuration import load_config_from_file

    config = load_config_from_file("/path/to/config.py")

The file must define a variable named ``KBQUERY_CONFIG`` that is an instance
of :class:`KBQueryConfig`. Declarative ``.yaml``, ``.json`` and ``.toml``
files holding the same information are accepted as well; see
:func:`config_from_mapping`.
"""

from __future__ import annotations

import enum
import json
import textwrap
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, MutableMapping, Sequence

import yaml

from kbquery.transforms import DEFAULT_PIPELINE, TransformRegistry, default_registry


DEFAULT_STORAGE_ROOT_NAME = "kbquery_storage"
CONFIG_SYMBOL_NAME = "KBQUERY_CONFIG"
DECLARATIVE_SUFFIXES = {".yaml", ".yml", ".json", ".toml"}

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_FIELD_SIZE = 80

# A source whose label is this value supplies a label on every row.
NO_IMPLICIT_LABEL = ""


class ConfigurationError(RuntimeError):
    """Raised when loading or validating a configuration fails."""


def _ensure_path(path: Path | str) -> Path:
    result = Path(path).expanduser()
    if not result.is_absolute():
        result = result.resolve()
    return result


class SourceKind(str, enum.Enum):
    """Shape of a KB source file."""

    MULTI = "multi-source"
    UNI = "single-source"


@dataclass(slots=True, frozen=True)
class SourceDescriptor:
    """Configuration for one KB source file."""

    id: int
    namespace: str
    filename: str
    label: str = NO_IMPLICIT_LABEL
    transforms: tuple[str, ...] | None = None

    @property
    def kind(self) -> SourceKind:
        if self.label == NO_IMPLICIT_LABEL:
            return SourceKind.MULTI
        return SourceKind.UNI

    def effective_transforms(self, default: Sequence[str]) -> tuple[str, ...]:
        """Return this source's transforms, or ``default`` when none are given."""
        if self.transforms is None:
            return tuple(default)
        return self.transforms


@dataclass(slots=True, frozen=True)
class KBLabel:
    id: int
    name: str


@dataclass(slots=True, frozen=True)
class KBNamespace:
    id: int
    name: str


@dataclass(slots=True, frozen=True)
class KBVocabulary:
    """Read-only label and namespace dictionaries (name <-> id)."""

    labels: tuple[KBLabel, ...] = ()
    namespaces: tuple[KBNamespace, ...] = ()

    @classmethod
    def from_names(cls, labels: Iterable[str], namespaces: Iterable[str]) -> "KBVocabulary":
        """Assign ids from 1 in the given order."""
        return cls(
            labels=tuple(KBLabel(index, name) for index, name in enumerate(labels, 1)),
            namespaces=tuple(
                KBNamespace(index, name) for index, name in enumerate(namespaces, 1)
            ),
        )

    def label_id(self, name: str) -> int | None:
        for label in self.labels:
            if label.name == name:
                return label.id
        return None

    def namespace_id(self, name: str) -> int | None:
        for namespace in self.namespaces:
            if namespace.name == name:
                return namespace.id
        return None

    def has_label(self, name: str) -> bool:
        return self.label_id(name) is not None

    def has_namespace(self, name: str) -> bool:
        return self.namespace_id(name) is not None


@dataclass(slots=True)
class StoragePaths:
    """Filesystem locations used by the loader."""

    root: Path
    kb_dir: Path
    database_path: Path
    log_dir: Path

    def ensure_directories(self) -> None:
        """Create directories represented by this configuration."""
        for directory in {self.root, self.log_dir, self.database_path.parent}:
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def database_url(self) -> str:
        """Return the SQLAlchemy URL for the default SQLite database."""
        return f"sqlite:///{self.database_path}"


@dataclass(slots=True)
class LoaderSettings:
    """Knobs that influence a load run."""

    batch_size: int = DEFAULT_BATCH_SIZE
    max_field_size: int = DEFAULT_MAX_FIELD_SIZE
    default_transforms: tuple[str, ...] = DEFAULT_PIPELINE
    database_url: str | None = None
    reset_schema: bool = True

    def __post_init__(self) -> None:
        self.default_transforms = tuple(self.default_transforms)


@dataclass(slots=True)
class ObservabilitySettings:
    """Logging and event configuration."""

    event_log_url: str | None = None
    log_level: str = "INFO"
    verbose: bool = True


@dataclass(slots=True)
class KBQueryConfig:
    """
    Root configuration structure for the KB loader.

    Attributes:
        storage: Filesystem paths for the KB directory and default database.
        loader: Batch size, field size and transform defaults.
        observability: Logging and event configuration.
        labels: Label names, in id order.
        namespaces: Namespace names, in id order.
        sources: The KB source files to load, in load order.
        extras: User-defined metadata dictionary.
    """

    storage: StoragePaths
    loader: LoaderSettings = field(default_factory=LoaderSettings)
    observability: ObservabilitySettings = field(default_factory=ObservabilitySettings)
    labels: tuple[str, ...] = ()
    namespaces: tuple[str, ...] = ()
    sources: tuple[SourceDescriptor, ...] = ()
    extras: Mapping[str, Any] = field(default_factory=dict)

    @property
    def database_url(self) -> str:
        return self.loader.database_url or self.storage.database_url

    @property
    def kb_dir(self) -> Path:
        return self.storage.kb_dir

    def vocabulary(self) -> KBVocabulary:
        return KBVocabulary.from_names(self.labels, self.namespaces)

    def source_pipelines(self) -> dict[int, tuple[str, ...]]:
        """Map each source id to the transform pipeline its keys use."""
        default = self.loader.default_transforms
        return {source.id: source.effective_transforms(default) for source in self.sources}

    def validate(self, registry: TransformRegistry | None = None) -> "KBQueryConfig":
        """Check the configuration for errors that must stop a run before any I/O."""
        registry = registry if registry is not None else default_registry()
        if self.loader.batch_size < 1:
            raise ConfigurationError("loader.batch_size must be a positive integer")
        if self.loader.max_field_size < 1:
            raise ConfigurationError("loader.max_field_size must be a positive integer")
        if not self.labels:
            raise ConfigurationError("Configuration must list at least one label")
        if not self.namespaces:
            raise ConfigurationError("Configuration must list at least one namespace")
        if not self.sources:
            raise ConfigurationError("Configuration must list at least one source")
        _require_unique("label", self.labels)
        _require_unique("namespace", self.namespaces)
        _require_unique("source id", [source.id for source in self.sources])

        unknown = registry.unknown(self.loader.default_transforms)
        if unknown:
            raise ConfigurationError(f"Unknown default transform(s): {', '.join(unknown)}")
        for source in self.sources:
            if not source.namespace:
                raise ConfigurationError(f"Source {source.id} has an empty namespace")
            if source.kind is SourceKind.UNI and source.label not in self.labels:
                raise ConfigurationError(
                    f"Source {source.id} uses label '{source.label}' which is not configured"
                )
            unknown = registry.unknown(source.transforms or ())
            if unknown:
                raise ConfigurationError(
                    f"Source {source.id} names unknown transform(s): {', '.join(unknown)}"
                )
        return self

    @classmethod
    def with_root(
        cls,
        root: Path | str,
        *,
        kb_dir: Path | str | None = None,
        labels: Sequence[str] = (),
        namespaces: Sequence[str] = (),
        sources: Sequence[SourceDescriptor] = (),
        loader: LoaderSettings | None = None,
        observability: ObservabilitySettings | None = None,
        extras: Mapping[str, Any] | None = None,
    ) -> "KBQueryConfig":
        """
        Create a KBQueryConfig with storage paths derived from a root directory.

        Args:
            root: Root directory for the database and logs.
            kb_dir: Directory holding the KB source files. Defaults to
                ``<root>/kb``.
            labels: Label names, in id order.
            namespaces: Namespace names, in id order.
            sources: KB source descriptors, in load order.
            loader: Optional loader settings.
            observability: Optional observability settings.
            extras: Optional user-defined metadata.

        Returns:
            Configured KBQueryConfig instance.
        """
        root_path = _ensure_path(root)
        storage = StoragePaths(
            root=root_path,
            kb_dir=_ensure_path(kb_dir) if kb_dir is not None else root_path / "kb",
            database_path=root_path / "db" / "kbquery.db",
            log_dir=root_path / "logs",
        )
        return cls(
            storage=storage,
            loader=loader or LoaderSettings(),
            observability=observability or ObservabilitySettings(),
            labels=tuple(labels),
            namespaces=tuple(namespaces),
            sources=tuple(sources),
            extras=MappingProxyType(dict(extras or {})),
        )


def _require_unique(kind: str, values: Sequence[Any]) -> None:
    seen: set[Any] = set()
    for value in values:
        if value in seen:
            raise ConfigurationError(f"Duplicate {kind} in configuration: {value!r}")
        seen.add(value)


def default_config(root: Path | None = None) -> KBQueryConfig:
    """Return an empty configuration rooted at the provided directory."""
    if root is None:
        root = Path.cwd() / DEFAULT_STORAGE_ROOT_NAME
    return KBQueryConfig.with_root(root)


def render_default_config(root: Path | None = None) -> str:
    """
    Render the canonical ``config.py`` contents for a loader workspace.

    Parameters
    ----------
    root:
        Optional storage root. Defaults to ``<cwd>/kbquery_storage`` when not
        supplied.

    Returns
    -------
    str
        The string content for a `config.py` file.
    """
    config = default_config(root)
    default_transforms = ", ".join(repr(name) for name in config.loader.default_transforms)

    return textwrap.dedent(
        f"""\
        from pathlib import Path

        from kbquery.configuration import (
            KBQueryConfig,
            LoaderSettings,
            ObservabilitySettings,
            SourceDescriptor,
        )


        storage_root = Path({str(config.storage.root)!r})
        kb_dir = storage_root / "kb"

        labels = (
            "Gene_or_gene_product",
            "Simple_chemical",
        )

        namespaces = (
            "uaz",
            "hgnc",
            "chebi",
        )

        # A source without a label is multi-source: each row names its own label.
        sources = (
            SourceDescriptor(1, "uaz", "NER-Grounding-Override.tsv.gz"),
            SourceDescriptor(2, "hgnc", "hgnc.tsv.gz", "Gene_or_gene_product"),
            SourceDescriptor(
                3,
                "chebi",
                "chebi.tsv.gz",
                "Simple_chemical",
                transforms=("identity", "lowercase"),
            ),
        )

        loader = LoaderSettings(
            batch_size={config.loader.batch_size},
            max_field_size={config.loader.max_field_size},
            default_transforms=({default_transforms},),
            database_url=None,
            reset_schema=True,
        )

        observability = ObservabilitySettings(
            event_log_url=None,
            log_level="INFO",
            verbose=True,
        )

        KBQUERY_CONFIG = KBQueryConfig.with_root(
            storage_root,
            kb_dir=kb_dir,
            labels=labels,
            namespaces=namespaces,
            sources=sources,
            loader=loader,
            observability=observability,
        )
        """
    )


def _coerce_names(value: Any, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"'{key}' must be a list of names")
    return tuple(str(item) for item in value)


def _source_from_mapping(raw: Any) -> SourceDescriptor:
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Source entries must be mappings, got {type(raw)!r}")
    missing = [key for key in ("id", "filename") if key not in raw]
    if "ns" not in raw and "namespace" not in raw:
        missing.append("ns")
    if missing:
        raise ConfigurationError(f"Source entry {dict(raw)!r} is missing {', '.join(missing)}")
    try:
        source_id = int(raw["id"])
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Source id must be an integer: {raw['id']!r}") from exc
    transforms = raw.get("transforms")
    return SourceDescriptor(
        id=source_id,
        namespace=str(raw.get("ns", raw.get("namespace"))),
        filename=str(raw["filename"] or ""),
        label=str(raw.get("label") or NO_IMPLICIT_LABEL),
        transforms=None if transforms is None else _coerce_names(transforms, "transforms"),
    )


def config_from_mapping(
    data: Mapping[str, Any],
    *,
    base_dir: Path | None = None,
) -> KBQueryConfig:
    """
    Build a configuration from a declarative mapping.

    Required keys are ``labels``, ``namespaces`` and ``sources``. Optional
    keys are ``root``, ``kb_dir``, ``database_url``, ``batch_size``,
    ``max_field_size``, ``default_transforms``, ``reset_schema``,
    ``log_level``, ``event_log_url``, ``verbose`` and ``extras``. Relative
    paths resolve against ``base_dir``.
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration must be a mapping, got {type(data)!r}")
    missing = [key for key in ("labels", "namespaces", "sources") if key not in data]
    if missing:
        raise ConfigurationError(f"Configuration is missing required key(s): {', '.join(missing)}")
    raw_sources = data["sources"]
    if not isinstance(raw_sources, list):
        raise ConfigurationError("'sources' must be a list of source entries")

    base = base_dir or Path.cwd()
    root = base / str(data.get("root", DEFAULT_STORAGE_ROOT_NAME))
    kb_dir = base / str(data["kb_dir"]) if data.get("kb_dir") else None
    try:
        loader = LoaderSettings(
            batch_size=int(data.get("batch_size", DEFAULT_BATCH_SIZE)),
            max_field_size=int(data.get("max_field_size", DEFAULT_MAX_FIELD_SIZE)),
            default_transforms=_coerce_names(
                data.get("default_transforms", list(DEFAULT_PIPELINE)), "default_transforms"
            ),
            database_url=data.get("database_url"),
            reset_schema=bool(data.get("reset_schema", True)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid loader setting: {exc}") from exc
    observability = ObservabilitySettings(
        event_log_url=data.get("event_log_url"),
        log_level=str(data.get("log_level", "INFO")),
        verbose=bool(data.get("verbose", True)),
    )
    return KBQueryConfig.with_root(
        root,
        kb_dir=kb_dir,
        labels=_coerce_names(data["labels"], "labels"),
        namespaces=_coerce_names(data["namespaces"], "namespaces"),
        sources=[_source_from_mapping(raw) for raw in raw_sources],
        loader=loader,
        observability=observability,
        extras=data.get("extras") or {},
    )


def _load_declarative(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    try:
        with path.open("rb") as file_obj:
            if suffix in {".yaml", ".yml"}:
                data = yaml.safe_load(file_obj)
            elif suffix == ".json":
                data = json.load(file_obj)
            else:  # .toml
                data = tomllib.load(file_obj)
    except (yaml.YAMLError, json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(f"Unable to parse configuration file {path}: {exc}") from exc
    if data is None:
        raise ConfigurationError(f"Configuration file {path} is empty")
    # Settings may also be nested under app.loader.
    if isinstance(data, Mapping) and "app" in data and "labels" not in data:
        data = (data.get("app") or {}).get("loader") or {}
    return data


def load_config_from_file(path: Path | str) -> KBQueryConfig:
    """
    Load and validate a configuration file.

    A ``.py`` file must define a global named ``KBQUERY_CONFIG`` that is an
    instance of :class:`KBQueryConfig`. ``.yaml``, ``.yml``, ``.json`` and
    ``.toml`` files are read with :func:`config_from_mapping`.
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    if path.suffix.lower() in DECLARATIVE_SUFFIXES:
        data = _load_declarative(path)
        return config_from_mapping(data, base_dir=path.parent.resolve()).validate()

    namespace: MutableMapping[str, Any] = {}
    code = path.read_text()
    compiled = compile(code, str(path), "exec")
    exec(compiled, namespace, namespace)  # noqa: S102 (exec used for config loading)

    if CONFIG_SYMBOL_NAME not in namespace:
        raise ConfigurationError(
            f"Configuration file {path} must define `{CONFIG_SYMBOL_NAME}`"
        )

    config_obj = namespace[CONFIG_SYMBOL_NAME]
    if not isinstance(config_obj, KBQueryConfig):
        raise ConfigurationError(
            f"{CONFIG_SYMBOL_NAME} in {path} must be a KBQueryConfig, "
            f"got {type(config_obj)!r}"
        )

    return config_obj.validate()


__all__ = [
    "CONFIG_SYMBOL_NAME",
    "ConfigurationError",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_MAX_FIELD_SIZE",
    "DEFAULT_STORAGE_ROOT_NAME",
    "KBLabel",
    "KBNamespace",
    "KBQueryConfig",
    "KBVocabulary",
    "LoaderSettings",
    "NO_IMPLICIT_LABEL",
    "ObservabilitySettings",
    "SourceDescriptor",
    "SourceKind",
    "StoragePaths",
    "config_from_mapping",
    "default_config",
    "load_config_from_file",
    "render_default_config",
]
