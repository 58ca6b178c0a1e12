"""Registry resolving transform names to transform functions."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Mapping, MutableMapping, Sequence

from kbquery.transforms.functions import BUILTIN_TRANSFORMS, KeyTransform


LOGGER = logging.getLogger(__name__)

DEFAULT_PIPELINE: tuple[str, ...] = ("identity", "lowercase", "canonical")


class UnknownTransformError(KeyError):
    """Raised when a pipeline names a transform that is not registered."""

    def __init__(self, names: Sequence[str]) -> None:
        self.names = tuple(names)
        super().__init__(f"Unknown key transform(s): {', '.join(self.names)}")

    def __str__(self) -> str:
        return str(self.args[0])


class TransformRegistry:
    """Name to function mapping for key transforms."""

    def __init__(self, transforms: Mapping[str, KeyTransform] | None = None) -> None:
        self._transforms: MutableMapping[str, KeyTransform] = dict(
            BUILTIN_TRANSFORMS if transforms is None else transforms
        )
        self._version = 0

    def __contains__(self, name: object) -> bool:
        return name in self._transforms

    def __iter__(self) -> Iterator[str]:
        return iter(self._transforms)

    def __len__(self) -> int:
        return len(self._transforms)

    @property
    def version(self) -> int:
        """Incremented on every registration."""
        return self._version

    def register(self, name: str, func: KeyTransform) -> None:
        if not name:
            raise ValueError("Transform name must be non-empty")
        LOGGER.debug("Registering key transform: %s", name)
        self._transforms[name] = func
        self._version += 1

    def unknown(self, names: Iterable[str]) -> list[str]:
        """Return the names in ``names`` that are not registered."""
        return [name for name in names if name not in self._transforms]

    def resolve(self, names: Sequence[str]) -> tuple[KeyTransform, ...]:
        missing = self.unknown(names)
        if missing:
            raise UnknownTransformError(missing)
        return tuple(self._transforms[name] for name in names)


_DEFAULT_REGISTRY = TransformRegistry()


def default_registry() -> TransformRegistry:
    """Return the process-wide registry of built-in transforms."""
    return _DEFAULT_REGISTRY
