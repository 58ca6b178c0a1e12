"""Apply named transform pipelines to expand entry text into lookup keys."""

from __future__ import annotations

from typing import Sequence

from kbquery.transforms.functions import KeyTransform
from kbquery.transforms.registry import (
    DEFAULT_PIPELINE,
    TransformRegistry,
    default_registry,
)


class KeyTransformEngine:
    """Expand text into a deduplicated set of keys.

    Each stage of a pipeline is applied to every string produced by the
    previous stage, starting from the original text. The keys are the union
    of every stage's output. An empty pipeline yields the text itself.
    """

    def __init__(
        self,
        registry: TransformRegistry | None = None,
        default_pipeline: Sequence[str] = DEFAULT_PIPELINE,
    ) -> None:
        self._registry = registry if registry is not None else default_registry()
        self._default_pipeline = tuple(default_pipeline)
        self._resolved: dict[tuple[str, ...], tuple[KeyTransform, ...]] = {}
        self._resolved_version = self._registry.version
        # Resolve the default pipeline eagerly.
        self._resolve(self._default_pipeline)

    @property
    def registry(self) -> TransformRegistry:
        return self._registry

    @property
    def default_pipeline(self) -> tuple[str, ...]:
        return self._default_pipeline

    def transform(self, text: str, pipeline: Sequence[str] | None = None) -> frozenset[str]:
        names = self._default_pipeline if pipeline is None else tuple(pipeline)
        stages = self._resolve(names)
        if not stages:
            return frozenset((text,))

        keys: set[str] = set()
        frontier: tuple[str, ...] = (text,)
        for stage in stages:
            produced = _unique(
                output.strip()
                for value in frontier
                for output in stage(value)
            )
            keys.update(produced)
            if produced:
                frontier = produced
        return frozenset(keys)

    def ordered_keys(self, text: str, pipeline: Sequence[str] | None = None) -> list[str]:
        """Return the keys for ``text`` in their canonical (sorted) write order."""
        return sorted(self.transform(text, pipeline))

    def _resolve(self, names: tuple[str, ...]) -> tuple[KeyTransform, ...]:
        if self._resolved_version != self._registry.version:
            self._resolved.clear()
            self._resolved_version = self._registry.version
        stages = self._resolved.get(names)
        if stages is None:
            stages = self._registry.resolve(names)
            self._resolved[names] = stages
        return stages


def _unique(values) -> tuple[str, ...]:
    return tuple(dict.fromkeys(value for value in values if value))
