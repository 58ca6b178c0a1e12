"""Key transform functions, registry and pipeline engine."""

from .engine import KeyTransformEngine
from .functions import BUILTIN_TRANSFORMS, KeyTransform
from .registry import (
    DEFAULT_PIPELINE,
    TransformRegistry,
    UnknownTransformError,
    default_registry,
)

__all__ = [
    "BUILTIN_TRANSFORMS",
    "DEFAULT_PIPELINE",
    "KeyTransform",
    "KeyTransformEngine",
    "TransformRegistry",
    "UnknownTransformError",
    "default_registry",
]
