"""Observability hooks and metrics collectors for the loader."""

from .logging import logging_observer
from .metrics import ThroughputTracker
from .observability import observability_observer

__all__ = ["logging_observer", "ThroughputTracker", "observability_observer"]
