"""Storage adapters for KB entries, keys and load run history."""

from .catalog import KBStore

__all__ = ["KBStore"]
