"""Exception hierarchy for the KB loader."""


class LoaderError(Exception):
    """Base error for KB loading failures."""


class SourceAccessError(LoaderError):
    """Raised when a KB source file is missing or unreadable."""


class RowValidationError(LoaderError):
    """Raised when a KB row fails field validation."""

    def __init__(self, reason: str, fields=None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.fields = tuple(fields or ())


class StorageError(LoaderError):
    """Raised when the persistence layer encounters an issue."""


class BatchWriterClosedError(LoaderError, RuntimeError):
    """Raised when items are added to a batch writer after it was closed."""


class PipelineExecutionError(LoaderError):
    """Raised when a load run fails irrecoverably."""
