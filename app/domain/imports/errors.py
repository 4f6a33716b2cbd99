"""
Exception taxonomy for the CSV bulk import pipeline.
"""
from dataclasses import dataclass


class ImportPipelineError(Exception):
    """Base exception for import pipeline failures."""
    pass


class FatalInputError(ImportPipelineError):
    """Raised when the import request itself is unusable (bad file type, missing history)."""
    pass


class InvalidColumnError(FatalInputError):
    """Raised when a CSV header cannot be resolved to a known property."""
    pass


class TransportError(ImportPipelineError):
    """Raised when reading or counting the source file fails."""
    pass


class WorkerError(ImportPipelineError):
    """Raised when a dispatched worker fails."""
    pass


class WorkerCancelledError(WorkerError):
    """Raised when a worker was cancelled before it could finish."""
    pass


@dataclass(frozen=True)
class RowValidationError:
    """A non-fatal duplicate violation for one field of one row."""
    field: str
    value: str
    message: str

    def __str__(self) -> str:
        return self.message
