"""Exception hierarchy for demonstration recording and reading.

Every failure is fatal to the current session: nothing is retried and no
attempt is made to repair a partially written file.  Callers that want to
recover should catch :class:`RecordingError` and discard the file at
:attr:`RecordingError.path`.
"""
from __future__ import annotations

from pathlib import Path


class RecordingError(RuntimeError):
    """Base class for all demonstration recording failures."""

    def __init__(self, message: str, path: str | Path | None = None) -> None:
        self.path = Path(path) if path is not None else None
        super().__init__(message)


class DirectoryCreationError(RecordingError):
    """Raised when the demonstration directory cannot be created."""


class FileCreationError(RecordingError):
    """Raised when the output file cannot be created or no free name exists."""


class WriteError(RecordingError):
    """Raised when appending a record or patching the metadata fails."""


class SeekError(RecordingError):
    """Raised when the output stream cannot be repositioned."""


class InvalidSequencingError(RecordingError):
    """Raised when recorder operations are called out of order."""

    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(
            f"Cannot call {operation}() while the recorder is {state!r}."
        )


class MetadataOverflowError(RecordingError, ValueError):
    """Raised when the metadata cannot fit in the reserved header region."""

    def __init__(self, size: int, capacity: int) -> None:
        self.size = size
        self.capacity = capacity
        super().__init__(
            f"Encoded metadata needs {size} bytes but only {capacity} are reserved."
        )


class DemonstrationFormatError(RecordingError, ValueError):
    """Raised when a demonstration file is truncated or cannot be decoded."""
