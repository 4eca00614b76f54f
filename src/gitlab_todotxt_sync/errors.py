"""Exception taxonomy for a sync run.

Per-record errors (``NormalizationError``, ``FormatError``) are recoverable:
the engine reports them and carries on.  Per-run errors (``FetchError``,
``IoError``) abort the run before anything is written.
"""


class TodoSyncError(Exception):
    """Base class for all sync errors."""


class FetchError(TodoSyncError):
    """The remote todo list could not be fetched in full."""


class NormalizationError(TodoSyncError):
    """A raw remote record could not be turned into a ``TodoRecord``.

    Attributes:
        record_id: The remote identifier if one was present.
    """

    def __init__(self, message: str, record_id: str | None = None):
        super().__init__(message)
        self.record_id = record_id


class FormatError(TodoSyncError):
    """A todo.txt line could not be parsed.

    Attributes:
        line: The offending line, verbatim.
    """

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line


class IoError(TodoSyncError):
    """Reading or writing the local todo file failed."""
