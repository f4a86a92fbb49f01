"""
Unified hierarchy of error types. These inherit from standard errors like
ValueError and FileNotFoundError but are more fine-grained.
"""

from typing import Optional, Tuple, Type


class LocalWorkError(ValueError):
    """Base class for local-work runtime errors."""

    pass


class UnexpectedError(LocalWorkError):
    """For unexpected errors or runtime check failures."""

    pass


class SelfExplanatoryError(LocalWorkError):
    """Common errors that arise from 'normal' problems that are largely self-explanatory,
    i.e., no stack trace should be necessary when reporting to the user. A `hint` is a
    short suggested remedy shown after the message."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class InvalidInput(SelfExplanatoryError):
    """Raised when the wrong kind of input is given to a command."""

    pass


class InvalidField(InvalidInput):
    """Raised when a required header field is missing or a value is out of its domain."""

    pass


class InvalidOperation(InvalidInput):
    """Raised when an operation can't be performed."""

    pass


class FileExists(InvalidInput, FileExistsError):
    """Raised when a file already exists."""

    pass


class RecordNotFound(InvalidInput, FileNotFoundError):
    """Raised when no record matches an id or pattern in any directory."""

    pass


class InvalidState(SelfExplanatoryError):
    """Raised when the workspace or other system state is not valid for an operation."""

    pass


class WorkspaceNotFound(InvalidState):
    """Raised when there is no local workspace and the global one was not requested."""

    pass


class TargetUnreachable(InvalidState):
    """Raised when a target directory can't be created, e.g. due to permissions."""

    pass


class SkippableError(SelfExplanatoryError):
    """Errors that are skippable and shouldn't abort the entire operation."""

    pass


class ContentError(SkippableError):
    """Raised when content is not appropriate for an operation."""

    pass


class FileFormatError(ContentError):
    """Raised when a file's content format is invalid."""

    pass


class AllocatorDegraded(SkippableError):
    """
    Id lock contention exhausted its retries. Normally only logged, since the
    allocator then falls back to an unsynchronized read.
    """

    pass


NONFATAL_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    SelfExplanatoryError,
    FileNotFoundError,
    IOError,
)
"""Exceptions that are not fatal and usually don't merit a full stack trace."""


def is_fatal(exception: Exception) -> bool:
    for e in NONFATAL_EXCEPTIONS:
        if isinstance(exception, e):
            return False
    return True
