"""Error kinds raised across photo-tagger.

Every failure a batch can report is a PhotoTaggerError carrying an
ErrorKind, the file it concerns (when there is one) and the underlying
cause, so callers branch on ``err.kind`` rather than message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not-found"
    CODEC = "codec"
    PROVIDER = "provider"
    CLASSIFICATION = "classification"
    VALIDATION = "validation"
    DIMENSION_MISMATCH = "dimension-mismatch"
    MOVE = "move"
    UNKNOWN_ACTION = "unknown-action"
    SETUP = "setup"


class PhotoTaggerError(Exception):
    kind: ErrorKind = ErrorKind.SETUP

    def __init__(
        self,
        message: str,
        path: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        text = self.message
        if self.path:
            text = f"{text} [{self.path}]"
        if self.cause is not None:
            text = f"{text}: {self.cause}"
        return text


class NotFoundError(PhotoTaggerError):
    kind = ErrorKind.NOT_FOUND


class CodecError(PhotoTaggerError):
    kind = ErrorKind.CODEC


class ProviderError(PhotoTaggerError):
    kind = ErrorKind.PROVIDER


class ClassificationError(ProviderError):
    kind = ErrorKind.CLASSIFICATION


class ValidationError(PhotoTaggerError):
    """A collaborator answer outside the allowed set. Recovered locally."""

    kind = ErrorKind.VALIDATION


class DimensionMismatchError(PhotoTaggerError):
    kind = ErrorKind.DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int, path: str | None = None):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}", path
        )
        self.expected = expected
        self.actual = actual


class MoveError(PhotoTaggerError):
    kind = ErrorKind.MOVE

    def __init__(self, source: str, destination: str, cause: BaseException | None = None):
        super().__init__(f"Failed to move to {destination}", source, cause)
        self.source = source
        self.destination = destination


class UnknownActionError(PhotoTaggerError):
    kind = ErrorKind.UNKNOWN_ACTION

    def __init__(self, action: str):
        super().__init__(f"Unknown action: {action}")
        self.action = action


class SetupError(PhotoTaggerError):
    """Fatal to the whole invocation (bad output dir, unreadable reference)."""

    kind = ErrorKind.SETUP
