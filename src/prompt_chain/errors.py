"""Error taxonomy for chain runs."""

from __future__ import annotations

from enum import Enum


DEFAULT_ABORT_REASON = "Execution aborted by user"


class ErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    EMPTY_RESPONSE = "empty_response"
    FAILED = "failed"
    ABORTED = "aborted"


class ChainError(Exception):
    """Base class for errors raised by the chain engine."""


class ValidationError(ChainError, ValueError):
    """A run could not start because required variables are unresolved."""

    def __init__(self, missing_variables: list[str]) -> None:
        self.missing_variables = list(missing_variables)
        super().__init__(f"Missing variables: {', '.join(self.missing_variables)}")


class InvalidTransition(ChainError, RuntimeError):
    pass


class RunAlreadyActive(ChainError, RuntimeError):
    pass


class GenerationError(ChainError):
    """Raised by a generation service when it cannot produce output."""

    kind: ErrorKind = ErrorKind.FAILED


class Unavailable(GenerationError):
    kind = ErrorKind.UNAVAILABLE


class EmptyResponse(GenerationError):
    kind = ErrorKind.EMPTY_RESPONSE

    def __init__(self, message: str = "Failed to get model response") -> None:
        super().__init__(message)


class Aborted(GenerationError):
    kind = ErrorKind.ABORTED

    def __init__(self, message: str = DEFAULT_ABORT_REASON) -> None:
        super().__init__(message)
