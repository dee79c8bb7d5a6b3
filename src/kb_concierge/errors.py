"""Error taxonomy shared by the index, tools and orchestrator."""

from __future__ import annotations


class ConciergeError(Exception):
    """Base class for all kb-concierge errors."""


class ConfigError(ConciergeError, ValueError):
    """Raised when chunking or index parameters are invalid."""


class EmbeddingError(ConciergeError):
    """Raised when the embedding capability fails or returns malformed data."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        self.message = message
        super().__init__(message if status is None else f"[{status}] {message}")


class CompletionError(ConciergeError):
    """Raised when the completion capability fails."""

    def __init__(self, body: str, status: int | None = None) -> None:
        self.status = status
        self.body = body
        super().__init__(body if status is None else f"[{status}] {body}")


class ToolInputError(ConciergeError):
    """Tool arguments rejected before any side effect."""

    code = "invalid_arguments"


class InvalidDateTime(ToolInputError):
    """The requested visit date/time could not be parsed."""

    code = "invalid_datetime"


class PersistenceFailure(ConciergeError):
    """An append-log or calendar collaborator is unavailable or failed."""

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")
