"""Error types shared across the RAG engine."""
from enum import Enum
from typing import Optional


class DimensionMismatch(ValueError):
    """Raised when an embedding does not match the index dimension."""

    def __init__(self, expected: int, actual: int, what: str = "embedding"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Invalid {what} dimensions: expected {expected}, got {actual}"
        )


class MalformedPersistedEntry(ValueError):
    """A snapshot entry that cannot be restored into the index."""

    def __init__(self, entry_id, reason: str):
        self.entry_id = entry_id
        self.reason = reason
        super().__init__(f"Malformed entry {entry_id!r}: {reason}")


class ErrorKind(str, Enum):
    """Classification attached to provider failures by the provider client."""

    RATE_LIMITED = "rate_limited"
    OVERLOADED = "overloaded"
    TIMEOUT = "timeout"
    AUTH = "auth"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.OVERLOADED, ErrorKind.TIMEOUT)


class ProviderError(RuntimeError):
    """Failure reported by the embedding or chat-completion provider."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class GenerationError(RuntimeError):
    """Raised when the answer generator cannot produce a response."""
