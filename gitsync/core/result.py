"""Tagged success/failure results for sync operations.

Engines return ``Ok(value)`` or ``Err(kind, message)`` instead of raising, so
callers can tell a partial result from a hard failure and decide what to
retry. Only the API edge converts an ``Err`` into an HTTP error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories shared by the adapter and the engines."""

    MISSING_CONFIG = "missing_config"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"
    DECODE_ERROR = "decode_error"

    @property
    def is_fatal(self) -> bool:
        """Configuration and authorization failures abort a whole run."""
        return self in (ErrorKind.MISSING_CONFIG, ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed result carrying the failure kind and a human-readable message."""

    kind: ErrorKind
    message: str
    reset_at: int | None = None  # Unix timestamp, only set for RATE_LIMITED

    @property
    def ok(self) -> bool:
        return False


Result: TypeAlias = Ok[T] | Err
