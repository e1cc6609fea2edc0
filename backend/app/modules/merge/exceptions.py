"""Errors raised by the merge pipeline and the retention sweeper."""

from enum import Enum
from typing import Optional


class MergeError(Exception):
    """Base exception for merge pipeline errors."""

    pass


class ValidationError(MergeError):
    """Raised when a merge request is malformed or over the limit."""

    pass


class ConfigurationError(MergeError):
    """Raised when the service is missing required configuration."""

    pass


class FetchError(MergeError):
    """Raised when a source URL cannot be downloaded."""

    def __init__(self, url: str, index: int, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.index = index
        self.status_code = status_code
        super().__init__(f"Failed to download video {index + 1} ({url}): {reason}")


class ConcatenationError(MergeError):
    """Raised when the encoder fails to join the staged files."""

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)


class TransformError(MergeError):
    """Raised when a resize or compress pass fails.

    Always recovered by the planner; never reaches the API caller.
    """

    def __init__(self, operation: str, message: str, exit_code: Optional[int] = None):
        self.operation = operation
        self.exit_code = exit_code
        super().__init__(f"{operation} failed: {message}")


class DeliveryErrorKind(str, Enum):
    """Closed classification of upload failures."""
    SIZE_EXCEEDED = "size_exceeded"
    SYNC_NOT_SUPPORTED = "sync_not_supported"
    AUTH_FAILURE = "auth_failure"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        """Whether the next strategy in the fallback chain may be tried."""
        return self in (DeliveryErrorKind.SIZE_EXCEEDED, DeliveryErrorKind.SYNC_NOT_SUPPORTED)


class DeliveryAttemptError(MergeError):
    """One failed upload attempt under a single strategy."""

    def __init__(self, strategy: str, kind: DeliveryErrorKind, cause: BaseException):
        self.strategy = strategy
        self.kind = kind
        self.cause = cause
        super().__init__(f"{strategy} upload failed ({kind.value}): {cause}")


class DeliveryError(MergeError):
    """Raised when every strategy in the fallback chain has failed."""

    def __init__(self, attempts: list[DeliveryAttemptError]):
        self.attempts = attempts
        details = ", ".join(f"{a.strategy}: {a.cause}" for a in attempts)
        super().__init__(f"All upload methods failed. {details}")


class SweepItemError(MergeError):
    """Raised when one expired artifact cannot be deleted."""

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to delete {key}: {cause}")
