"""
Error types and error logging for hablare.

Two families share one root:

- ServiceError: failures of a generation request (configuration, credentials,
  network, provider). Generators return these inside a Failure; requestors
  pass them through unchanged.
- TypedDataError: failures of the storage and codec layer (file I/O, missing
  content, decoding, integrity, reserved formats).

Full stack traces go to an error log file while callers see clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional


class ErrorCategory(str, Enum):
    """Coarse grouping of service errors, used for reporting."""
    CONFIGURATION = "configuration"
    NETWORK = "network"
    PROVIDER = "provider"
    DATA = "data"
    STORAGE = "storage"


class HablareError(Exception):
    """Base class for every error raised or returned by hablare."""


# -----------------------------------------------------------------------------
# Service errors
# -----------------------------------------------------------------------------

class ServiceError(HablareError):
    """A generation request failed."""

    category = ErrorCategory.PROVIDER
    is_recoverable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def retry_delay(self) -> Optional[float]:
        """Suggested wait before retrying, or None if retrying won't help."""
        return None


class ConfigurationError(ServiceError):
    """
    A configuration value is out of range or missing.

    Always local and never retried. When the error concerns one field,
    `field` names it and `valid_range` carries the (low, high) bounds, or
    the accepted values for an enumerated field.
    """

    category = ErrorCategory.CONFIGURATION

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        valid_range: Optional[tuple] = None,
    ):
        super().__init__(message)
        self.field = field
        self.valid_range = valid_range

    @classmethod
    def out_of_range(cls, field: str, low, high, actual, *, context: str = "") -> "ConfigurationError":
        """Build the standard out-of-range error for a bounded field."""
        suffix = f" {context}" if context else ""
        return cls(
            f"{field} must be between {low} and {high}{suffix}, got {actual}",
            field=field,
            valid_range=(low, high),
        )


class MissingCredentialsError(ServiceError):
    """No API key or token is available for the provider."""
    category = ErrorCategory.CONFIGURATION


class NetworkError(ServiceError):
    """The provider could not be reached or the connection dropped."""
    category = ErrorCategory.NETWORK
    is_recoverable = True

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out

    @property
    def retry_delay(self) -> Optional[float]:
        return 5.0 if self.timed_out else 2.0


class ProviderError(ServiceError):
    """The provider answered with an error status."""

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class RateLimitError(ProviderError):
    """The provider rejected the request because of rate limiting."""
    is_recoverable = True

    def __init__(self, message: str, *, retry_after: Optional[float] = None):
        super().__init__(message, code="429")
        self.retry_after = retry_after

    @property
    def retry_delay(self) -> Optional[float]:
        return self.retry_after


class UnexpectedResponseFormatError(ServiceError):
    """The provider payload lacks the content the requestor needs."""
    category = ErrorCategory.DATA


class PersistenceError(ServiceError):
    """A generated payload could not be written to its storage area."""
    category = ErrorCategory.STORAGE


# -----------------------------------------------------------------------------
# Storage and codec errors
# -----------------------------------------------------------------------------

class TypedDataError(HablareError):
    """Base class for storage and serialization failures."""


class FileOperationError(TypedDataError):
    """A read, write or stat on a stored file failed."""

    def __init__(self, operation: str, reason: str, *, path: Optional[Path] = None):
        super().__init__(f"File operation '{operation}' failed: {reason}")
        self.operation = operation
        self.reason = reason
        self.path = path


class MissingContentError(FileOperationError):
    """A record has neither inline content nor a file reference."""

    def __init__(self, operation: str):
        super().__init__(
            operation,
            "no inline content and no file reference available",
        )


class DecodeError(TypedDataError):
    """A payload does not match its declared shape."""

    def __init__(self, format: str, reason: str):
        super().__init__(f"Failed to decode {format} data: {reason}")
        self.format = format
        self.reason = reason


class NotImplementedFormatError(TypedDataError, NotImplementedError):
    """A reserved serialization format was selected."""

    def __init__(self, format: str):
        super().__init__(f"Serialization format '{format}' is reserved and not implemented")
        self.format = format


class FileSizeMismatchError(TypedDataError):
    """A stored file's size differs from its reference."""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"File size mismatch: expected {expected} bytes, found {actual} bytes")
        self.expected = expected
        self.actual = actual


class ChecksumMismatchError(TypedDataError):
    """A stored file's SHA-256 differs from its reference."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Checksum mismatch: expected {expected}, found {actual}")
        self.expected = expected
        self.actual = actual


# -----------------------------------------------------------------------------
# Error log
# -----------------------------------------------------------------------------

def _error_log_path() -> Path:
    """Resolve error log path, respecting HABLARE_STORE_PATH."""
    store = os.environ.get("HABLARE_STORE_PATH")
    if store:
        return Path(store) / "hablare-errors.log"
    return Path.home() / ".hablare" / "hablare-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
