"""
Error taxonomy for the correlation engine.

Runtime and environmental failures are absorbed at the lowest layer that can
degrade gracefully:

- DiscoveryError / FileReadError / RecordParseError: the scanner skips the
  offending directory, file or line and keeps going.
- ClassificationError: raised by the session classifier and recovered by the
  fallback selector.
- ValidationError: caller passed inputs of the wrong shape. This is the only
  error that leaves the engine.
"""

from typing import Optional


class CorrelationError(Exception):
    """Base exception for correlation engine errors."""


# =============================================================================
# Scanner Errors (non-fatal)
# =============================================================================

class DiscoveryError(CorrelationError):
    """Transcript root directory is missing or unreadable."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class FileReadError(CorrelationError):
    """A single transcript file could not be opened or read."""

    def __init__(self, message: str, path: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.path = path
        self.original_error = original_error


class RecordParseError(CorrelationError):
    """A transcript line is not a usable conversation record."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.line_number = line_number


class TimestampError(RecordParseError):
    """A record's timestamp is missing or not ISO-8601."""


# =============================================================================
# Classification Errors (recovered by the fallback selector)
# =============================================================================

class ClassificationError(CorrelationError):
    """The relevance classifier could not produce a selection."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class ClassificationTimeoutError(ClassificationError):
    """The reasoning service did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Session classification timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class ResponseParseError(ClassificationError):
    """The reasoning service answered with something other than a selection."""


# =============================================================================
# Caller Errors
# =============================================================================

class ValidationError(CorrelationError, ValueError):
    """Engine inputs violate their basic shape (programmer error)."""
