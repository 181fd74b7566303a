"""Error types for index-clipper.

Provides:
- A small exception hierarchy with categories for handling decisions
- The manifest record used when a batch archive skips a job
- Display formatting for the CLI
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors for handling decisions."""

    VALIDATION = "validation"  # Bad intake - reported immediately
    NOT_FOUND = "not_found"  # Unknown job or missing clip directory
    EXTERNAL = "external"  # Cutting tool failed or could not start
    ARCHIVE = "archive"  # Zip encoding / stream failure
    STORAGE = "storage"  # Job files could not be written
    INTERNAL = "internal"  # Bug in code


class ClipperError(Exception):
    """Base exception for index-clipper errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information
    """

    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} (context: {self.context})"
        return self.message


class ValidationError(ClipperError):
    """Intake validation error.

    Examples: missing media file, empty index text, empty batch request.
    """

    category = ErrorCategory.VALIDATION


class NotFoundError(ClipperError):
    """Requested job or clip directory does not exist."""

    category = ErrorCategory.NOT_FOUND


class ExternalToolError(ClipperError):
    """The external cutting tool failed.

    Attributes:
        returncode: Exit status, or None when the process never started
        stderr: Diagnostic output captured from the tool
    """

    category = ErrorCategory.EXTERNAL

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
        context: dict | None = None,
    ):
        super().__init__(message, context)
        self.returncode = returncode
        self.stderr = stderr


class ArchiveError(ClipperError):
    """Zip assembly failed at the encoding or stream layer."""

    category = ErrorCategory.ARCHIVE


class StorageError(ClipperError):
    """Intake files could not be written under the storage root."""

    category = ErrorCategory.STORAGE


@dataclass(frozen=True)
class ArchiveProblem:
    """A job that could not be fully packaged into a batch archive.

    Recorded as one manifest line instead of failing the archive.
    """

    job_id: str
    reason: str

    def __str__(self) -> str:
        return f"{self.job_id}: {self.reason}"


def format_error_for_display(error: Exception) -> str:
    """Format an error message for user display.

    Args:
        error: Error to format

    Returns:
        Human-readable error message
    """
    if isinstance(error, ClipperError):
        category = error.category.value

        if error.context:
            context_str = ", ".join(f"{k}={v}" for k, v in error.context.items())
            return f"[{category}] {error.message} ({context_str})"

        return f"[{category}] {error.message}"

    return f"[error] {type(error).__name__}: {error}"
