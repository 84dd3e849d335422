"""Exception hierarchy for lablog operations."""

from __future__ import annotations

from typing import Optional


class LablogError(Exception):
    """Base exception for lablog operations."""
    pass


class ValidationError(LablogError, ValueError):
    """Raised when a required field is empty or invalid.

    Always raised before any file is touched.
    """
    pass


class DecodeError(LablogError):
    """Raised when a single CSV row cannot be decoded into a record."""
    pass


class StoreError(LablogError):
    """Raised when a project file cannot be opened, created or written."""
    pass


class NotFoundError(LablogError):
    """Raised when a project that must exist does not."""
    pass


class ConflictError(LablogError):
    """Raised when the destination of a rename or merge is not allowed."""
    pass


class FormatError(LablogError):
    """Raised when the external document processor fails."""
    pass


class HookError(LablogError):
    """Raised when a commit hook step fails after the data was written.

    The data change is durable. ``files`` and ``message`` are what the failed
    commit was about, so the caller can retry just the commit step.
    """

    def __init__(
        self,
        error: str,
        files: Optional[list[str]] = None,
        message: Optional[str] = None,
        output: str = "",
    ):
        super().__init__(error)
        self.files = files or []
        self.message = message
        self.output = output
