"""Custom exceptions for the listing media library."""

from __future__ import annotations


class MediaError(Exception):
    """Base exception for all listing media errors."""


class TransformError(MediaError):
    """Raised when an image or video cannot be decoded, transformed or encoded."""


class InsufficientInputError(TransformError):
    """Raised when a transform receives fewer images than it needs."""


class ArchiveError(MediaError):
    """Base exception for archive packaging failures."""


class EmptyInputError(ArchiveError):
    """Raised when asked to package zero items."""


class InvalidItemError(ArchiveError):
    """Raised when an archive item does not carry binary content."""

    def __init__(self, index: int, message: str | None = None) -> None:
        self.index = index
        super().__init__(message or f"Invalid item content at index {index}")
