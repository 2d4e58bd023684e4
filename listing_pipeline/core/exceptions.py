"""Error taxonomy for the listing pipeline service."""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline related errors."""


class ValidationFailure(PipelineError):
    """Raised when a submitted image fails validation."""

    def __init__(self, message: str, filename: Optional[str] = None, index: Optional[int] = None) -> None:
        self.filename = filename
        self.index = index
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"index": self.index, "filename": self.filename, "error": str(self)}


class CollaboratorError(PipelineError):
    """Raised when a call to an external service fails, times out or is misconfigured."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service} service error: {message}")


class JobNotFoundError(PipelineError):
    pass
