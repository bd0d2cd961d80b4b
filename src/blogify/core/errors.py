from __future__ import annotations

from typing import Optional


class BlogifyError(Exception):
    """Base class for every failure the client reports to its caller."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(BlogifyError):
    """Required input is missing; the user corrects it and resubmits."""


class AuthError(BlogifyError):
    """Bearer credential is missing, expired, or rejected by the server."""


class StreamOpenError(BlogifyError):
    """The event stream could not be opened or answered with a non-success status."""


class StreamReadError(BlogifyError):
    """The transport failed after the event stream was opened."""


class PersistError(BlogifyError):
    """A chat store CRUD call failed."""


class ParseError(BlogifyError):
    """Malformed event line or structured-content candidate. Always recovered locally."""


class GenerationInProgressError(BlogifyError):
    """A generation request is already running for this chat session."""
