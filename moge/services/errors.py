"""Error taxonomy shared by the manuscript services and the HTTP layer."""
from __future__ import annotations


class ManuscriptServiceError(RuntimeError):
    """Base class for failures surfaced to the caller as rejected operations."""

    status_code = 400


class NotFoundError(ManuscriptServiceError):
    """Raised when a manuscript, volume, chapter or related record does not resolve."""

    status_code = 404


class PermissionDeniedError(ManuscriptServiceError):
    """Raised when the resolved owner differs from the requesting user."""

    status_code = 403


class InvalidRequestError(ManuscriptServiceError):
    """Raised when a request is structurally invalid."""

    status_code = 400


class VersionConflictError(ManuscriptServiceError):
    """Raised when a content save was based on a stale version."""

    status_code = 409


class AssistanceError(ManuscriptServiceError):
    """Raised when the writing assistant fails or returns nothing usable."""

    status_code = 503
    default_message = "The writing assistant is unavailable right now. Please try again."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


__all__ = [
    "AssistanceError",
    "InvalidRequestError",
    "ManuscriptServiceError",
    "NotFoundError",
    "PermissionDeniedError",
    "VersionConflictError",
]
