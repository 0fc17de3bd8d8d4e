"""Stateless manuscript services operating on an explicit session."""

from __future__ import annotations

from .errors import (  # noqa: F401
    AssistanceError,
    InvalidRequestError,
    ManuscriptServiceError,
    NotFoundError,
    PermissionDeniedError,
    VersionConflictError,
)

__all__ = [
    "AssistanceError",
    "InvalidRequestError",
    "ManuscriptServiceError",
    "NotFoundError",
    "PermissionDeniedError",
    "VersionConflictError",
]
