from __future__ import annotations

from typing import Any


class StagepipeError(Exception):
    """Base error surfaced to callers with a stable code and a generic message."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Unable to process request."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class UnauthenticatedError(StagepipeError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Not authenticated."


class NotFoundError(StagepipeError):
    """Raised for absent rows and for rows outside the caller's scope alike."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Project not found."


class InvalidStatusError(StagepipeError):
    status_code = 400
    code = "INVALID_STATUS"
    default_message = "Invalid project status."


class ConflictError(StagepipeError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Project was modified concurrently. Retry the request."


class CollaboratorUnavailableError(StagepipeError):
    status_code = 503
    code = "COLLABORATOR_UNAVAILABLE"
    default_message = "Unable to update project."
