"""Application error hierarchy.

Every error carries a user-safe message and an HTTP status. Internal
detail (deny reasons, leaked row counts) is kept on the exception for
logging and is never rendered to the caller.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors rendered by the API layer."""

    code = "error"

    def __init__(self, message: str, *, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    def to_response(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class AuthError(AppError):
    code = "unauthorized"

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message, http_status=401)


class ForbiddenError(AppError):
    code = "forbidden"

    def __init__(self, message: str = "forbidden"):
        super().__init__(message, http_status=403)


class NotFoundError(AppError):
    code = "not_found"

    def __init__(self, message: str = "not found"):
        super().__init__(message, http_status=404)


class InvalidRequestError(AppError):
    code = "bad_request"

    def __init__(self, message: str = "bad request"):
        super().__init__(message, http_status=400)


class PermissionDenied(ForbiddenError):
    """Raised when an authorization check denies an action.

    `reason` holds the internal DenyReason; the rendered message stays generic.
    """

    def __init__(self, reason: Any = None, permission: str | None = None):
        super().__init__()
        self.reason = reason
        self.permission = permission


class MissingTenantAssignment(ForbiddenError):
    """The principal lacks a tenant assignment its role requires."""

    def __init__(self, user_id: str, missing: str):
        super().__init__()
        self.user_id = user_id
        self.missing = missing


class SecurityViolation(ForbiddenError):
    """A tenant-filtered read returned records outside the caller's tenant."""

    def __init__(self, entity: str, leaked: int):
        super().__init__()
        self.entity = entity
        self.leaked = leaked


class UnknownPermissionError(ValueError):
    """Referenced permission does not exist in the catalog."""


class RoleNotFoundError(NotFoundError):
    def __init__(self, role_id: str):
        super().__init__()
        self.role_id = role_id
