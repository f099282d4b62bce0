from __future__ import annotations


class AmlGuardError(Exception):
    """Base error for AMLGuard."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or "Request failed"
        self.details = details


class ValidationError(AmlGuardError):
    """Malformed or missing input."""

    status_code = 400
    code = "BAD_REQUEST"


class AuthError(AmlGuardError):
    """Missing or invalid credentials."""

    status_code = 401
    code = "AUTH_UNAUTHORIZED"


class ForbiddenError(AmlGuardError):
    """Authenticated principal lacks the required role."""

    status_code = 403
    code = "AUTH_FORBIDDEN"


class NotFoundError(AmlGuardError):
    """Requested record does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AmlGuardError):
    """Requested state transition is not allowed."""

    status_code = 409
    code = "CONFLICT"


class PersistenceError(AmlGuardError):
    """Backing store failure."""

    status_code = 500
    code = "PERSISTENCE_ERROR"
