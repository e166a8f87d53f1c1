"""Service error taxonomy shared by the SRS core and the API layer.

Each error carries the HTTP status and a stable error code so the API can
surface it without translating per call site:

- ValidationError: malformed rating, unknown exam/level, bad set number.
- AuthenticationError: no user id supplied by the auth layer.
- NotFoundError: session or word does not exist (client starts over).
- ConflictError: mutation against a finished session (client calls start).
- StorageUnavailable: the database could not be reached; never retried here.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for errors surfaced to the API boundary."""

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message, "details": self.details}


class ValidationError(ServiceError):
    status_code = 422
    error_code = "validation_error"


class AuthenticationError(ServiceError):
    status_code = 401
    error_code = "unauthorized"


class NotFoundError(ServiceError):
    status_code = 404
    error_code = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error_code = "conflict"


class StorageUnavailable(ServiceError):
    status_code = 503
    error_code = "storage_unavailable"
