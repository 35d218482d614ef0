"""Service-layer exceptions.

Services raise these instead of returning status tuples; a single exception
handler in ``main.py`` turns them into ``{"error": ...}`` JSON responses.
"""

from __future__ import annotations


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class QuotaExceededError(ValidationError):
    default_message = "Gallery quota reached"


class AuthenticationError(ServiceError):
    status_code = 401
    default_message = "Unauthorized"


class PermissionDeniedError(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvitationExpiredError(NotFoundError):
    default_message = "Invitation has expired"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Conflict"


class RateLimitedError(ServiceError):
    status_code = 429
    default_message = "Too many attempts. Please try again later."


class StorageError(ServiceError):
    default_message = "Storage operation failed"


class BlobNotFoundError(StorageError):
    status_code = 404
    default_message = "Not found"


class ImageProcessingError(ServiceError):
    default_message = "Image processing failed"
