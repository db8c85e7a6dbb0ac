"""Application errors and the HTTP status each one maps to."""

from typing import Optional


class AppError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class AuthenticationError(AppError):
    status_code = 401
    message = "Authentication required"


class ValidationError(AppError):
    status_code = 400
    message = "Invalid request"


class StorageError(AppError):
    """Persistence failure. The message is for logs only, never for clients."""

    status_code = 500
    message = "Storage error"


class DuplicateRecordError(StorageError):
    message = "Duplicate record"
