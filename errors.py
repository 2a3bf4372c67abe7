# errors.py
from typing import Optional


class AppError(Exception):
    """Base class for app-specific errors."""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 400


class AuthError(AppError):
    """No credential, or one that does not identify a user."""
    status_code = 401


class InvalidCredentialError(AuthError):
    pass


class ExpiredCredentialError(AuthError):
    pass


class ForbiddenError(AppError):
    status_code = 403


class StoreUnavailableError(AppError):
    status_code = 500
