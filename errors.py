"""
Error taxonomy shared by every handler.

Each error maps to one HTTP status; main.py renders them into the standard
envelope {success: false, message, error?}.
"""
from typing import Optional


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(ApiError):
    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401


class InvalidToken(AuthenticationError):
    pass


class ExpiredToken(AuthenticationError):
    pass


class AuthorizationError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class DuplicateError(ConflictError):
    """Something that must be unique already exists."""
    status_code = 400


class ServerError(ApiError):
    status_code = 500
