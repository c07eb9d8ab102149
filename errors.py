# errors.py
"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these with human-readable messages; main.py turns them into
JSON bodies of the form {"error": "..."} with the matching status code.
"""
from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(AppError):
    """Bad credentials, or a missing/invalid/expired token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    """Missing row, or a row the caller is not allowed to see."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT


class ServerError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class StoreError(ServerError):
    """The record store failed; never retried."""
