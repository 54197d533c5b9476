"""
Application error taxonomy.

Each error kind maps to exactly one HTTP status; the handlers in main.py render
them as ``{"status": "error", "message": ..., "errors": [...]}``.
"""

from typing import Any, List, Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class AuthorizationError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404

    @classmethod
    def for_resource(cls, resource: str) -> "NotFoundError":
        return cls(f"{resource} not found")


class ConflictError(AppError):
    status_code = 409


class InternalError(AppError):
    status_code = 500
