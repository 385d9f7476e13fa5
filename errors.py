"""
Error taxonomy for the API.

Every error is an HTTPException with a fixed status code so route handlers
and services can raise them directly; the handlers registered in main.py
render them as ``{"success": false, "message": ..., "error": ...}``.
"""
from typing import Any, Optional

from fastapi import HTTPException


class AppError(HTTPException):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, error: Any = None):
        super().__init__(status_code=type(self).status_code, detail=message or self.default_message)
        self.error = error


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authenticated. Please log in."


class Forbidden(AppError):
    status_code = 403
    default_message = "Not authorized to access this resource"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidRequest(ValidationError):
    pass


class InsufficientStock(ValidationError):
    default_message = "Not enough stock"


class UpstreamError(AppError):
    status_code = 502
    default_message = "Upstream provider error"


class InternalError(AppError):
    status_code = 500
    default_message = "Server error"
