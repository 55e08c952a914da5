"""
Error taxonomy for the marketplace API.

Every error is an HTTPException so routes and dependencies can simply raise
it; the handlers registered in main.py turn it into the standard
``{"success": false, "message": ...}`` envelope.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message, headers=headers)
        self.extra = extra or {}


class ValidationError(ApiError):
    status_code = 400
    default_message = "Please fill all required fields."


class InvalidIdentifier(ApiError):
    status_code = 400
    default_message = "Invalid id"


class Conflict(ApiError):
    status_code = 400
    default_message = "Already exists"


class PayloadTooLarge(ApiError):
    status_code = 400
    default_message = "File too large."


class UnsupportedMediaType(ApiError):
    status_code = 400
    default_message = "Only image files are allowed."


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Not authorized. Token missing or invalid."

    def __init__(self, message: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message, extra=extra, headers={"WWW-Authenticate": "Bearer"})


class MalformedInput(Unauthenticated):
    default_message = "Not authorized. Token missing or invalid."


class InvalidToken(Unauthenticated):
    default_message = "Not authorized. Token invalid or expired."


class ExpiredToken(Unauthenticated):
    default_message = "Not authorized. Token invalid or expired."


class PrincipalNotFound(ApiError):
    status_code = 401
    default_message = "Not authorized. User/Admin not found."


class Forbidden(ApiError):
    status_code = 403
    default_message = "Access denied."


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class InternalError(ApiError):
    status_code = 500
    default_message = "Server error"


def envelope(message: str, success: bool = True, **payload: Any) -> Dict[str, Any]:
    return {"success": success, "message": message, **payload}
