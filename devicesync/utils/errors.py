"""Error taxonomy shared by the services and the HTTP/WebSocket boundary.

Every error raised on purpose by DeviceSync is an ``AppError`` subclass. The
HTTP layer renders them as ``{"success": false, "error": {...}}``; anything
else is treated as an unexpected ``Internal`` failure.
"""

from typing import Any, Optional


class AppError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationFailed(AppError):
    code = "VALIDATION_FAILED"
    status_code = 400


class DeviceLimitExceeded(AppError):
    code = "DEVICE_LIMIT_EXCEEDED"
    status_code = 400


class InvalidState(AppError):
    code = "INVALID_STATE"
    status_code = 400


class Unauthorized(AppError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidToken(Unauthorized):
    code = "INVALID_TOKEN"


class TokenExpired(Unauthorized):
    code = "TOKEN_EXPIRED"


class Forbidden(AppError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(AppError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(AppError):
    code = "CONFLICT"
    status_code = 409


class Internal(AppError):
    """Store or infrastructure failure. The cause is chained, never exposed."""

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}
