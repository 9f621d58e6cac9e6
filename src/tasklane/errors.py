# src/tasklane/errors.py

"""
Error taxonomy shared by every component.

Each error carries an HTTP-like status code and a stable error type string so that an
outer transport (not part of this package) can render it without inspecting classes.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    status_code: int = 500
    error_type: str = "InternalError"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error_type, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    status_code = 400
    error_type = "ValidationError"


class AuthenticationError(AppError):
    status_code = 401
    error_type = "AuthenticationError"

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message)


class AuthorizationError(AppError):
    status_code = 403
    error_type = "AuthorizationError"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    error_type = "NotFoundError"

    def __init__(self, resource: str, identifier: str | None = None) -> None:
        if identifier:
            message = f"{resource} with identifier '{identifier}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ConflictError(AppError):
    status_code = 409
    error_type = "ConflictError"


class RateLimitedError(AppError):
    status_code = 429
    error_type = "RateLimitError"

    def __init__(self, message: str = "Rate limit exceeded") -> None:
        super().__init__(message)


class InternalError(AppError):
    status_code = 500
    error_type = "InternalError"

    def __init__(
        self, message: str = "An internal error occurred", details: dict[str, Any] | None = None
    ) -> None:
        super().__init__(message, details)


class ModelOutputError(AppError):
    """The text-generation collaborator answered, but not in the agreed JSON shape."""

    status_code = 502
    error_type = "ModelOutputError"


class TemporarilyUnavailableError(AppError):
    """A dependency is throttling or briefly unreachable; the caller may retry."""

    status_code = 503
    error_type = "ServiceUnavailableError"

    def __init__(
        self,
        message: str = "Service temporarily unavailable - please try again",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


def error_response(exc: BaseException) -> dict[str, Any]:
    """
    Render an exception as a transport-neutral response envelope.

    Unknown exceptions never leak their message.
    """
    if isinstance(exc, AppError):
        return {"statusCode": exc.status_code, "body": exc.to_dict()}
    return {
        "statusCode": 500,
        "body": {"error": "InternalError", "message": "An unexpected error occurred"},
    }
