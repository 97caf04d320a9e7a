"""
Shared error handling for the rule manager.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RulesException(Exception):
    """Base exception for the rule manager."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthenticationError(RulesException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(RulesException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Authorization failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(RulesException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None,
                 code: str = "VALIDATION_ERROR"):
        super().__init__(code, message, details)


class NotFoundError(RulesException):
    """Referenced entity does not exist in the caller's scope."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None,
                 code: str = "NOT_FOUND"):
        super().__init__(code, message, details)


class ConflictError(RulesException):
    """Request conflicts with the current state."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None,
                 code: str = "CONFLICT"):
        super().__init__(code, message, details)


class ExternalServiceError(RulesException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None, code: str = "EXTERNAL_SERVICE_ERROR"):
        super().__init__(code, f"{service}: {message}", details)
