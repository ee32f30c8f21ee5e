"""
Domain errors raised by the services and rendered as JSON by app.py.
"""
from typing import Any, Dict, Optional


class ComplaintTrackerError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"message": self.message}
        body.update(self.extra)
        return body


class ValidationError(ComplaintTrackerError):
    status_code = 400
    default_message = "Invalid input"


class NotFound(ComplaintTrackerError):
    status_code = 404
    default_message = "Not found"


class UserNotFound(NotFound):
    """Login against an unknown identifier (the login form expects 400)."""
    status_code = 400
    default_message = "User not found"


class NotActivated(ComplaintTrackerError):
    status_code = 403
    default_message = "Account not activated. Set password on first login."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, needsActivation=True)


class InvalidCredentials(ComplaintTrackerError):
    status_code = 400
    default_message = "Invalid credentials"


class InvalidOrAlreadyActivated(ComplaintTrackerError):
    status_code = 400
    default_message = "Invalid or already activated"


class Unauthorized(ComplaintTrackerError):
    status_code = 401
    default_message = "No token provided"


class InvalidToken(ComplaintTrackerError):
    status_code = 401
    default_message = "Invalid token"


class Forbidden(ComplaintTrackerError):
    status_code = 403
    default_message = "Access denied"


class InvalidState(ComplaintTrackerError):
    status_code = 400
    default_message = "Operation not allowed in the current state"


class NoValidRows(ValidationError):
    default_message = "No valid student rows found in the uploaded file"
