"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password"""
    def __init__(self):
        super().__init__("Invalid credentials")


class CredentialTheftDetected(AuthenticationError):
    """
    A stale or mismatching refresh token was presented.

    Rendered exactly like any other authentication failure; the session
    revocation happens before it is raised.
    """
    def __init__(self, session_id: Optional[str] = None, family_id: Optional[str] = None):
        super().__init__()
        self.session_id = session_id
        self.family_id = family_id


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} already exists", status_code=409)


class InviteUnavailableError(BaseAPIException):
    """Invite expired or used up"""
    def __init__(self, message: str = "Invite is no longer available"):
        super().__init__(message, status_code=410)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class ApiKeyLimitReachedError(AuthorizationError):
    """Too many active API keys"""
    def __init__(self, limit: int):
        super().__init__(
            f"Maximum of {limit} API keys per user. Revoke an existing key to create a new one."
        )


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        window: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        details: Dict[str, Any] = {}
        headers: Dict[str, str] = {}
        if window:
            details["window"] = window
        if retry_after is not None:
            details["retry_after"] = retry_after
            headers["Retry-After"] = str(retry_after)
        super().__init__(message, status_code=429, details=details, headers=headers)
