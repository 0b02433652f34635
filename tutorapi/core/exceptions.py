"""
Custom Exceptions - Application-specific error classes.

Each exception carries an HTTP status code and a machine-readable error
code. The API layer turns them into `{error, message, details}` payloads.
"""
from typing import Optional


class TutorException(Exception):
    """
    Base exception for all handler errors.

    Subclass this for specific error types.
    """
    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        """Convert to error response dict."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(TutorException):
    """Raised when input validation fails."""
    status_code = 400
    error_code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details=f"field={field}" if field else None)
        self.field = field


class AuthenticationError(TutorException):
    """Raised when the caller cannot be authenticated."""
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class PermissionDeniedError(TutorException):
    """Raised when an authenticated caller lacks a required role."""
    status_code = 403
    error_code = "forbidden"

    def __init__(self, message: str = "Admin role required"):
        super().__init__(message)


class NotFoundError(TutorException):
    """Raised when a referenced record does not exist or is not usable."""
    status_code = 404
    error_code = "not_found"


class ConflictError(TutorException):
    """Raised when a state transition is not allowed."""
    status_code = 409
    error_code = "conflict"


class TokenLimitExceeded(TutorException):
    """Raised when a user has no tokens left for LLM calls."""
    status_code = 402
    error_code = "token_limit_exceeded"

    def __init__(self, remaining: int = 0, limit: int = 0):
        super().__init__(
            message="Token limit reached. Upgrade your plan to continue.",
            details=f"remaining={remaining} limit={limit}"
        )
        self.remaining = remaining
        self.limit = limit


class RateLimitExceeded(TutorException):
    """Raised when a client exceeds the rate limit."""
    status_code = 429
    error_code = "rate_limit_exceeded"

    def __init__(self, retry_after: int = 60):
        super().__init__(
            message=f"Rate limit exceeded. Please wait {retry_after} seconds.",
            details=f"retry_after={retry_after}"
        )
        self.retry_after = retry_after


class LLMError(TutorException):
    """Raised when every LLM provider failed."""
    status_code = 503
    error_code = "llm_error"

    def __init__(self, message: str = "LLM service unavailable"):
        super().__init__(message)


class DatabaseUnavailableError(TutorException):
    """Raised when a record could not be read after every retry."""
    status_code = 503
    error_code = "database_unavailable"

    def __init__(self, message: str = "Database temporarily unavailable", context: Optional[str] = None):
        super().__init__(message, details=f"context={context}" if context else None)
