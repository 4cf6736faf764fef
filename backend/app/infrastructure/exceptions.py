"""
Custom Exceptions for App Ideas Finder

Hierarchical exception classes for proper error handling across layers.
Each top-level class maps to one HTTP status in app.main.
"""

from typing import Optional, Dict, Any


class AppIdeasFinderError(Exception):
    """Base exception for all App Ideas Finder errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class AuthenticationError(AppIdeasFinderError):
    """Raised when the request carries no valid session."""

    def __init__(self, message: str = "Not authenticated", original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error)


class AuthorizationError(AppIdeasFinderError):
    """Raised when an authenticated user lacks a role or entitlement."""

    def __init__(
        self,
        message: str = "Forbidden",
        permission: Optional[str] = None,
    ):
        details = {}
        if permission:
            details["permission"] = permission
        super().__init__(message, details)


class ValidationError(AppIdeasFinderError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DependencyError(AppIdeasFinderError):
    """Raised when a backing store or external API fails."""
    pass


class DatabaseError(DependencyError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class DuplicateError(DatabaseError):
    """Raised when attempting to create a duplicate resource."""
    pass


class PaymentServiceError(DependencyError):
    """Raised when a Stripe call fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class EmailServiceError(DependencyError):
    """Raised when sending email through Resend fails."""

    def __init__(
        self,
        message: str,
        recipient: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if recipient:
            details["recipient"] = recipient
        super().__init__(message, details, original_error)


class AIServiceError(DependencyError):
    """Raised when the Grok analysis API fails."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if model:
            details["model"] = model
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details, original_error)


class ConfigurationError(AppIdeasFinderError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
