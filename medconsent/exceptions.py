"""
Custom Exceptions for the medconsent record exchange

Provides a unified exception hierarchy for registration, authentication,
consent resolution and lookups.
"""

from typing import Optional, Dict, Any

from .constants import ErrorCodes


class ExchangeError(Exception):
    """
    Base exception for all exchange errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = ErrorCodes.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# IDENTITY ERRORS
# =============================================================================

class DuplicateIdentifierError(ExchangeError):
    """Raised when a login email or subject key is already registered"""

    def __init__(self, field: str, value: str):
        super().__init__(
            message=f"An account with this {field} already exists",
            error_code=ErrorCodes.DUPLICATE_IDENTIFIER,
            details={"field": field, "value": value}
        )


class InvalidCredentialsError(ExchangeError):
    """Raised when authentication fails"""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message, ErrorCodes.INVALID_CREDENTIALS)


# =============================================================================
# LOOKUP AND AUTHORIZATION ERRORS
# =============================================================================

class NotFoundError(ExchangeError):
    """Raised when an account, record or consent request does not exist"""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=ErrorCodes.NOT_FOUND,
            details={"resource": resource, "id": identifier}
        )


class UnauthorizedError(ExchangeError):
    """Raised when a principal acts on something it does not own"""

    def __init__(self, message: str, actor: Optional[str] = None):
        details: Dict[str, Any] = {}
        if actor:
            details["actor"] = actor
        super().__init__(message, ErrorCodes.UNAUTHORIZED, details)


class InvalidStateError(ExchangeError):
    """Raised when a transition is not allowed from the current state"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCodes.INVALID_STATE, details)


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(ExchangeError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, ErrorCodes.VALIDATION_ERROR, details)
