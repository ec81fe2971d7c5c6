"""
Custom exceptions for Bouchenator.

Provides a hierarchy of exceptions for better error handling and debugging.
"""

from typing import Optional, Dict, Any


class BouchenatorError(Exception):
    """Base exception for all Bouchenator errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DataAccessError(BouchenatorError):
    """Base class for data access errors."""
    pass


class RateLimitError(DataAccessError):
    """Rate limiting errors."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class TimeoutError(DataAccessError):
    """Operation timeout errors."""
    pass


class ExternalServiceError(DataAccessError):
    """External service is unavailable or returning errors."""

    def __init__(self, service: str, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(f"{service}: {message}", **kwargs)
        self.service = service
        self.status_code = status_code


class GenerationError(BouchenatorError):
    """Base class for generation provider output problems."""
    pass


class ResponseParseError(GenerationError):
    """Provider output could not be parsed as JSON of the expected shape."""
    pass


class SchemaValidationError(GenerationError):
    """Provider output parsed but failed schema or domain checks."""
    pass


class NotFoundError(BouchenatorError):
    """A job, idea or build plan id is unknown (possibly evicted); never retried."""

    def __init__(self, kind: str, identifier: str, **kwargs):
        super().__init__(f"{kind} not found: {identifier}", **kwargs)
        self.kind = kind
        self.identifier = identifier

    @property
    def code(self) -> str:
        return f"{self.kind.upper()}_NOT_FOUND"


class ValidationError(BouchenatorError):
    """Request data validation errors."""
    pass
