"""
Custom exceptions for the statement conversion pipeline.
"""
from typing import Any, Dict, Optional

# Substrings that identify a quota / rate-limit failure in an error message
RATE_LIMIT_SIGNATURES = ("429", "quota", "rate_limit", "rate limit", "too many requests")


class StatementConverterError(Exception):
    """Base exception for all statement conversion errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.

        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StatementConverterError):
    """Raised when configuration is invalid or a credential is missing."""
    pass


class ExtractionError(StatementConverterError):
    """Raised when the extraction gateway call fails."""
    pass


class RateLimitError(ExtractionError):
    """Raised when the extraction gateway reports an exhausted quota or rate limit."""
    pass


class DocumentError(StatementConverterError):
    """Raised when a source document cannot be opened or split."""
    pass


class ParsingError(StatementConverterError):
    """Raised when tabular input cannot be read."""
    pass


class ExportError(StatementConverterError):
    """Raised when an export document cannot be produced."""
    pass


class ValidationError(StatementConverterError):
    """Raised when data validation fails."""
    pass


def is_rate_limit_message(text: Optional[str]) -> bool:
    """Return True when an error message carries a rate-limit signature."""
    if not text:
        return False
    lowered = text.lower()
    return any(signature in lowered for signature in RATE_LIMIT_SIGNATURES)

