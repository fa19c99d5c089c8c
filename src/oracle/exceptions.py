"""Custom exceptions for the equity price oracle.

Every failure surfaced to a caller is one of these types. Source adapter
failures (SourceError) are absorbed by the aggregating services and never
reach the API layer.
"""


class OracleError(Exception):
    """Base exception for all oracle errors."""


class NotFoundError(OracleError):
    """Raised when no price, funding rate, record or risk window is available."""


class ValidationError(OracleError):
    """Raised when input data is insufficient for a computation."""


class InsufficientDataError(ValidationError):
    """Raised when a price series is too short for volatility estimation."""


class BadRequestError(OracleError):
    """Raised when a record violates its per-type invariants or a request is malformed."""


class ConflictError(BadRequestError):
    """Raised when creating a corporate action that already exists."""


class InternalError(OracleError):
    """Raised when an unexpected exception interrupts a computation."""


class SourceError(OracleError):
    """Raised by a source adapter when a provider call fails or returns unusable data."""
