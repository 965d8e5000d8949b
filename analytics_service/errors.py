"""
Error taxonomy for the analytics core.

Transient errors are retried by the resilience layer, permanent errors are
surfaced immediately. Every error carries a short string ``code`` in the same
vocabulary hosted document stores use, so classification can match on either
the message or the code.
"""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for all analytics errors."""

    default_code = "unknown"

    def __init__(self, message: str = "", code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class TransientStoreError(AnalyticsError):
    """Temporary failure of the document store (network, overload, timeout)."""

    default_code = "unavailable"


class PermissionDeniedError(AnalyticsError):
    """The caller is not allowed to perform the operation."""

    default_code = "permission-denied"


class NotFoundError(AnalyticsError):
    """A document that was expected to exist does not."""

    default_code = "not-found"


class InvalidInputError(AnalyticsError, ValueError):
    """Malformed input rejected before reaching the store."""

    default_code = "invalid-argument"


class CircuitOpenError(AnalyticsError):
    """Raised without calling the operation while the circuit breaker is open."""

    default_code = "circuit-open"
