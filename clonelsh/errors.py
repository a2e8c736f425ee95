"""
Error types for the clone index.

Capacity limits (a full bucket, a saturated vocabulary) and not-found lookups
are not errors: they are reported through return values and stats. Only
structural problems raise.
"""

from typing import Any, Dict, Optional


class CloneIndexError(Exception):
    """
    Base exception for all clone-index errors.

    Carries a structured ``details`` mapping alongside the message so callers
    can report failures without parsing strings.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize clone-index error.

        Args:
            message: Error message
            details: Optional detailed error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(CloneIndexError, ValueError):
    """
    Raised when parameters are invalid or mutually inconsistent.

    Fatal at construction time: the engine, index or embedder is never
    built from a configuration that fails validation.
    """

    def __init__(self, message: str,
                 parameter: Optional[str] = None,
                 value: Any = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.parameter = parameter
        self.value = value

        self.details.update({
            'parameter': parameter,
            'value': value,
        })


class DimensionMismatchError(ConfigurationError):
    """Raised when a vector's length differs from the expected dimension."""

    def __init__(self, expected: int, actual: int, context: str = 'vector'):
        super().__init__(
            f"{context} dimension {actual} does not match expected dimension {expected}",
            parameter='dimension',
            value=actual,
            details={'expected': expected, 'actual': actual, 'context': context},
        )
        self.expected = expected
        self.actual = actual


class SerializationError(CloneIndexError):
    """
    Raised when persisted state cannot be loaded.

    Only the failing load call is affected; the target engine keeps the state
    it had before the call.
    """

    def __init__(self, message: str,
                 path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        """
        Initialize serialization error.

        Args:
            message: Error message
            path: Location inside the persisted document (e.g. ``lsh.tables[3]``)
            details: Additional error context
        """
        if path:
            message = f"{message} (at {path})"
        super().__init__(message, details)
        self.path = path
        self.details['path'] = path
