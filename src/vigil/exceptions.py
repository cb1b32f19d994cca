"""
Exception classes for the Vigil monitor.

All exceptions inherit from VigilError and carry a machine-readable code,
a human-readable message and optional details. Probe-layer failures are
never raised; they are recorded as data on the probe result.
"""

from typing import Optional


class VigilError(Exception):
    """Base exception for all Vigil errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(VigilError):
    """Raised when caller input (URL, window size, name) is invalid."""

    pass


class ConfigError(VigilError):
    """Raised when configuration values cannot be parsed or are out of range."""

    pass


class PersistenceError(VigilError):
    """Raised when the state file cannot be read or written."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation of the state file fails."""

    pass


class TargetNotFoundError(VigilError):
    """Raised when a target id is not present in the registry."""

    pass


class DuplicateTargetError(VigilError):
    """Raised when registering a URL that is already monitored."""

    pass


class NotificationError(VigilError):
    """Raised by notification channels when delivery fails."""

    pass
