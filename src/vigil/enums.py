"""
Enumeration types for the Vigil monitor.

These enums provide type-safe constants for target states, probe error
kinds, transition directions and log levels.
"""

from enum import Enum


class TargetState(Enum):
    """Availability state of a monitored target."""

    UP = "UP"
    DOWN = "DOWN"


class ErrorKind(Enum):
    """Failure taxonomy for probe layers and notification dispatch."""

    DNS_FAILURE = "DNS_FAILURE"
    TCP_FAILURE = "TCP_FAILURE"
    HTTP_FAILURE = "HTTP_FAILURE"
    NOTIFY_FAILURE = "NOTIFY_FAILURE"


class TransitionDirection(Enum):
    """Edge direction of a detected state flip."""

    OUTAGE_STARTED = "OUTAGE_STARTED"
    RECOVERED = "RECOVERED"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        """Numeric severity used for level filtering."""
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}
