"""
Audit Logger module for the Vigil monitor.

Provides structured logging with dual-format output (JSON and human-readable
text), level filtering, and masking of credentials that may appear in
notification or persistence context.
"""

import json
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TextIO

from vigil.enums import LogLevel


@dataclass
class LogRecord:
    """A single emitted log line with its metadata."""

    timestamp: str
    level: LogLevel
    component: str
    message: str
    data: dict = field(default_factory=dict)


class AuditLogger:
    """
    Structured logger shared by the probe, tracker, scheduler and notifier.

    Records below the configured minimum level are dropped. Values under
    sensitive keys (SMTP passwords, webhook auth headers, HMAC secrets)
    are masked before they reach any output.
    """

    SENSITIVE_KEYS = frozenset({
        'token', 'secret', 'password', 'api_key', 'hmac_secret',
        'auth', 'authorization', 'credential', 'private_key',
    })

    MASK_VALUE = "***MASKED***"

    # Records kept in memory for inspection; older ones are dropped
    DEFAULT_RECORD_LIMIT = 1000

    def __init__(
        self,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
        min_level: LogLevel = LogLevel.INFO,
        record_limit: int = DEFAULT_RECORD_LIMIT,
    ):
        """
        Initialize the logger.

        Args:
            output_format: Output format - 'json', 'text', or 'both'
            output_stream: Output stream for log lines (defaults to sys.stderr)
            min_level: Lowest level that is emitted
            record_limit: Number of recent records kept in memory (0 keeps none)
        """
        if output_format not in ("json", "text", "both"):
            raise ValueError(f"Invalid output_format: {output_format}")

        self._output_format = output_format
        self._output_stream = output_stream or sys.stderr
        self._min_level = min_level
        self._records: deque[LogRecord] = deque(maxlen=max(0, record_limit))

    @classmethod
    def from_level_name(
        cls,
        level: str,
        output_format: str = "text",
        output_stream: Optional[TextIO] = None,
    ) -> "AuditLogger":
        """Build a logger from a config level name such as ``"info"``."""
        try:
            min_level = LogLevel(level.lower())
        except ValueError:
            raise ValueError(f"Invalid log level: {level}") from None
        return cls(output_format, output_stream, min_level)

    @property
    def output_format(self) -> str:
        return self._output_format

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def records(self) -> list[LogRecord]:
        """The most recent emitted records, oldest first."""
        return list(self._records)

    def log(
        self,
        level: LogLevel,
        component: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[LogRecord]:
        """
        Emit a record in the configured format(s).

        Returns:
            The emitted LogRecord, or None if filtered by level
        """
        if level.rank < self._min_level.rank:
            return None

        record = LogRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level,
            component=component,
            message=message,
            data=self.mask_sensitive_data(data or {}),
        )
        self._records.append(record)
        self._write(record)
        return record

    def debug(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogRecord]:
        return self.log(LogLevel.DEBUG, component, message, data)

    def info(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogRecord]:
        return self.log(LogLevel.INFO, component, message, data)

    def warn(self, component: str, message: str, data: Optional[dict] = None) -> Optional[LogRecord]:
        return self.log(LogLevel.WARN, component, message, data)

    def log_error(
        self,
        component: str,
        message: str,
        error: Optional[BaseException] = None,
        additional_data: Optional[dict] = None,
    ) -> Optional[LogRecord]:
        """
        Log an error together with the exception that caused it.

        Args:
            component: Component name generating the log
            message: Human-readable error message
            error: Optional exception object
            additional_data: Optional additional context data
        """
        data = additional_data.copy() if additional_data else {}
        if error is not None:
            data["error_message"] = str(error)
            data["error_type"] = type(error).__name__
        return self.log(LogLevel.ERROR, component, message, data)

    def mask_sensitive_data(self, data: dict) -> dict:
        """Recursively mask values whose key looks like a credential."""
        if not isinstance(data, dict):
            return data

        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in self.SENSITIVE_KEYS):
                masked[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                masked[key] = self.mask_sensitive_data(value)
            elif isinstance(value, list):
                masked[key] = [
                    self.mask_sensitive_data(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                masked[key] = value
        return masked

    def format_json(self, record: LogRecord) -> str:
        return json.dumps(
            {
                "timestamp": record.timestamp,
                "level": record.level.value,
                "component": record.component,
                "message": record.message,
                "data": record.data,
            },
            ensure_ascii=False,
            default=str,
        )

    def format_text(self, record: LogRecord) -> str:
        # [TIMESTAMP] LEVEL [COMPONENT] MESSAGE {data}
        parts = [
            f"[{record.timestamp}]",
            record.level.value.upper(),
            f"[{record.component}]",
            record.message,
        ]
        if record.data:
            parts.append(json.dumps(record.data, ensure_ascii=False, default=str))
        return " ".join(parts)

    def _write(self, record: LogRecord) -> None:
        if self._output_format in ("json", "both"):
            self._output_stream.write(self.format_json(record) + "\n")
        if self._output_format in ("text", "both"):
            self._output_stream.write(self.format_text(record) + "\n")
        self._output_stream.flush()

    def clear(self) -> None:
        """Forget all recorded entries."""
        self._records.clear()
