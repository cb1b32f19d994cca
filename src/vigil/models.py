"""
Data models for the Vigil monitor.

This module defines the monitored target, the per-probe result, the
persisted log entry, and the derived aggregation and transition types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import ErrorKind, TargetState, TransitionDirection


@dataclass
class Target:
    """A monitored endpoint with its persisted availability state."""

    id: int
    name: str
    url: str
    current_state: TargetState = TargetState.UP
    last_transition_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    alert_emails: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one layered DNS -> TCP -> HTTP diagnostic pass."""

    target_id: Optional[int]
    timestamp: datetime
    dns_ok: bool = False
    resolved_ip: Optional[str] = None
    tcp_ok: bool = False
    tcp_latency_ms: int = 0
    http_ok: bool = False
    http_status_code: int = 0
    http_latency_ms: int = 0
    error_kind: Optional[ErrorKind] = None
    error_cause: Optional[str] = None

    @property
    def overall_status(self) -> TargetState:
        return TargetState.UP if self.http_ok else TargetState.DOWN

    @property
    def error_detail(self) -> Optional[str]:
        """Human-readable failure, e.g. ``DNS_FAILURE: <cause>``."""
        if self.error_kind is None:
            return None
        if self.error_cause:
            return f"{self.error_kind.value}: {self.error_cause}"
        return self.error_kind.value


@dataclass(frozen=True)
class LogEntry:
    """Immutable, append-only record of a probe result for one target."""

    id: int
    application_id: int
    result: ProbeResult

    @property
    def status(self) -> TargetState:
        return self.result.overall_status

    @property
    def status_code(self) -> int:
        return self.result.http_status_code

    @property
    def response_time_ms(self) -> int:
        return self.result.http_latency_ms

    @property
    def timestamp(self) -> datetime:
        return self.result.timestamp

    @property
    def error_detail(self) -> Optional[str]:
        return self.result.error_detail

    @property
    def meta(self) -> dict:
        """Layer-by-layer diagnostics of the probe that produced this entry."""
        return {
            "dns_ok": self.result.dns_ok,
            "resolved_ip": self.result.resolved_ip,
            "tcp_ok": self.result.tcp_ok,
            "tcp_ms": self.result.tcp_latency_ms,
            "http_ok": self.result.http_ok,
            "http_ms": self.result.http_latency_ms,
            "status_code": self.result.http_status_code,
            "error": self.result.error_detail,
        }


@dataclass(frozen=True)
class UptimeWindow:
    """Up/total counts over a time range; computed on query, never stored."""

    start: datetime
    end: datetime
    up_count: int
    total_count: int

    @property
    def uptime_pct(self) -> float:
        # No observations are reported as 0, not 100
        if self.total_count == 0:
            return 0.0
        return 100.0 * self.up_count / self.total_count


@dataclass(frozen=True)
class TransitionEvent:
    """A detected flip of a target's availability state."""

    target_id: int
    direction: TransitionDirection
    previous_state: TargetState
    new_state: TargetState
    log_entry: LogEntry

    @property
    def occurred_at(self) -> datetime:
        return self.log_entry.timestamp


@dataclass
class TransitionOutcome:
    """Result of applying one log entry to a target's state machine."""

    transitioned: bool
    event: Optional[TransitionEvent] = None
    notified: bool = False
    notify_error: Optional[str] = None


@dataclass
class SweepResult:
    """Counts from one full pass over all targets."""

    total: int
    checked: int


@dataclass(frozen=True)
class SeriesPoint:
    """Uptime percentage for one UTC calendar day."""

    date: str  # YYYY-MM-DD
    uptime: float


@dataclass
class TargetSummary:
    """Dashboard row for one target over the last 24 hours."""

    target_id: int
    name: str
    url: str
    uptime_24h: float
    avg_response_time_24h: float
    latest_status: str  # 'UP', 'DOWN' or 'CHECKING' before the first probe
    last_checked_at: Optional[datetime] = None


@dataclass
class SummaryTotals:
    """Fleet-wide counts across all targets."""

    total: int
    up: int
    down: int
    avg_response_time_all: float
