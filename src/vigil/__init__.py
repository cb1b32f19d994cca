"""
Vigil - endpoint availability monitor.

This package probes registered HTTP(S) endpoints in three layers (DNS,
TCP, HTTP), records every result, tracks each endpoint's up/down state,
alerts on outage and recovery edges, and reports uptime over time.
"""

__version__ = "0.1.0"
__author__ = "Vigil Team"

from vigil.exceptions import (
    VigilError,
    ValidationError,
    ConfigError,
    PersistenceError,
    TamperingError,
    TargetNotFoundError,
    DuplicateTargetError,
    NotificationError,
)
from vigil.enums import (
    TargetState,
    ErrorKind,
    TransitionDirection,
    LogLevel,
)
from vigil.config import (
    ProbeConfig,
    SchedulerConfig,
    RetryConfig,
    EmailConfig,
    WebhookConfig,
    NotificationConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
    validate_config,
)
from vigil.models import (
    Target,
    ProbeResult,
    LogEntry,
    UptimeWindow,
    TransitionEvent,
    TransitionOutcome,
    SweepResult,
    SeriesPoint,
    TargetSummary,
    SummaryTotals,
)
from vigil.audit_logger import (
    AuditLogger,
    LogRecord,
)
from vigil.probe import (
    Prober,
    split_target,
)
from vigil.store import (
    TargetRegistry,
    LogStore,
    StateDocument,
    StoredTargetRegistry,
    StoredLogStore,
    open_stores,
)
from vigil.notifications import (
    NotificationMessage,
    NotificationResult,
    DispatchResult,
    NotificationChannel,
    EmailChannel,
    WebhookChannel,
    NotificationDispatcher,
    format_transition_message,
)
from vigil.state_tracker import (
    StateTracker,
    decide_transition,
)
from vigil.aggregator import (
    Aggregator,
    bucket_daily,
)
from vigil.scheduler import (
    IntervalCadence,
    PeriodicTrigger,
)
from vigil.monitor import (
    Monitor,
    MonitorService,
)
from vigil.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "VigilError",
    "ValidationError",
    "ConfigError",
    "PersistenceError",
    "TamperingError",
    "TargetNotFoundError",
    "DuplicateTargetError",
    "NotificationError",
    # Enums
    "TargetState",
    "ErrorKind",
    "TransitionDirection",
    "LogLevel",
    # Configuration
    "ProbeConfig",
    "SchedulerConfig",
    "RetryConfig",
    "EmailConfig",
    "WebhookConfig",
    "NotificationConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    "validate_config",
    # Models
    "Target",
    "ProbeResult",
    "LogEntry",
    "UptimeWindow",
    "TransitionEvent",
    "TransitionOutcome",
    "SweepResult",
    "SeriesPoint",
    "TargetSummary",
    "SummaryTotals",
    # Audit Logger
    "AuditLogger",
    "LogRecord",
    # Probe
    "Prober",
    "split_target",
    # Store
    "TargetRegistry",
    "LogStore",
    "StateDocument",
    "StoredTargetRegistry",
    "StoredLogStore",
    "open_stores",
    # Notifications
    "NotificationMessage",
    "NotificationResult",
    "DispatchResult",
    "NotificationChannel",
    "EmailChannel",
    "WebhookChannel",
    "NotificationDispatcher",
    "format_transition_message",
    # State Tracker
    "StateTracker",
    "decide_transition",
    # Aggregator
    "Aggregator",
    "bucket_daily",
    # Scheduler
    "IntervalCadence",
    "PeriodicTrigger",
    # Monitor
    "Monitor",
    "MonitorService",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
