"""
Configuration dataclasses for the Vigil monitor.

This module defines all configuration structures used throughout the system,
including probe timeouts, sweep scheduling, notification channels,
persistence, and logging configuration, plus loading them from the
environment (and an optional ``.env`` file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .enums import LogLevel
from .exceptions import ConfigError


# Lower bounds enforced when configuration is loaded
MIN_TIMEOUT_MS = 1000
MIN_INTERVAL_MINUTES = 1
MIN_CONCURRENCY = 1

DEFAULT_STATE_FILE = Path.home() / ".vigil" / "state.json"
DEFAULT_HMAC_SECRET = "default-secret-change-me"


@dataclass
class ProbeConfig:
    """Layered probe settings. Each layer gets the full timeout."""

    timeout_ms: int = 10000
    user_agent: str = "VigilMonitor/1.0"

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass
class SchedulerConfig:
    """Sweep cadence and worker pool configuration."""

    interval_minutes: int = 60
    concurrency: int = 5
    timezone: str = "Asia/Kolkata"
    startup_sweep: bool = True


@dataclass
class RetryConfig:
    """Notification delivery retry behaviour."""

    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0


@dataclass
class EmailConfig:
    """SMTP e-mail notification channel configuration."""

    smtp_host: str
    smtp_port: int
    username: str
    password: str
    from_address: str
    use_tls: bool = True


@dataclass
class WebhookConfig:
    """Generic webhook notification channel configuration."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class NotificationConfig:
    """Notification channels and default recipients."""

    email: Optional[EmailConfig] = None
    webhook: Optional[WebhookConfig] = None
    alert_recipients: list[str] = field(default_factory=list)


@dataclass
class PersistenceConfig:
    """State file location and integrity secret."""

    state_file_path: Path
    hmac_secret: str


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    probe: ProbeConfig
    scheduler: SchedulerConfig
    retry: RetryConfig
    notifications: NotificationConfig
    persistence: PersistenceConfig
    logging: LoggingConfig
    simulation_mode: bool = False


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(
            code="invalid_env",
            message=f"{name} must be an integer, got {raw!r}",
            details={"variable": name, "value": raw},
        ) from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _list_env(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


def validate_config(config: SystemConfig) -> SystemConfig:
    """
    Check bounds and normalize a loaded configuration in place.

    The probe timeout is raised to MIN_TIMEOUT_MS; every other bound
    violation raises ConfigError.
    """
    config.probe.timeout_ms = max(MIN_TIMEOUT_MS, int(config.probe.timeout_ms))

    if config.scheduler.interval_minutes < MIN_INTERVAL_MINUTES:
        raise ConfigError(
            code="invalid_interval",
            message=f"interval_minutes must be at least {MIN_INTERVAL_MINUTES}",
            details={"interval_minutes": config.scheduler.interval_minutes},
        )
    if config.scheduler.concurrency < MIN_CONCURRENCY:
        raise ConfigError(
            code="invalid_concurrency",
            message=f"concurrency must be at least {MIN_CONCURRENCY}",
            details={"concurrency": config.scheduler.concurrency},
        )
    try:
        ZoneInfo(config.scheduler.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(
            code="invalid_timezone",
            message=f"Unknown timezone: {config.scheduler.timezone}",
            details={"timezone": config.scheduler.timezone},
        ) from None

    if config.logging.level.lower() not in {level.value for level in LogLevel}:
        raise ConfigError(
            code="invalid_log_level",
            message=f"Unknown log level: {config.logging.level}",
            details={"level": config.logging.level},
        )
    if config.logging.output_format not in ("json", "text", "both"):
        raise ConfigError(
            code="invalid_log_format",
            message=f"Unknown log format: {config.logging.output_format}",
            details={"output_format": config.logging.output_format},
        )
    if config.retry.max_retries < 0:
        raise ConfigError(
            code="invalid_retry",
            message="max_retries must not be negative",
            details={"max_retries": config.retry.max_retries},
        )
    return config


def load_config_from_env(dotenv_path: Optional[Path] = None) -> SystemConfig:
    """
    Build a SystemConfig from environment variables.

    Values from a ``.env`` file are loaded first without overriding
    variables that are already set.

    Raises:
        ConfigError: If a variable has an invalid value
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)

    email = None
    smtp_host = os.getenv("SMTP_HOST", "").strip()
    if smtp_host:
        username = os.getenv("SMTP_USER", "").strip()
        email = EmailConfig(
            smtp_host=smtp_host,
            smtp_port=_int_env("SMTP_PORT", 587),
            username=username,
            password=os.getenv("SMTP_PASSWORD", ""),
            from_address=os.getenv("SMTP_FROM", "").strip() or username,
            use_tls=_bool_env("SMTP_TLS", True),
        )

    webhook = None
    webhook_url = os.getenv("WEBHOOK_URL", "").strip()
    if webhook_url:
        webhook = WebhookConfig(url=webhook_url)

    config = SystemConfig(
        probe=ProbeConfig(timeout_ms=_int_env("REQUEST_TIMEOUT_MS", 10000)),
        scheduler=SchedulerConfig(
            interval_minutes=_int_env("MONITOR_INTERVAL_MINUTES", 60),
            concurrency=_int_env("CONCURRENCY", 5),
            timezone=os.getenv("MONITOR_TIMEZONE", "").strip() or "Asia/Kolkata",
            startup_sweep=_bool_env("STARTUP_SWEEP", True),
        ),
        retry=RetryConfig(),
        notifications=NotificationConfig(
            email=email,
            webhook=webhook,
            alert_recipients=_list_env("ALERT_RECIPIENTS"),
        ),
        persistence=PersistenceConfig(
            state_file_path=Path(
                os.getenv("VIGIL_STATE_FILE", "").strip() or DEFAULT_STATE_FILE
            ),
            hmac_secret=os.getenv("VIGIL_HMAC_SECRET", "") or DEFAULT_HMAC_SECRET,
        ),
        logging=LoggingConfig(
            level=os.getenv("LOG_LEVEL", "").strip() or "info",
            output_format=os.getenv("LOG_FORMAT", "").strip() or "text",
        ),
        simulation_mode=_bool_env("VIGIL_SIMULATION", False),
    )
    return validate_config(config)
