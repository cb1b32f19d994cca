"""
Command-line interface for the Vigil monitor.

This module provides the main CLI entry point with commands for:
- run: Start the monitor service (startup sweep plus periodic sweeps)
- check / check-all: On-demand checks
- add / list / show / edit / remove: Target registration
- logs / uptime / series / diagnostics / summary: History and uptime reporting
- config: Configuration management
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Awaitable, Optional

from . import __version__
from .aggregator import MAX_SERIES_DAYS, MAX_UPTIME_HOURS, Aggregator
from .audit_logger import AuditLogger
from .config import (
    DEFAULT_HMAC_SECRET,
    DEFAULT_STATE_FILE,
    EmailConfig,
    LoggingConfig,
    NotificationConfig,
    PersistenceConfig,
    ProbeConfig,
    RetryConfig,
    SchedulerConfig,
    SystemConfig,
    WebhookConfig,
    load_config_from_env,
    validate_config,
)
from .exceptions import ConfigError, VigilError
from .models import LogEntry
from .monitor import Monitor, MonitorService
from .notifications import EmailChannel, NotificationDispatcher, WebhookChannel
from .probe import Prober
from .state_tracker import StateTracker
from .store import StateDocument, open_stores


DEFAULT_CONFIG_PATH = Path.home() / ".vigil" / "config.json"
MAX_LOG_LIMIT = 2000


def create_notification_dispatcher(
    config: SystemConfig,
    logger: Optional[AuditLogger] = None,
) -> Optional[NotificationDispatcher]:
    """
    Create a notification dispatcher from configuration.

    Returns:
        NotificationDispatcher if any channel is configured, None otherwise
    """
    notifications = config.notifications
    if not (notifications.email or notifications.webhook):
        return None

    dispatcher = NotificationDispatcher(
        retry_config=config.retry,
        default_recipients=notifications.alert_recipients,
        logger=logger,
    )
    if notifications.email:
        dispatcher.register_channel(
            EmailChannel(notifications.email, simulation_mode=config.simulation_mode)
        )
    if notifications.webhook:
        dispatcher.register_channel(
            WebhookChannel(notifications.webhook, simulation_mode=config.simulation_mode)
        )
    return dispatcher


def create_logger(config: SystemConfig) -> AuditLogger:
    return AuditLogger.from_level_name(
        config.logging.level,
        output_format=config.logging.output_format,
    )


def open_state_document(config: SystemConfig) -> StateDocument:
    """Open (and load) the HMAC-protected state file named by the config."""
    return StateDocument.open(
        config.persistence.state_file_path,
        config.persistence.hmac_secret,
    )


def build_monitor(
    config: SystemConfig,
    document: StateDocument,
    prober: Prober,
    logger: Optional[AuditLogger] = None,
) -> Monitor:
    """Wire stores, state tracker and notifier around ``prober``."""
    registry, log_store = open_stores(document)
    tracker = StateTracker(
        registry,
        notifier=create_notification_dispatcher(config, logger),
        logger=logger,
    )
    return Monitor(
        registry,
        log_store,
        prober,
        tracker,
        concurrency=config.scheduler.concurrency,
        logger=logger,
    )


def create_default_config(
    simulation_mode: bool = False,
    state_file: Optional[Path] = None,
    hmac_secret: str = DEFAULT_HMAC_SECRET,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        simulation_mode: Deliver no notifications over the network
        state_file: Path to state file for persistence
        hmac_secret: Secret for HMAC protection

    Returns:
        SystemConfig with default settings
    """
    return SystemConfig(
        probe=ProbeConfig(),
        scheduler=SchedulerConfig(),
        retry=RetryConfig(),
        notifications=NotificationConfig(),
        persistence=PersistenceConfig(
            state_file_path=state_file or DEFAULT_STATE_FILE,
            hmac_secret=hmac_secret,
        ),
        logging=LoggingConfig(),
        simulation_mode=simulation_mode,
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        probe_data = data.get("probe", {})
        probe = ProbeConfig(
            timeout_ms=probe_data.get("timeout_ms", 10000),
            user_agent=probe_data.get("user_agent", "VigilMonitor/1.0"),
        )

        scheduler_data = data.get("scheduler", {})
        scheduler = SchedulerConfig(
            interval_minutes=scheduler_data.get("interval_minutes", 60),
            concurrency=scheduler_data.get("concurrency", 5),
            timezone=scheduler_data.get("timezone", "Asia/Kolkata"),
            startup_sweep=scheduler_data.get("startup_sweep", True),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=retry_data.get("max_retries", 2),
            base_delay_seconds=retry_data.get("base_delay_seconds", 1.0),
            max_delay_seconds=retry_data.get("max_delay_seconds", 30.0),
        )

        persistence_data = data.get("persistence", {})
        state_file_path = persistence_data.get("state_file_path")
        persistence = PersistenceConfig(
            state_file_path=Path(state_file_path) if state_file_path else DEFAULT_STATE_FILE,
            hmac_secret=persistence_data.get("hmac_secret", DEFAULT_HMAC_SECRET),
        )

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        notifications_data = data.get("notifications", {})
        notifications = NotificationConfig(
            alert_recipients=list(notifications_data.get("alert_recipients", [])),
        )

        email_data = notifications_data.get("email", {})
        if email_data.get("enabled") and email_data.get("smtp_host"):
            notifications.email = EmailConfig(
                smtp_host=email_data["smtp_host"],
                smtp_port=email_data.get("smtp_port", 587),
                username=email_data.get("username", ""),
                password=email_data.get("password", ""),
                from_address=email_data.get("from_address", ""),
                use_tls=email_data.get("use_tls", True),
            )

        webhook_data = notifications_data.get("webhook", {})
        if webhook_data.get("enabled") and webhook_data.get("url"):
            notifications.webhook = WebhookConfig(
                url=webhook_data["url"],
                headers=webhook_data.get("headers", {}),
            )

        return validate_config(SystemConfig(
            probe=probe,
            scheduler=scheduler,
            retry=retry,
            notifications=notifications,
            persistence=persistence,
            logging=logging_config,
            simulation_mode=data.get("simulation_mode", False),
        ))

    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except ConfigError as e:
        print(f"Invalid config: {e.message}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Returns:
        True if successful, False otherwise
    """
    notifications = config.notifications
    email = notifications.email
    webhook = notifications.webhook
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "probe": {
                "timeout_ms": config.probe.timeout_ms,
                "user_agent": config.probe.user_agent,
            },
            "scheduler": {
                "interval_minutes": config.scheduler.interval_minutes,
                "concurrency": config.scheduler.concurrency,
                "timezone": config.scheduler.timezone,
                "startup_sweep": config.scheduler.startup_sweep,
            },
            "retry": {
                "max_retries": config.retry.max_retries,
                "base_delay_seconds": config.retry.base_delay_seconds,
                "max_delay_seconds": config.retry.max_delay_seconds,
            },
            "notifications": {
                "alert_recipients": notifications.alert_recipients,
                "email": {
                    "enabled": True,
                    "smtp_host": email.smtp_host,
                    "smtp_port": email.smtp_port,
                    "username": email.username,
                    "password": email.password,
                    "from_address": email.from_address,
                    "use_tls": email.use_tls,
                } if email else {"enabled": False},
                "webhook": {
                    "enabled": True,
                    "url": webhook.url,
                    "headers": webhook.headers,
                } if webhook else {"enabled": False},
            },
            "persistence": {
                "state_file_path": str(config.persistence.state_file_path),
                "hmac_secret": config.persistence.hmac_secret,
            },
            "logging": {
                "level": config.logging.level,
                "output_format": config.logging.output_format,
            },
            "simulation_mode": config.simulation_mode,
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


def _format_entry(entry: LogEntry) -> str:
    line = (
        f"#{entry.id} {entry.timestamp.isoformat()} {entry.status.value:<4} "
        f"HTTP {entry.status_code} {entry.response_time_ms}ms"
    )
    if entry.error_detail:
        line += f" ({entry.error_detail})"
    return line


async def run_service(config: SystemConfig) -> int:
    """Run the monitor until SIGINT or SIGTERM."""
    logger = create_logger(config)
    document = open_state_document(config)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops; Ctrl+C still raises KeyboardInterrupt
            break

    async with Prober(config.probe, logger=logger) as prober:
        monitor = build_monitor(config, document, prober, logger)
        service = MonitorService(monitor, config.scheduler, logger=logger)
        await service.run_forever(stop_event)

    logger.info("MonitorService", "Monitor stopped")
    return 0


async def check_single_target(config: SystemConfig, target_id: int) -> int:
    logger = create_logger(config)
    document = open_state_document(config)
    async with Prober(config.probe, logger=logger) as prober:
        monitor = build_monitor(config, document, prober, logger)
        entry = await monitor.check_target(target_id)

    print(_format_entry(entry))
    return 0 if entry.result.http_ok else 1


async def check_all_targets(config: SystemConfig) -> int:
    logger = create_logger(config)
    document = open_state_document(config)
    async with Prober(config.probe, logger=logger) as prober:
        monitor = build_monitor(config, document, prober, logger)
        result = await monitor.check_all()

    print(f"Checked {result.checked}/{result.total} target(s)")
    return 0 if result.checked == result.total else 1


async def add_target(
    config: SystemConfig,
    name: str,
    url: str,
    alert_emails: list[str],
) -> int:
    logger = create_logger(config)
    document = open_state_document(config)
    async with Prober(config.probe, logger=logger) as prober:
        monitor = build_monitor(config, document, prober, logger)
        target = await monitor.register_target(name, url, alert_emails)
        print(f"Added target #{target.id}: {target.name} ({target.url})")
        await monitor.wait_for_background()

    entries = await monitor.log_store.recent_logs(target.id, limit=1)
    if entries:
        print(f"  First check: {_format_entry(entries[0])}")
    return 0


async def list_targets(config: SystemConfig) -> int:
    registry, _ = open_stores(open_state_document(config))
    targets = await registry.list_targets()
    if not targets:
        print("No targets registered.")
        return 0

    for target in targets:
        print(f"#{target.id} {target.name} {target.url} [{target.current_state.value}]")
        if target.alert_emails:
            print(f"    alerts: {', '.join(target.alert_emails)}")
    return 0


async def show_target(config: SystemConfig, target_id: int) -> int:
    registry, log_store = open_stores(open_state_document(config))
    target = await registry.require_target(target_id)
    entries = await log_store.recent_logs(target_id, limit=1)

    print(f"#{target.id} {target.name}")
    print(f"  URL: {target.url}")
    print(f"  State: {target.current_state.value}")
    if target.created_at:
        print(f"  Created: {target.created_at.isoformat()}")
    if target.last_transition_at:
        print(f"  Last transition: {target.last_transition_at.isoformat()}")
    print(f"  Alert recipients: {', '.join(target.alert_emails) or 'default'}")
    print(f"  Last check: {_format_entry(entries[0]) if entries else 'never'}")
    return 0


async def edit_target(
    config: SystemConfig,
    target_id: int,
    name: Optional[str],
    url: Optional[str],
    alert_emails: Optional[list[str]],
) -> int:
    registry, _ = open_stores(open_state_document(config))
    target = await registry.update_target(
        target_id, name=name, url=url, alert_emails=alert_emails
    )
    print(f"Updated target #{target.id}: {target.name} ({target.url})")
    return 0


async def remove_target(config: SystemConfig, target_id: int) -> int:
    registry, _ = open_stores(open_state_document(config))
    if not await registry.delete_target(target_id):
        print(f"Target {target_id} not found", file=sys.stderr)
        return 1
    print(f"Removed target #{target_id}")
    return 0


async def show_logs(config: SystemConfig, target_id: int, limit: int) -> int:
    registry, log_store = open_stores(open_state_document(config))
    await registry.require_target(target_id)
    for entry in await log_store.recent_logs(target_id, limit=limit):
        print(_format_entry(entry))
    return 0


async def show_uptime(config: SystemConfig, target_id: int, hours: float) -> int:
    registry, log_store = open_stores(open_state_document(config))
    await registry.require_target(target_id)
    window = await Aggregator(log_store).uptime_window(target_id, hours)
    print(
        f"Uptime last {hours:g}h: {window.uptime_pct:.2f}% "
        f"({window.up_count}/{window.total_count} checks up)"
    )
    return 0


async def show_series(config: SystemConfig, target_id: int, days: int) -> int:
    registry, log_store = open_stores(open_state_document(config))
    await registry.require_target(target_id)
    for point in await Aggregator(log_store).daily_series(target_id, days):
        print(f"{point.date}  {point.uptime:6.2f}%")
    return 0


async def show_diagnostics(config: SystemConfig, target_id: int) -> int:
    """Print the layer-by-layer meta of the latest probe as JSON."""
    registry, log_store = open_stores(open_state_document(config))
    await registry.require_target(target_id)
    entries = await log_store.recent_logs(target_id, limit=1)
    meta = entries[0].meta if entries else None
    print(json.dumps(meta, indent=2))
    return 0


async def show_summary(config: SystemConfig) -> int:
    registry, log_store = open_stores(open_state_document(config))
    totals, rows = await Aggregator(log_store).summary(await registry.list_targets())

    print(
        f"Targets: {totals.total}  up: {totals.up}  down: {totals.down}  "
        f"avg response: {totals.avg_response_time_all:.0f}ms"
    )
    for row in rows:
        checked = row.last_checked_at.isoformat() if row.last_checked_at else "never"
        print(
            f"  #{row.target_id} {row.name:<24} {row.latest_status:<8} "
            f"24h uptime {row.uptime_24h:6.2f}%  "
            f"avg {row.avg_response_time_24h:.0f}ms  last check {checked}"
        )
    return 0


def _resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Config from ``--config`` if given, otherwise from the environment."""
    if args.config:
        config = load_config_from_file(Path(args.config))
        if config is None:
            print(f"Error: Could not load config from {args.config}", file=sys.stderr)
            return None
    else:
        try:
            config = load_config_from_env()
        except ConfigError as e:
            print(f"Invalid config: {e.message}", file=sys.stderr)
            return None

    if args.dry_run:
        config.simulation_mode = True
    return config


def _split_emails(raw: str) -> list[str]:
    return [e.strip() for e in raw.split(",") if e.strip()]


def _run(coro: Awaitable[int]) -> int:
    try:
        return asyncio.run(coro)
    except VigilError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(run_service(config))


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(check_single_target(config, args.id))


def cmd_check_all(args: argparse.Namespace) -> int:
    """Handle the 'check-all' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(check_all_targets(config))


def cmd_add(args: argparse.Namespace) -> int:
    """Handle the 'add' command."""
    config = _resolve_config(args)
    if config is None:
        return 1
    emails = _split_emails(args.alert_emails or "")
    return _run(add_target(config, args.name, args.url, emails))


def cmd_list(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(list_targets(config))


def cmd_show(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(show_target(config, args.id))


def cmd_edit(args: argparse.Namespace) -> int:
    """Handle the 'edit' command."""
    if args.name is None and args.url is None and args.alert_emails is None:
        print("Nothing to change: pass --name, --url or --alert-emails", file=sys.stderr)
        return 1
    config = _resolve_config(args)
    if config is None:
        return 1
    emails = None
    if args.alert_emails is not None:
        emails = _split_emails(args.alert_emails)
    return _run(edit_target(config, args.id, args.name, args.url, emails))


def cmd_remove(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(remove_target(config, args.id))


def cmd_logs(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    limit = max(1, min(MAX_LOG_LIMIT, args.limit))
    return _run(show_logs(config, args.id, limit))


def cmd_uptime(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    hours = min(float(MAX_UPTIME_HOURS), args.hours)
    return _run(show_uptime(config, args.id, hours))


def cmd_series(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    days = min(MAX_SERIES_DAYS, args.days)
    return _run(show_series(config, args.id, days))


def cmd_diagnostics(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(show_diagnostics(config, args.id))


def cmd_summary(args: argparse.Namespace) -> int:
    config = _resolve_config(args)
    if config is None:
        return 1
    return _run(show_summary(config))


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.config) if args.config else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return 1

        channels = [
            name for name, enabled in (
                ("email", config.notifications.email),
                ("webhook", config.notifications.webhook),
            ) if enabled
        ]
        print(f"Configuration from: {config_path}")
        print(f"  Interval: {config.scheduler.interval_minutes} minute(s) ({config.scheduler.timezone})")
        print(f"  Concurrency: {config.scheduler.concurrency}")
        print(f"  Request timeout: {config.probe.timeout_ms}ms")
        print(f"  Notification channels: {', '.join(channels) or 'none'}")
        print(f"  Alert recipients: {', '.join(config.notifications.alert_recipients) or 'none'}")
        print(f"  State file: {config.persistence.state_file_path}")
        print(f"  Log level: {config.logging.level}")
        print(f"  Simulation mode: {config.simulation_mode}")
        return 0

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return 1

        if save_config_to_file(create_default_config(), config_path):
            print(f"Configuration created at: {config_path}")
            return 0
        return 1

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return 1

        print(f"Configuration at {config_path} is valid.")
        return 0

    return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Endpoint availability monitor with outage and recovery alerts",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to JSON configuration file (default: environment / .env)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - notifications are not delivered",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the monitor until interrupted")
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser("check", help="Check one target now")
    check_parser.add_argument("id", type=int, help="Target id")
    check_parser.set_defaults(func=cmd_check)

    check_all_parser = subparsers.add_parser("check-all", help="Check every target now")
    check_all_parser.set_defaults(func=cmd_check_all)

    add_parser = subparsers.add_parser("add", help="Register a target and check it")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument("url", help="URL to monitor (http or https)")
    add_parser.add_argument(
        "--alert-emails",
        help="Comma-separated alert recipients (default: ALERT_RECIPIENTS)",
    )
    add_parser.set_defaults(func=cmd_add)

    list_parser = subparsers.add_parser("list", help="List registered targets")
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser("show", help="Show one target and its latest check")
    show_parser.add_argument("id", type=int, help="Target id")
    show_parser.set_defaults(func=cmd_show)

    edit_parser = subparsers.add_parser("edit", help="Change a target's name, URL or alert recipients")
    edit_parser.add_argument("id", type=int, help="Target id")
    edit_parser.add_argument("--name", help="New display name")
    edit_parser.add_argument("--url", help="New URL to monitor")
    edit_parser.add_argument(
        "--alert-emails",
        help="Comma-separated alert recipients (empty string to use the defaults)",
    )
    edit_parser.set_defaults(func=cmd_edit)

    remove_parser = subparsers.add_parser("remove", help="Delete a target and its history")
    remove_parser.add_argument("id", type=int, help="Target id")
    remove_parser.set_defaults(func=cmd_remove)

    logs_parser = subparsers.add_parser("logs", help="Show recent probe results")
    logs_parser.add_argument("id", type=int, help="Target id")
    logs_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=200,
        help=f"Number of entries, newest first (max {MAX_LOG_LIMIT})",
    )
    logs_parser.set_defaults(func=cmd_logs)

    uptime_parser = subparsers.add_parser("uptime", help="Uptime percentage of a target")
    uptime_parser.add_argument("id", type=int, help="Target id")
    uptime_parser.add_argument(
        "--hours",
        type=float,
        default=24.0,
        help=f"Window length in hours (max {MAX_UPTIME_HOURS})",
    )
    uptime_parser.set_defaults(func=cmd_uptime)

    series_parser = subparsers.add_parser("series", help="Daily uptime series of a target")
    series_parser.add_argument("id", type=int, help="Target id")
    series_parser.add_argument(
        "--days",
        type=int,
        default=30,
        help=f"Number of days (max {MAX_SERIES_DAYS})",
    )
    series_parser.set_defaults(func=cmd_series)

    diagnostics_parser = subparsers.add_parser(
        "diagnostics", help="Layer-by-layer result of the latest probe"
    )
    diagnostics_parser.add_argument("id", type=int, help="Target id")
    diagnostics_parser.set_defaults(func=cmd_diagnostics)

    summary_parser = subparsers.add_parser("summary", help="24-hour overview of all targets")
    summary_parser.set_defaults(func=cmd_summary)

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
