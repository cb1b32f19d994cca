"""
Property-based tests for configuration loading.

Covers JSON config files written by the CLI helpers, environment and
.env loading, and bound validation.
"""

import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from vigil.cli import create_default_config, load_config_from_file, save_config_to_file
from vigil.config import (
    MIN_TIMEOUT_MS,
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
from vigil.exceptions import ConfigError


ENV_VARS = [
    "MONITOR_INTERVAL_MINUTES", "REQUEST_TIMEOUT_MS", "CONCURRENCY",
    "MONITOR_TIMEZONE", "STARTUP_SWEEP", "ALERT_RECIPIENTS", "SMTP_HOST",
    "SMTP_PORT", "SMTP_USER", "SMTP_PASSWORD", "SMTP_FROM", "SMTP_TLS",
    "WEBHOOK_URL", "VIGIL_STATE_FILE", "VIGIL_HMAC_SECRET", "LOG_LEVEL",
    "LOG_FORMAT", "VIGIL_SIMULATION",
]


def clear_env(monkeypatch) -> None:
    # setenv first so teardown also removes values written by load_dotenv
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


# Strategies for generating valid configuration objects

safe_text = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-_.", min_size=1, max_size=20)


@st.composite
def notification_config_strategy(draw) -> NotificationConfig:
    """Generate valid NotificationConfig objects."""
    email = None
    if draw(st.booleans()):
        email = EmailConfig(
            smtp_host=f"smtp.{draw(safe_text)}.example",
            smtp_port=draw(st.integers(min_value=1, max_value=65535)),
            username=draw(safe_text),
            password=draw(st.text(min_size=1, max_size=30)),
            from_address=f"{draw(safe_text)}@example.com",
            use_tls=draw(st.booleans()),
        )

    webhook = None
    if draw(st.booleans()):
        webhook = WebhookConfig(
            url=f"https://hooks.example.com/{draw(safe_text)}",
            headers=draw(st.dictionaries(safe_text, safe_text, max_size=3)),
        )

    return NotificationConfig(
        email=email,
        webhook=webhook,
        alert_recipients=draw(st.lists(safe_text.map(lambda s: f"{s}@example.com"), max_size=3)),
    )


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    return SystemConfig(
        probe=ProbeConfig(
            timeout_ms=draw(st.integers(min_value=MIN_TIMEOUT_MS, max_value=120_000)),
            user_agent=draw(safe_text),
        ),
        scheduler=SchedulerConfig(
            interval_minutes=draw(st.integers(min_value=1, max_value=1440)),
            concurrency=draw(st.integers(min_value=1, max_value=64)),
            timezone=draw(st.sampled_from(["UTC", "Asia/Kolkata", "Europe/Berlin"])),
            startup_sweep=draw(st.booleans()),
        ),
        retry=RetryConfig(
            max_retries=draw(st.integers(min_value=0, max_value=10)),
            base_delay_seconds=draw(st.floats(min_value=0.1, max_value=10.0)),
            max_delay_seconds=draw(st.floats(min_value=10.0, max_value=300.0)),
        ),
        notifications=draw(notification_config_strategy()),
        persistence=PersistenceConfig(
            state_file_path=Path("/var/lib/vigil") / f"{draw(safe_text)}.json",
            hmac_secret=draw(st.text(min_size=1, max_size=40)),
        ),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        simulation_mode=draw(st.booleans()),
    )


class TestConfigurationRoundTripProperty:
    """
    **Property: a saved configuration loads back unchanged**
    """

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_file_round_trip(self, config: SystemConfig) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            assert save_config_to_file(config, path)
            loaded = load_config_from_file(path)

        assert loaded == config

    def test_default_config(self) -> None:
        config = create_default_config()
        assert config.probe.timeout_ms == 10000
        assert config.scheduler.interval_minutes == 60
        assert config.scheduler.concurrency == 5
        assert config.scheduler.timezone == "Asia/Kolkata"
        assert config.notifications.email is None
        assert validate_config(config) is config

    def test_missing_file_returns_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert load_config_from_file(Path(tmpdir) / "absent.json") is None

    def test_invalid_values_return_none(self, capsys) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text('{"scheduler": {"concurrency": 0}}', encoding="utf-8")
            assert load_config_from_file(path) is None
        assert "concurrency" in capsys.readouterr().err


class TestValidationProperty:
    """
    **Property: loaded configuration always satisfies its lower bounds**
    """

    @given(timeout_ms=st.integers(min_value=-10_000, max_value=100_000))
    @settings(max_examples=100)
    def test_timeout_is_clamped(self, timeout_ms: int) -> None:
        config = create_default_config()
        config.probe.timeout_ms = timeout_ms

        validate_config(config)

        assert config.probe.timeout_ms == max(MIN_TIMEOUT_MS, timeout_ms)

    @pytest.mark.parametrize(
        "field,value,code",
        [
            ("interval_minutes", 0, "invalid_interval"),
            ("concurrency", 0, "invalid_concurrency"),
            ("timezone", "Nowhere/City", "invalid_timezone"),
        ],
    )
    def test_scheduler_bounds(self, field: str, value, code: str) -> None:
        config = create_default_config()
        setattr(config.scheduler, field, value)
        with pytest.raises(ConfigError) as exc_info:
            validate_config(config)
        assert exc_info.value.code == code

    def test_unknown_log_settings_are_rejected(self) -> None:
        config = create_default_config()
        config.logging.level = "verbose"
        with pytest.raises(ConfigError):
            validate_config(config)

        config = create_default_config()
        config.logging.output_format = "xml"
        with pytest.raises(ConfigError):
            validate_config(config)


class TestEnvironmentLoading:
    """Configuration from environment variables and .env files."""

    def test_defaults_without_environment(self, monkeypatch, tmp_path) -> None:
        clear_env(monkeypatch)

        config = load_config_from_env(tmp_path / ".env")

        assert config.scheduler.interval_minutes == 60
        assert config.scheduler.concurrency == 5
        assert config.scheduler.timezone == "Asia/Kolkata"
        assert config.probe.timeout_ms == 10000
        assert config.notifications.email is None
        assert config.notifications.webhook is None
        assert config.notifications.alert_recipients == []
        assert config.logging.level == "info"

    def test_environment_overrides(self, monkeypatch, tmp_path) -> None:
        clear_env(monkeypatch)
        monkeypatch.setenv("MONITOR_INTERVAL_MINUTES", "5")
        monkeypatch.setenv("REQUEST_TIMEOUT_MS", "250")
        monkeypatch.setenv("CONCURRENCY", "12")
        monkeypatch.setenv("MONITOR_TIMEZONE", "UTC")
        monkeypatch.setenv("ALERT_RECIPIENTS", "a@example.com, b@example.com,,")
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_USER", "vigil@example.com")
        monkeypatch.setenv("SMTP_PASSWORD", "s3cret")
        monkeypatch.setenv("SMTP_TLS", "false")
        monkeypatch.setenv("WEBHOOK_URL", "https://hooks.example.com/x")
        monkeypatch.setenv("VIGIL_STATE_FILE", str(tmp_path / "state.json"))

        config = load_config_from_env(tmp_path / ".env")

        assert config.scheduler.interval_minutes == 5
        # Timeouts below one second are raised to the minimum
        assert config.probe.timeout_ms == MIN_TIMEOUT_MS
        assert config.scheduler.concurrency == 12
        assert config.scheduler.timezone == "UTC"
        assert config.notifications.alert_recipients == ["a@example.com", "b@example.com"]
        assert config.notifications.email.smtp_port == 587
        assert config.notifications.email.from_address == "vigil@example.com"
        assert config.notifications.email.use_tls is False
        assert config.notifications.webhook.url == "https://hooks.example.com/x"
        assert config.persistence.state_file_path == tmp_path / "state.json"

    def test_dotenv_file_is_read(self, monkeypatch, tmp_path) -> None:
        clear_env(monkeypatch)
        env_file = tmp_path / ".env"
        env_file.write_text("CONCURRENCY=3\nLOG_LEVEL=debug\n", encoding="utf-8")

        config = load_config_from_env(env_file)

        assert config.scheduler.concurrency == 3
        assert config.logging.level == "debug"

    def test_process_environment_wins_over_dotenv(self, monkeypatch, tmp_path) -> None:
        clear_env(monkeypatch)
        env_file = tmp_path / ".env"
        env_file.write_text("CONCURRENCY=3\n", encoding="utf-8")
        monkeypatch.setenv("CONCURRENCY", "9")

        assert load_config_from_env(env_file).scheduler.concurrency == 9

    @pytest.mark.parametrize(
        "name,value",
        [("CONCURRENCY", "many"), ("MONITOR_INTERVAL_MINUTES", "0"), ("MONITOR_TIMEZONE", "Atlantis/Capital")],
    )
    def test_invalid_environment_raises(self, monkeypatch, tmp_path, name: str, value: str) -> None:
        clear_env(monkeypatch)
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigError):
            load_config_from_env(tmp_path / ".env")
