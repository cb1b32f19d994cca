"""
Notification dispatch for the Vigil monitor.

Provides notification channels (SMTP e-mail and generic webhook) and a
dispatcher that delivers one message to every registered channel with
retry and exponential backoff. Channels raise NotificationError with the
cause of a failed delivery; the dispatcher records it in the returned
DispatchResult and logs it, and never raises to its caller.
"""

import asyncio
import html
import smtplib
import ssl
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

import httpx

from .config import EmailConfig, RetryConfig, WebhookConfig
from .enums import ErrorKind, LogLevel, TransitionDirection
from .exceptions import NotificationError
from .models import Target, TransitionEvent

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


@dataclass
class NotificationMessage:
    """A rendered alert ready for delivery."""

    recipients: list[str]
    subject: str
    body: str  # HTML


@dataclass
class NotificationResult:
    """Result of delivering a message through one channel."""

    channel: str
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@dataclass
class DispatchResult:
    """Aggregate result of one dispatch across all channels."""

    success: bool
    recipients: list[str] = field(default_factory=list)
    results: list[NotificationResult] = field(default_factory=list)

    @property
    def error(self) -> Optional[str]:
        if self.success:
            return None
        errors = [f"{r.channel}: {r.error}" for r in self.results if r.error]
        return "; ".join(errors) or "no notification channels configured"


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, message: NotificationMessage) -> bool:
        """
        Deliver a message.

        Returns:
            True if delivery was successful, False otherwise

        Raises:
            NotificationError: With the cause, if delivery failed
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


def format_transition_message(
    event: TransitionEvent, target: Target
) -> tuple[str, str]:
    """
    Render subject and HTML body for an outage or recovery alert.

    Returns:
        Tuple of (subject, html_body)
    """
    entry = event.log_entry
    name = html.escape(target.name)
    url = html.escape(target.url)
    at = event.occurred_at.astimezone(timezone.utc).isoformat()
    details = (
        f"<p>HTTP code: {entry.status_code} - "
        f"response time: {entry.response_time_ms} ms</p>"
    )

    if event.direction == TransitionDirection.OUTAGE_STARTED:
        subject = f"[Vigil] Outage detected: {target.name} ({target.url})"
        body = (
            f"<p>Vigil has detected the application <b>{name}</b> "
            f"is <b>DOWN</b> as of {at}.</p>"
            f"{details}"
        )
        if entry.error_detail:
            body += f"<p>Diagnosis: {html.escape(entry.error_detail)}</p>"
        body += "<p>Please investigate.</p>"
    else:
        subject = f"[Vigil] Recovery: {target.name} is UP"
        body = (
            f"<p>Vigil recorded a recovery for <b>{name}</b> ({url}) at {at}.</p>"
            f"{details}"
        )
    return subject, body


class EmailChannel:
    """E-mail notification channel using SMTP."""

    def __init__(
        self, config: EmailConfig, simulation_mode: bool = False
    ) -> None:
        self._config = config
        self._simulation_mode = simulation_mode

    async def send(self, message: NotificationMessage) -> bool:
        """Send the message via SMTP without blocking the event loop."""
        if self._simulation_mode:
            return True
        if not message.recipients:
            raise NotificationError(
                code="no_recipients",
                message="No recipients for e-mail alert",
            )

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._send_sync, message)

    def _send_sync(self, message: NotificationMessage) -> bool:
        msg = self._format_email(message)
        try:
            with smtplib.SMTP(self._config.smtp_host, self._config.smtp_port, timeout=30) as server:
                if self._config.use_tls:
                    server.starttls(context=ssl.create_default_context())
                if self._config.username:
                    server.login(self._config.username, self._config.password)
                server.sendmail(
                    self._config.from_address,
                    message.recipients,
                    msg.as_string(),
                )
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                code="smtp_error",
                message=f"SMTP delivery via {self._config.smtp_host} failed: {e}",
                details={"smtp_host": self._config.smtp_host},
            ) from e
        return True

    def get_name(self) -> str:
        return "email"

    def _format_email(self, message: NotificationMessage) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self._config.from_address
        msg["To"] = ", ".join(message.recipients)
        msg["Subject"] = message.subject
        msg.attach(MIMEText(message.body, "html"))
        return msg


class WebhookChannel:
    """Generic webhook notification channel using HTTP POST."""

    def __init__(
        self,
        config: WebhookConfig,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = config.url
        self._headers = config.headers.copy()
        self._simulation_mode = simulation_mode
        self._transport = transport

    async def send(self, message: NotificationMessage) -> bool:
        """POST the message as JSON; any 2xx counts as delivered."""
        if self._simulation_mode:
            return True

        headers = {"Content-Type": "application/json"}
        headers.update(self._headers)
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    self._url,
                    json={
                        "recipients": message.recipients,
                        "subject": message.subject,
                        "body": message.body,
                    },
                    headers=headers,
                    timeout=30.0,
                )
            except httpx.HTTPError as e:
                raise NotificationError(
                    code="webhook_error",
                    message=f"Webhook request failed: {e}",
                    details={"url": self._url},
                ) from e
        if not 200 <= response.status_code < 300:
            raise NotificationError(
                code="webhook_status",
                message=f"Webhook returned HTTP {response.status_code}",
                details={"url": self._url, "status_code": response.status_code},
            )
        return True

    def get_name(self) -> str:
        return "webhook"


@dataclass
class RetryAttempt:
    """Record of a single failed delivery attempt."""

    attempt_number: int
    error: str
    timestamp: str


class NotificationDispatcher:
    """
    Delivers alert messages to every registered channel.

    Each channel is retried with exponential backoff; a dispatch succeeds
    if at least one channel delivered. Empty recipient lists fall back to
    the configured default recipients.
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        default_recipients: Optional[list[str]] = None,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        self._channels: list[NotificationChannel] = []
        self._retry_config = retry_config or RetryConfig()
        self._default_recipients = list(default_recipients or [])
        self._logger = logger

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    def unregister_channel(self, channel_name: str) -> bool:
        for i, channel in enumerate(self._channels):
            if channel.get_name() == channel_name:
                self._channels.pop(i)
                return True
        return False

    @property
    def channels(self) -> list[NotificationChannel]:
        return self._channels.copy()

    @property
    def default_recipients(self) -> list[str]:
        return self._default_recipients.copy()

    def resolve_recipients(self, recipients: Optional[list[str]]) -> list[str]:
        cleaned = [r.strip() for r in (recipients or []) if r and r.strip()]
        return cleaned or self.default_recipients

    async def send(
        self,
        recipients: Optional[list[str]],
        subject: str,
        body: str,
    ) -> DispatchResult:
        """
        Deliver one message to all channels.

        Args:
            recipients: Target addresses; empty falls back to the defaults
            subject: Message subject
            body: HTML message body

        Returns:
            DispatchResult; ``success`` is True if any channel delivered
        """
        message = NotificationMessage(
            recipients=self.resolve_recipients(recipients),
            subject=subject,
            body=body,
        )

        results = []
        for channel in self._channels:
            results.append(await self._send_with_retry(channel, message))

        return DispatchResult(
            success=any(r.success for r in results),
            recipients=message.recipients,
            results=results,
        )

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        message: NotificationMessage,
    ) -> NotificationResult:
        channel_name = channel.get_name()
        max_attempts = self._retry_config.max_retries + 1
        attempts = 0
        retry_attempts: list[RetryAttempt] = []
        last_error: Optional[str] = None

        while attempts < max_attempts:
            attempts += 1
            try:
                if await channel.send(message):
                    return NotificationResult(
                        channel=channel_name,
                        success=True,
                        attempts=attempts,
                    )
                last_error = "Channel returned failure"
            except Exception as e:
                last_error = str(e) or type(e).__name__

            retry_attempts.append(
                RetryAttempt(
                    attempt_number=attempts,
                    error=last_error,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
            )
            if attempts < max_attempts:
                await asyncio.sleep(self._calculate_delay(attempts - 1))

        self._log_all_retries_failed(channel_name, message, retry_attempts)
        return NotificationResult(
            channel=channel_name,
            success=False,
            error=last_error,
            attempts=attempts,
        )

    def _calculate_delay(self, attempt: int) -> float:
        delay = self._retry_config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._retry_config.max_delay_seconds)

    def _log_all_retries_failed(
        self,
        channel_name: str,
        message: NotificationMessage,
        retry_attempts: list[RetryAttempt],
    ) -> None:
        if self._logger is None:
            return
        self._logger.log(
            level=LogLevel.ERROR,
            component="NotificationDispatcher",
            message=f"All delivery attempts failed for channel '{channel_name}'",
            data={
                "kind": ErrorKind.NOTIFY_FAILURE.value,
                "channel": channel_name,
                "subject": message.subject,
                "recipients": message.recipients,
                "total_attempts": len(retry_attempts),
                "attempts": [
                    {
                        "attempt": attempt.attempt_number,
                        "error": attempt.error,
                        "timestamp": attempt.timestamp,
                    }
                    for attempt in retry_attempts
                ],
            },
        )
