"""
Periodic trigger for recurring sweeps.

Sweeps fire on a fixed cadence of N minutes, aligned to multiples of N
minutes since local midnight in a fixed timezone (N=5 fires at :00, :05,
:10 ...; N=60 fires on the hour). The clock and sleep functions are
injectable so tests can simulate elapsed time without waiting.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .audit_logger import AuditLogger
from .config import MIN_INTERVAL_MINUTES
from .exceptions import ConfigError


MINUTES_PER_DAY = 24 * 60

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]


class IntervalCadence:
    """Every ``interval_minutes`` minutes, evaluated in ``timezone``."""

    def __init__(self, interval_minutes: int, timezone_name: str = "UTC") -> None:
        if interval_minutes < MIN_INTERVAL_MINUTES:
            raise ConfigError(
                code="invalid_interval",
                message=f"Interval must be at least {MIN_INTERVAL_MINUTES} minute(s)",
                details={"interval_minutes": interval_minutes},
            )
        try:
            self._tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(
                code="invalid_timezone",
                message=f"Unknown timezone: {timezone_name}",
                details={"timezone": timezone_name},
            ) from e
        self._interval = interval_minutes
        self._timezone_name = timezone_name

    @property
    def interval_minutes(self) -> int:
        return self._interval

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    def matches(self, dt: datetime) -> bool:
        """True if ``dt`` falls in a minute at which the cadence fires."""
        local = dt.astimezone(self._tz)
        return (local.hour * 60 + local.minute) % self._interval == 0

    def next_fire_after(self, dt: datetime) -> datetime:
        """
        The first firing instant strictly after ``dt``, in UTC.

        Real minutes are walked in order and tested against the local wall
        clock, so a DST gap is skipped and a repeated hour fires again.
        Alignment restarts at local midnight.
        """
        candidate = dt.astimezone(timezone.utc).replace(second=0, microsecond=0)
        for _ in range(2 * MINUTES_PER_DAY):
            candidate += timedelta(minutes=1)
            if self.matches(candidate):
                return candidate
        raise ConfigError(
            code="no_firing",
            message=f"No firing within two days of {dt.isoformat()}",
            details={"interval_minutes": self._interval, "timezone": self._timezone_name},
        )


class PeriodicTrigger:
    """
    Invokes an async callback each time the cadence fires.

    A callback run is awaited before the next firing is computed, so
    sweeps never overlap; a firing missed while a sweep was running is
    skipped rather than queued. Callback errors are logged and the loop
    keeps running.
    """

    def __init__(
        self,
        cadence: IntervalCadence,
        callback: Callable[[], Awaitable[object]],
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        logger: Optional[AuditLogger] = None,
        name: str = "sweep",
    ) -> None:
        self._cadence = cadence
        self._callback = callback
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep or asyncio.sleep
        self._logger = logger
        self._name = name
        self._running = False
        self.last_run: Optional[datetime] = None
        self.run_count = 0

    @property
    def cadence(self) -> IntervalCadence:
        return self._cadence

    def is_running(self) -> bool:
        return self._running

    def stop(self) -> None:
        """Ask the loop to exit at its next wake-up."""
        self._running = False

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run until stopped via ``stop()``, ``stop_event`` or cancellation."""
        self._running = True
        try:
            while self._running:
                now = self._clock()
                fire_at = self._cadence.next_fire_after(now)
                await self._sleep(max(0.0, (fire_at - now).total_seconds()))

                if not self._running or (stop_event is not None and stop_event.is_set()):
                    break

                self.last_run = fire_at
                self.run_count += 1
                try:
                    await self._callback()
                except Exception as e:
                    if self._logger:
                        self._logger.log_error(
                            "PeriodicTrigger",
                            f"Scheduled {self._name} failed",
                            error=e,
                            additional_data={"fired_at": fire_at.isoformat()},
                        )
        finally:
            self._running = False
