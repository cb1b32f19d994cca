"""
Check orchestration for the Vigil monitor.

This module coordinates the probe, log store and state tracker into the
per-target check pipeline (probe -> log append -> state update), runs
bounded-concurrency sweeps over all registered targets, and owns the
service lifecycle: a startup sweep, the periodic trigger, and the
immediate check fired when a target is registered.
"""

import asyncio
import itertools
import time
from typing import Optional

from .audit_logger import AuditLogger
from .config import SchedulerConfig
from .enums import LogLevel
from .exceptions import TargetNotFoundError
from .models import LogEntry, SweepResult, Target
from .probe import Prober
from .scheduler import IntervalCadence, PeriodicTrigger
from .state_tracker import StateTracker
from .store import LogStore, TargetRegistry


class Monitor:
    """
    Runs checks for single targets and sweeps over all of them.

    Sweeps use a pool of at most ``concurrency`` workers that claim
    targets from a shared counter, so every target is checked by exactly
    one worker. A failure in one target's pipeline is logged and never
    aborts the others.
    """

    def __init__(
        self,
        registry: TargetRegistry,
        log_store: LogStore,
        prober: Prober,
        tracker: StateTracker,
        concurrency: int = 5,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._registry = registry
        self._log_store = log_store
        self._prober = prober
        self._tracker = tracker
        self._concurrency = max(1, concurrency)
        self._logger = logger
        self._background: set[asyncio.Task] = set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def registry(self) -> TargetRegistry:
        return self._registry

    @property
    def log_store(self) -> LogStore:
        return self._log_store

    async def check_one(self, target: Target) -> LogEntry:
        """
        Probe a single target, record the result and update its state.

        Probe failures are part of the returned entry (status DOWN).
        Persistence errors propagate to the caller.
        """
        result = await self._prober.probe(target.url, target_id=target.id)
        entry = await self._log_store.append_log(result)
        await self._tracker.apply(target, entry)

        self._log(
            LogLevel.DEBUG,
            f"Checked {target.url}: {entry.status.value}",
            {
                "target_id": target.id,
                "status_code": entry.status_code,
                "response_time_ms": entry.response_time_ms,
                "error": entry.error_detail,
            },
        )
        return entry

    async def check_target(self, target_id: int) -> LogEntry:
        """On-demand check of a registered target by id."""
        target = await self._registry.get_target(target_id)
        if target is None:
            raise TargetNotFoundError(
                code="not_found",
                message=f"Target {target_id} not found",
                details={"target_id": target_id},
            )
        return await self.check_one(target)

    async def check_all(self) -> SweepResult:
        """Check every registered target with bounded concurrency."""
        started = time.perf_counter()
        targets = await self._registry.list_targets()
        if not targets:
            return SweepResult(total=0, checked=0)

        claims = itertools.count()
        checked = 0

        async def worker() -> None:
            nonlocal checked
            while True:
                index = next(claims)
                if index >= len(targets):
                    return
                target = targets[index]
                try:
                    await self.check_one(target)
                except TargetNotFoundError:
                    self._log(
                        LogLevel.WARN,
                        f"Target {target.id} was removed during the sweep",
                        {"target_id": target.id, "url": target.url},
                    )
                except Exception as e:
                    self._log_error(
                        f"Check of target {target.id} failed",
                        e,
                        {"target_id": target.id, "url": target.url},
                    )
                else:
                    checked += 1

        workers = min(self._concurrency, len(targets))
        await asyncio.gather(*(worker() for _ in range(workers)))

        self._log(
            LogLevel.INFO,
            f"Sweep finished: {checked}/{len(targets)} target(s) checked",
            {
                "total": len(targets),
                "checked": checked,
                "workers": workers,
                "duration_ms": round((time.perf_counter() - started) * 1000),
            },
        )
        return SweepResult(total=len(targets), checked=checked)

    def on_target_registered(self, target: Target) -> asyncio.Task:
        """Schedule one immediate background check of a new target."""
        task = asyncio.get_running_loop().create_task(
            self._background_check(target)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def register_target(
        self,
        name: str,
        url: str,
        alert_emails: Optional[list[str]] = None,
    ) -> Target:
        """Create a target in the registry and fire its first check."""
        target = await self._registry.create_target(name, url, alert_emails)
        self._log(
            LogLevel.INFO,
            f"Registered target {target.name}",
            {"target_id": target.id, "url": target.url},
        )
        self.on_target_registered(target)
        return target

    async def wait_for_background(self) -> None:
        """Wait until all registration checks have finished."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _background_check(self, target: Target) -> Optional[LogEntry]:
        try:
            return await self.check_one(target)
        except Exception as e:
            self._log_error(
                f"Immediate check of target {target.id} failed",
                e,
                {"target_id": target.id, "url": target.url},
            )
            return None

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "Monitor", message, data)

    def _log_error(self, message: str, error: Exception, data: dict) -> None:
        if self._logger:
            self._logger.log_error("Monitor", message, error=error, additional_data=data)


class MonitorService:
    """
    Process-level lifecycle around a Monitor.

    ``start()`` returns immediately: the startup sweep and the periodic
    trigger run as background tasks so on-demand checks are available
    right away.
    """

    def __init__(
        self,
        monitor: Monitor,
        config: Optional[SchedulerConfig] = None,
        trigger: Optional[PeriodicTrigger] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._monitor = monitor
        self._config = config or SchedulerConfig()
        self._logger = logger
        self._trigger = trigger or PeriodicTrigger(
            IntervalCadence(self._config.interval_minutes, self._config.timezone),
            self._scheduled_sweep,
            logger=logger,
        )
        self._startup_task: Optional[asyncio.Task] = None
        self._trigger_task: Optional[asyncio.Task] = None

    @property
    def monitor(self) -> Monitor:
        return self._monitor

    @property
    def trigger(self) -> PeriodicTrigger:
        return self._trigger

    @property
    def startup_task(self) -> Optional[asyncio.Task]:
        return self._startup_task

    def is_running(self) -> bool:
        return self._trigger_task is not None and not self._trigger_task.done()

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self._config.startup_sweep:
            self._startup_task = loop.create_task(self._startup_sweep())
        self._trigger_task = loop.create_task(self._trigger.run())
        if self._logger:
            self._logger.info(
                "MonitorService",
                f"Monitor schedule every {self._trigger.cadence.interval_minutes} minute(s)",
                {
                    "timezone": self._trigger.cadence.timezone_name,
                    "concurrency": self._monitor.concurrency,
                },
            )

    async def stop(self) -> None:
        self._trigger.stop()
        for task in (self._trigger_task, self._startup_task):
            if task is not None and not task.done():
                task.cancel()
        for task in (self._trigger_task, self._startup_task):
            if task is not None:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        await self._monitor.wait_for_background()
        self._trigger_task = None
        self._startup_task = None

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Start, block until ``stop_event`` is set, then shut down."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    async def _scheduled_sweep(self) -> None:
        await self._monitor.check_all()

    async def _startup_sweep(self) -> None:
        try:
            await self._monitor.check_all()
        except Exception as e:
            if self._logger:
                self._logger.log_error("MonitorService", "Startup sweep failed", error=e)
