"""
Uptime aggregation over probe history.

All figures are computed on demand from log entries; nothing here is
persisted. A window without observations reports 0% uptime.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from .enums import TargetState
from .exceptions import ValidationError
from .models import (
    LogEntry,
    SeriesPoint,
    SummaryTotals,
    Target,
    TargetSummary,
    UptimeWindow,
)
from .store import LogStore


# Upper bounds applied by callers that accept user input
MAX_UPTIME_HOURS = 24 * 90
MAX_SERIES_DAYS = 365


def count_window(
    entries: Sequence[LogEntry], start: datetime, end: datetime
) -> UptimeWindow:
    up = sum(1 for entry in entries if entry.status == TargetState.UP)
    return UptimeWindow(start=start, end=end, up_count=up, total_count=len(entries))


def bucket_daily(
    entries: Sequence[LogEntry], days: int, now: datetime
) -> list[SeriesPoint]:
    """
    Project entries onto ``days`` consecutive UTC dates ending at ``now``.

    Slot ``i`` holds the date of ``now - (days - 1 - i)`` days, so the
    result always has exactly ``days`` points, oldest first. Entries that
    fall outside the slots are ignored; an empty slot reports 0.
    """
    last_day = now.astimezone(timezone.utc).date()
    first_day = last_day - timedelta(days=days - 1)
    up_counts = [0] * days
    totals = [0] * days

    for entry in entries:
        index = (entry.timestamp.astimezone(timezone.utc).date() - first_day).days
        if 0 <= index < days:
            totals[index] += 1
            if entry.status == TargetState.UP:
                up_counts[index] += 1

    series = []
    for index in range(days):
        day: date = first_day + timedelta(days=index)
        uptime = 100.0 * up_counts[index] / totals[index] if totals[index] else 0.0
        series.append(SeriesPoint(date=day.isoformat(), uptime=uptime))
    return series


class Aggregator:
    """Answers uptime and series queries from a LogStore."""

    def __init__(
        self,
        log_store: LogStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._log_store = log_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def uptime_window(self, target_id: int, hours: float) -> UptimeWindow:
        if hours <= 0:
            raise ValidationError(
                code="invalid_window",
                message=f"hours must be positive, got {hours}",
                details={"hours": hours},
            )
        end = self._clock()
        start = end - timedelta(hours=hours)
        entries = await self._log_store.query_logs(target_id, start, end)
        return count_window(entries, start, end)

    async def uptime_pct(self, target_id: int, hours: float) -> float:
        """Percentage of UP results in the last ``hours`` (0 without data)."""
        window = await self.uptime_window(target_id, hours)
        return window.uptime_pct

    async def daily_series(self, target_id: int, days: int) -> list[SeriesPoint]:
        """Exactly ``days`` daily uptime points, oldest first."""
        if days < 1:
            raise ValidationError(
                code="invalid_window",
                message=f"days must be at least 1, got {days}",
                details={"days": days},
            )
        now = self._clock()
        entries = await self._log_store.query_logs(
            target_id, now - timedelta(days=days), now
        )
        return bucket_daily(entries, days, now)

    async def summary(
        self, targets: Sequence[Target]
    ) -> tuple[SummaryTotals, list[TargetSummary]]:
        """24-hour overview of every target plus fleet-wide counts."""
        now = self._clock()
        start = now - timedelta(hours=24)
        rows = []
        up = down = 0
        response_total = 0.0

        for target in targets:
            entries = await self._log_store.query_logs(target.id, start, now)
            window = count_window(entries, start, now)
            avg_response = (
                sum(e.response_time_ms for e in entries) / len(entries)
                if entries else 0.0
            )
            latest = entries[-1] if entries else None
            if latest is not None and latest.status == TargetState.UP:
                up += 1
            else:
                down += 1
            response_total += avg_response
            rows.append(
                TargetSummary(
                    target_id=target.id,
                    name=target.name,
                    url=target.url,
                    uptime_24h=window.uptime_pct,
                    avg_response_time_24h=avg_response,
                    latest_status=latest.status.value if latest else "CHECKING",
                    last_checked_at=latest.timestamp if latest else None,
                )
            )

        totals = SummaryTotals(
            total=len(rows),
            up=up,
            down=down,
            avg_response_time_all=response_total / len(rows) if rows else 0.0,
        )
        return totals, rows
