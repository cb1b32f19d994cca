"""
Up/down transition detection for monitored targets.

Each target is a two-state machine driven only by the overall status of
its newest probe. The read-compare-write step is serialized per target
with an asyncio lock and committed through the registry's
compare-and-set, so racing checks of the same target can never both
observe the old state and both raise an alert for the same edge.
"""

import asyncio
from collections import defaultdict
from typing import Optional

from .audit_logger import AuditLogger
from .enums import ErrorKind, LogLevel, TargetState, TransitionDirection
from .models import LogEntry, Target, TransitionEvent, TransitionOutcome
from .notifications import NotificationDispatcher, format_transition_message
from .store import TargetRegistry


def decide_transition(
    stored: TargetState, observed: TargetState
) -> Optional[TransitionDirection]:
    """
    Return the edge crossed when ``observed`` meets ``stored``, if any.

    DOWN while not DOWN starts an outage; UP while DOWN is a recovery.
    Anything else is not a transition.
    """
    if observed == TargetState.DOWN and stored != TargetState.DOWN:
        return TransitionDirection.OUTAGE_STARTED
    if observed == TargetState.UP and stored == TargetState.DOWN:
        return TransitionDirection.RECOVERED
    return None


class StateTracker:
    """
    Applies probe log entries to persisted target state.

    Notification dispatch runs after the state write and outside the
    per-target lock. Its failure is logged and reported on the outcome but
    never rolls back the transition.
    """

    # Compare-and-set retries when another writer changed the state first
    MAX_COMMIT_ATTEMPTS = 3

    def __init__(
        self,
        registry: TargetRegistry,
        notifier: Optional[NotificationDispatcher] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._registry = registry
        self._notifier = notifier
        self._logger = logger
        self._locks: dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def get_lock(self, target_id: int) -> asyncio.Lock:
        return self._locks[target_id]

    async def apply(self, target: Target, entry: LogEntry) -> TransitionOutcome:
        """
        Compare ``entry`` against the stored state of ``target``.

        Returns:
            TransitionOutcome with the emitted event, if any
        """
        async with self.get_lock(target.id):
            committed = await self._commit(target.id, entry)

        if committed is None:
            return TransitionOutcome(transitioned=False)

        event, current = committed
        self._log(
            LogLevel.INFO,
            f"Target {current.name} transitioned {event.previous_state.value} -> {event.new_state.value}",
            {
                "target_id": current.id,
                "direction": event.direction.value,
                "log_id": entry.id,
                "error": entry.error_detail,
            },
        )

        outcome = TransitionOutcome(transitioned=True, event=event)
        await self._notify(event, current, outcome)
        return outcome

    async def _commit(
        self, target_id: int, entry: LogEntry
    ) -> Optional[tuple[TransitionEvent, Target]]:
        observed = entry.status

        for _ in range(self.MAX_COMMIT_ATTEMPTS):
            # Always decide against the stored state, never the caller's copy
            current = await self._registry.get_target(target_id)
            if current is None:
                self._log(
                    LogLevel.WARN,
                    f"Target {target_id} disappeared before its state could be updated",
                    {"target_id": target_id, "log_id": entry.id},
                )
                return None

            if (
                current.last_transition_at is not None
                and entry.timestamp < current.last_transition_at
            ):
                # A slow check finished after a newer one already moved the state
                self._log(
                    LogLevel.DEBUG,
                    f"Ignoring stale result for target {target_id}",
                    {
                        "target_id": target_id,
                        "log_id": entry.id,
                        "checked_at": entry.timestamp.isoformat(),
                        "last_transition_at": current.last_transition_at.isoformat(),
                    },
                )
                return None

            direction = decide_transition(current.current_state, observed)
            if direction is None:
                return None

            committed = await self._registry.transition_state(
                target_id, current.current_state, observed, entry.timestamp
            )
            if committed:
                event = TransitionEvent(
                    target_id=target_id,
                    direction=direction,
                    previous_state=current.current_state,
                    new_state=observed,
                    log_entry=entry,
                )
                current.current_state = observed
                current.last_transition_at = entry.timestamp
                return event, current

        self._log(
            LogLevel.WARN,
            f"Gave up updating state of target {target_id} after concurrent writes",
            {"target_id": target_id, "attempts": self.MAX_COMMIT_ATTEMPTS},
        )
        return None

    async def _notify(
        self, event: TransitionEvent, target: Target, outcome: TransitionOutcome
    ) -> None:
        if self._notifier is None:
            return

        subject, body = format_transition_message(event, target)
        try:
            result = await self._notifier.send(target.alert_emails, subject, body)
        except Exception as e:
            outcome.notify_error = str(e) or type(e).__name__
        else:
            outcome.notified = result.success
            outcome.notify_error = result.error

        if outcome.notify_error:
            self._log(
                LogLevel.ERROR,
                f"Alert for target {target.name} could not be delivered",
                {
                    "kind": ErrorKind.NOTIFY_FAILURE.value,
                    "target_id": target.id,
                    "direction": event.direction.value,
                    "error": outcome.notify_error,
                },
            )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "StateTracker", message, data)
