"""
Property-based tests for up/down transition detection.

Uses Hypothesis to drive status sequences through the StateTracker and
checks that alerts fire exactly once per edge, even under concurrency.
"""

import asyncio
import errno
from datetime import datetime, timedelta, timezone
from io import StringIO

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import vigil.store as store_module
from vigil.audit_logger import AuditLogger
from vigil.config import RetryConfig
from vigil.enums import ErrorKind, LogLevel, TargetState, TransitionDirection
from vigil.exceptions import PersistenceError
from vigil.models import ProbeResult
from vigil.notifications import DispatchResult, NotificationDispatcher, NotificationMessage
from vigil.state_tracker import StateTracker, decide_transition
from vigil.store import StateDocument, open_stores


BASE_TIME = datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc)


def make_result(target_id: int, at: datetime, up: bool) -> ProbeResult:
    if up:
        return ProbeResult(
            target_id=target_id, timestamp=at, dns_ok=True, resolved_ip="192.0.2.5",
            tcp_ok=True, tcp_latency_ms=5, http_ok=True, http_status_code=200,
            http_latency_ms=120,
        )
    return ProbeResult(
        target_id=target_id, timestamp=at, dns_ok=True, resolved_ip="192.0.2.5",
        tcp_ok=False, tcp_latency_ms=5, error_kind=ErrorKind.TCP_FAILURE,
    )


class RecordingChannel:
    """Notification channel double that records delivered messages."""

    def __init__(self, succeed: bool = True, delay: float = 0.0) -> None:
        self.succeed = succeed
        self.delay = delay
        self.messages: list[NotificationMessage] = []

    async def send(self, message: NotificationMessage) -> bool:
        self.messages.append(message)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.succeed

    def get_name(self) -> str:
        return "recording"


class RaisingNotifier:
    """Notifier whose send() blows up."""

    def __init__(self) -> None:
        self.calls = 0

    async def send(self, recipients, subject, body) -> DispatchResult:
        self.calls += 1
        raise RuntimeError("mail relay unreachable")


def make_dispatcher(channel: RecordingChannel, logger=None) -> NotificationDispatcher:
    dispatcher = NotificationDispatcher(
        retry_config=RetryConfig(max_retries=0, base_delay_seconds=0.001, max_delay_seconds=0.01),
        default_recipients=["oncall@example.com"],
        logger=logger,
    )
    dispatcher.register_channel(channel)
    return dispatcher


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.run(coro)


def expected_edges(statuses: list[bool]) -> list[TransitionDirection]:
    edges = []
    up = True
    for observed_up in statuses:
        if observed_up != up:
            edges.append(
                TransitionDirection.RECOVERED if observed_up
                else TransitionDirection.OUTAGE_STARTED
            )
            up = observed_up
    return edges


class TestDecideTransition:
    """The pure edge decision for every (stored, observed) pair."""

    def test_transition_table(self) -> None:
        up, down = TargetState.UP, TargetState.DOWN
        assert decide_transition(up, down) == TransitionDirection.OUTAGE_STARTED
        assert decide_transition(down, up) == TransitionDirection.RECOVERED
        assert decide_transition(up, up) is None
        assert decide_transition(down, down) is None


class TestOneEventPerEdgeProperty:
    """
    **Property 5: Exactly one event per edge**
    """

    @given(statuses=st.lists(st.booleans(), min_size=1, max_size=25))
    @settings(max_examples=100)
    def test_events_match_status_edges(self, statuses: list[bool]) -> None:
        """
        *For any* sequence of probe statuses, the tracker SHALL emit one
        event per UP->DOWN or DOWN->UP edge and nothing for repeats.
        """
        channel = RecordingChannel()

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Portal", "https://portal.example.com/")
            outcomes = []
            for i, observed_up in enumerate(statuses):
                entry = await log_store.append_log(
                    make_result(target.id, BASE_TIME + timedelta(minutes=i), observed_up)
                )
                outcomes.append(await tracker.apply(target, entry))
            return outcomes, await registry.get_target(target.id)

        outcomes, final = run_async(scenario())

        events = [o.event.direction for o in outcomes if o.transitioned]
        assert events == expected_edges(statuses)
        assert len(channel.messages) == len(events)
        assert final.current_state == (TargetState.UP if statuses[-1] else TargetState.DOWN)

    def test_outage_and_recovery_subjects(self) -> None:
        channel = RecordingChannel()

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target(
                "Billing", "https://billing.example.com/", ["billing@example.com"]
            )
            down = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            await tracker.apply(target, down)
            up = await log_store.append_log(
                make_result(target.id, BASE_TIME + timedelta(hours=1), True)
            )
            await tracker.apply(target, up)

        run_async(scenario())

        subjects = [m.subject for m in channel.messages]
        assert subjects == [
            "[Vigil] Outage detected: Billing (https://billing.example.com/)",
            "[Vigil] Recovery: Billing is UP",
        ]
        assert all(m.recipients == ["billing@example.com"] for m in channel.messages)
        assert "TCP_FAILURE" in channel.messages[0].body

    def test_empty_alert_list_falls_back_to_default_recipients(self) -> None:
        channel = RecordingChannel()

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Docs", "https://docs.example.com/")
            entry = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            await tracker.apply(target, entry)

        run_async(scenario())
        assert channel.messages[0].recipients == ["oncall@example.com"]


class TestSerializedTransitionsProperty:
    """
    **Property 8: Racing checks never double-notify**
    """

    @given(
        racers=st.integers(min_value=2, max_value=8),
        stale_copy=st.booleans(),
    )
    @settings(max_examples=50)
    def test_concurrent_down_results_alert_once(self, racers: int, stale_copy: bool) -> None:
        """
        *For any* number of concurrent DOWN results for one target, exactly
        one outage event SHALL be emitted and delivered.
        """
        channel = RecordingChannel(delay=0.001)

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Edge", "https://edge.example.com/")
            entries = [
                await log_store.append_log(
                    make_result(target.id, BASE_TIME + timedelta(seconds=i), False)
                )
                for i in range(racers)
            ]
            # Every racer may hold the same stale UP copy of the target
            copies = [target if stale_copy else await registry.get_target(target.id) for _ in entries]
            return await asyncio.gather(*(
                tracker.apply(copy, entry) for copy, entry in zip(copies, entries)
            ))

        outcomes = run_async(scenario())

        assert sum(1 for o in outcomes if o.transitioned) == 1
        assert len(channel.messages) == 1


class TestNotificationFailureProperty:
    """
    **Property: a failed alert never rolls back the transition**
    """

    def test_raising_notifier_keeps_state(self) -> None:
        stream = StringIO()
        logger = AuditLogger(output_format="json", output_stream=stream)
        notifier = RaisingNotifier()

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=notifier, logger=logger)
            target = await registry.create_target("Queue", "https://queue.example.com/")
            entry = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            outcome = await tracker.apply(target, entry)
            return outcome, await registry.get_target(target.id)

        outcome, current = run_async(scenario())

        assert outcome.transitioned
        assert not outcome.notified
        assert outcome.notify_error == "mail relay unreachable"
        assert current.current_state == TargetState.DOWN
        assert current.last_transition_at == BASE_TIME
        errors = [r for r in logger.records if r.level == LogLevel.ERROR]
        assert errors and errors[0].data["kind"] == ErrorKind.NOTIFY_FAILURE.value

    def test_failing_channel_is_reported_on_outcome(self) -> None:
        channel = RecordingChannel(succeed=False)

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Search", "https://search.example.com/")
            entry = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            outcome = await tracker.apply(target, entry)
            return outcome, await registry.get_target(target.id)

        outcome, current = run_async(scenario())

        assert outcome.transitioned and not outcome.notified
        assert "recording" in outcome.notify_error
        assert current.current_state == TargetState.DOWN

    def test_tracker_without_notifier_still_transitions(self) -> None:
        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry)
            target = await registry.create_target("Quiet", "https://quiet.example.com/")
            entry = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            return await tracker.apply(target, entry)

        outcome = run_async(scenario())
        assert outcome.transitioned and outcome.notify_error is None

    def test_deleted_target_is_ignored(self) -> None:
        logger = AuditLogger(output_stream=StringIO())

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, logger=logger)
            target = await registry.create_target("Temp", "https://temp.example.com/")
            entry = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            await registry.delete_target(target.id)
            return await tracker.apply(target, entry)

        outcome = run_async(scenario())
        assert not outcome.transitioned
        assert any(r.level == LogLevel.WARN for r in logger.records)


class TestStaleResultProperty:
    """
    **Property: a result older than the last transition never moves the state**
    """

    def test_older_down_after_newer_recovery_is_ignored(self) -> None:
        channel = RecordingChannel()

        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Edge", "https://edge.example.com/")
            slow = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            down = await log_store.append_log(
                make_result(target.id, BASE_TIME + timedelta(minutes=1), False)
            )
            up = await log_store.append_log(
                make_result(target.id, BASE_TIME + timedelta(minutes=2), True)
            )
            await tracker.apply(target, down)
            await tracker.apply(target, up)
            outcome = await tracker.apply(target, slow)
            return outcome, await registry.get_target(target.id)

        outcome, current = run_async(scenario())

        assert not outcome.transitioned
        assert current.current_state == TargetState.UP
        assert current.last_transition_at == BASE_TIME + timedelta(minutes=2)
        assert len(channel.messages) == 2

    def test_result_at_transition_time_is_still_applied(self) -> None:
        async def scenario():
            registry, log_store = open_stores()
            tracker = StateTracker(registry)
            target = await registry.create_target("Tie", "https://tie.example.com/")
            down = await log_store.append_log(make_result(target.id, BASE_TIME, False))
            up = await log_store.append_log(make_result(target.id, BASE_TIME, True))
            await tracker.apply(target, down)
            return await tracker.apply(target, up)

        assert run_async(scenario()).transitioned


class TestFailedTransitionWriteProperty:
    """
    **Property: an edge whose write failed is detected again on the next check**
    """

    def test_edge_is_alerted_after_write_recovers(self, tmp_path, monkeypatch) -> None:
        channel = RecordingChannel()

        def failing_replace(src, dst):
            raise OSError(errno.EIO, "Input/output error")

        async def scenario():
            document = StateDocument.open(tmp_path / "state.json", "tracker-secret")
            registry, log_store = open_stores(document)
            tracker = StateTracker(registry, notifier=make_dispatcher(channel))
            target = await registry.create_target("Pay", "https://pay.example.com/")
            first = await log_store.append_log(make_result(target.id, BASE_TIME, False))

            monkeypatch.setattr(store_module.os, "replace", failing_replace)
            with pytest.raises(PersistenceError):
                await tracker.apply(target, first)
            monkeypatch.undo()
            after_failure = await registry.get_target(target.id)
            sent_after_failure = len(channel.messages)

            second = await log_store.append_log(
                make_result(target.id, BASE_TIME + timedelta(minutes=1), False)
            )
            outcome = await tracker.apply(target, second)
            return after_failure, sent_after_failure, outcome, await registry.get_target(target.id)

        after_failure, sent_after_failure, outcome, current = run_async(scenario())

        assert after_failure.current_state == TargetState.UP
        assert sent_after_failure == 0
        assert outcome.transitioned
        assert current.current_state == TargetState.DOWN
        assert current.last_transition_at == BASE_TIME + timedelta(minutes=1)
        assert len(channel.messages) == 1
