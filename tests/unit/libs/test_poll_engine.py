# =============================================================================
# Unit Tests: Poll Engine
# =============================================================================

import threading
import time
from unittest.mock import Mock

import pytest

from libs.dbt_cloud import (
    PermanentNetworkError,
    PollCancelledError,
    PollEngine,
    PollTimeoutError,
    RemoteJobFailedError,
    TransientNetworkError,
)
from libs.dbt_cloud.polling import PollSession, diff_run
from libs.models import RunDescriptor, RunStatus


# =============================================================================
# Helpers
# =============================================================================

class FakeEvent:
    """threading.Event stand-in whose wait advances a fake clock."""

    def __init__(self, clock):
        self._clock = clock
        self._set = False
        self.waits = []

    def is_set(self):
        return self._set

    def set(self):
        self._set = True

    def clear(self):
        self._set = False

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if not self._set and timeout:
            self._clock.advance(timeout)
        return self._set


class ScriptedClient:
    """Answers get_run from a script; the last entry repeats."""

    def __init__(self, script, clock=None, fetch_cost=0.0, on_fetch=None):
        self.script = list(script)
        self.clock = clock
        self.fetch_cost = fetch_cost
        self.on_fetch = on_fetch
        self.calls = []

    def get_run(self, run_id, include_debug_logs=False, deadline=None):
        self.calls.append((run_id, deadline))
        if self.clock is not None:
            self.clock.advance(self.fetch_cost)
        if self.on_fetch is not None:
            self.on_fetch(len(self.calls))
        item = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def make_run(make_run_payload, make_step):
    """Factory for a RunDescriptor with a single step."""

    def _make_run(status="Running", logs="", complete=False, duration="10 seconds"):
        step = make_step(1, logs=logs, truncated="..." if complete else None)
        return RunDescriptor.from_response(
            make_run_payload(status=status, steps=[step], duration=duration)
        )

    return _make_run


def make_engine(client, clock, poll_frequency=5.0, max_duration=60.0):
    log = Mock()
    event = FakeEvent(clock)
    engine = PollEngine(
        client,
        poll_frequency=poll_frequency,
        max_duration=max_duration,
        log=log,
        clock=clock,
        cancel_event=event,
    )
    return engine, log, event


def info_lines(log):
    return [c.args[0] for c in log.info.call_args_list]


def status_announcements(log):
    return [c.args[0] for c in log.debug.call_args_list if c.args[0].startswith("Status changed")]


# =============================================================================
# Test: diff_run
# =============================================================================

class TestDiffRun:
    def test_emits_only_new_log_suffix(self, make_run):
        session = PollSession(run_id=42, poll_frequency=5, max_duration=60, deadline=60)

        first, announced, offsets = diff_run(session, make_run(logs="line 1\n"))
        session.announced_statuses, session.log_offsets = announced, offsets
        second, _, _ = diff_run(session, make_run(logs="line 1\nline 2\n"))

        assert [c.text for c in first.log_chunks] == ["line 1\n"]
        assert [c.text for c in second.log_chunks] == ["line 2\n"]

    def test_concatenated_chunks_equal_final_log(self, make_run):
        session = PollSession(run_id=42, poll_frequency=5, max_duration=60, deadline=60)
        snapshots = ["", "Running with dbt\n", "Running with dbt\n1 of 3 START\n",
                     "Running with dbt\n1 of 3 START\n1 of 3 OK\nDone."]
        emitted = ""

        for logs in snapshots:
            result, announced, offsets = diff_run(session, make_run(logs=logs))
            session.announced_statuses, session.log_offsets = announced, offsets
            emitted += "".join(c.text for c in result.log_chunks)

        assert emitted == snapshots[-1]

    def test_is_pure(self, make_run):
        session = PollSession(run_id=42, poll_frequency=5, max_duration=60, deadline=60)

        diff_run(session, make_run(logs="abc"))

        assert session.log_offsets == {}
        assert session.announced_statuses == frozenset()

    def test_shrinking_log_keeps_offset(self, make_run):
        session = PollSession(
            run_id=42, poll_frequency=5, max_duration=60, deadline=60, log_offsets={1: 10}
        )

        result, _, offsets = diff_run(session, make_run(logs="short"))

        assert result.log_chunks == ()
        assert offsets == {1: 10}

    def test_status_announced_once(self, make_run):
        session = PollSession(
            run_id=42,
            poll_frequency=5,
            max_duration=60,
            deadline=60,
            announced_statuses=frozenset({RunStatus.RUNNING}),
        )

        result, announced, _ = diff_run(session, make_run(status="Running"))

        assert result.status_changes == ()
        assert announced == frozenset({RunStatus.RUNNING})


# =============================================================================
# Test: PollEngine
# =============================================================================

class TestPollEngine:
    def test_rejects_invalid_configuration(self, fake_clock):
        with pytest.raises(ValueError):
            PollEngine(ScriptedClient([]), poll_frequency=-1, clock=fake_clock)
        with pytest.raises(ValueError):
            PollEngine(ScriptedClient([]), max_duration=0, clock=fake_clock)

    def test_each_log_line_emitted_exactly_once(self, fake_clock, make_run):
        client = ScriptedClient(
            [
                make_run(logs="a\nb\n"),
                make_run(logs="a\nb\n"),
                make_run(logs="a\nb\nc\n"),
                make_run(status="Success", logs="a\nb\nc\nd", complete=True),
            ]
        )
        engine, log, _ = make_engine(client, fake_clock)

        run = engine.wait_for_completion(42)

        assert run.status is RunStatus.SUCCESS
        assert info_lines(log) == [
            "[Step dbt build]: a",
            "[Step dbt build]: b",
            "[Step dbt build]: c",
            "[Step dbt build]: d",
        ]

    def test_each_status_announced_once(self, fake_clock, make_run):
        client = ScriptedClient(
            [
                make_run(status="Queued"),
                make_run(status="Queued"),
                make_run(status="Starting"),
                make_run(status="Running"),
                make_run(status="Running"),
                make_run(status="Running"),
                make_run(status="Success", complete=True, duration="2 minutes"),
            ]
        )
        engine, log, _ = make_engine(client, fake_clock)

        engine.wait_for_completion(42)

        assert status_announcements(log) == [
            "Status changed to 'Queued' after 10 seconds",
            "Status changed to 'Starting' after 10 seconds",
            "Status changed to 'Running' after 10 seconds",
            "Status changed to 'Success' after 2 minutes",
        ]

    def test_terminal_status_without_log_marker_keeps_polling(self, fake_clock, make_run):
        client = ScriptedClient(
            [
                make_run(status="Success", logs="done"),
                make_run(status="Success", logs="done"),
                make_run(status="Success", logs="done", complete=True),
            ]
        )
        engine, log, _ = make_engine(client, fake_clock)

        engine.wait_for_completion(42)

        assert len(client.calls) == 3
        assert len(status_announcements(log)) == 1

    def test_sleeps_poll_frequency_between_ticks(self, fake_clock, make_run):
        client = ScriptedClient(
            [make_run(), make_run(), make_run(status="Error", complete=True)],
            clock=fake_clock,
            fetch_cost=1.0,
        )
        engine, _, event = make_engine(client, fake_clock, poll_frequency=5.0)

        engine.wait_for_completion(42)

        # the fetch time counts against the interval
        assert event.waits == [4.0, 4.0]

    def test_times_out_when_never_complete(self, fake_clock, make_run):
        client = ScriptedClient([make_run(status="Running")])
        engine, _, event = make_engine(client, fake_clock, poll_frequency=5.0, max_duration=12.0)

        with pytest.raises(PollTimeoutError) as exc_info:
            engine.wait_for_completion(42)

        assert exc_info.value.run_id == 42
        assert exc_info.value.status == "Running"
        assert exc_info.value.max_duration == 12.0
        assert event.waits == [5.0, 5.0, 2.0]
        assert fake_clock() == 12.0

    def test_fetch_receives_session_deadline(self, fake_clock, make_run):
        fake_clock.advance(100.0)
        client = ScriptedClient([make_run(status="Success", complete=True)])
        engine, _, _ = make_engine(client, fake_clock, max_duration=30.0)

        engine.wait_for_completion(42)

        assert client.calls == [(42, 130.0)]

    def test_deadline_truncated_retry_becomes_timeout(self, fake_clock, make_run):
        client = ScriptedClient(
            [
                make_run(status="Running"),
                TransientNetworkError("502", attempts=2, deadline_exceeded=True, status_code=502),
            ]
        )
        engine, _, _ = make_engine(client, fake_clock)

        with pytest.raises(PollTimeoutError) as exc_info:
            engine.wait_for_completion(42)

        assert exc_info.value.status == "Running"
        assert isinstance(exc_info.value.__cause__, TransientNetworkError)

    def test_exhausted_retries_propagate_with_context(self, fake_clock, make_run):
        client = ScriptedClient(
            [
                make_run(status="Running"),
                TransientNetworkError("503", attempts=4, status_code=503),
            ]
        )
        engine, _, _ = make_engine(client, fake_clock)

        with pytest.raises(TransientNetworkError) as exc_info:
            engine.wait_for_completion(42)

        assert exc_info.value.run_id == 42
        assert exc_info.value.status == "Running"
        assert exc_info.value.status_code == 503

    def test_permanent_error_propagates_unchanged(self, fake_clock):
        error = PermanentNetworkError("401 Unauthorized", status_code=401)
        client = ScriptedClient([error])
        engine, _, _ = make_engine(client, fake_clock)

        with pytest.raises(PermanentNetworkError) as exc_info:
            engine.wait_for_completion(42)

        assert exc_info.value is error
        assert len(client.calls) == 1

    def test_cancel_before_start_skips_fetch(self, fake_clock, make_run):
        client = ScriptedClient([make_run()])
        engine, _, _ = make_engine(client, fake_clock)

        engine.cancel()

        with pytest.raises(PollCancelledError):
            engine.wait_for_completion(42)
        assert client.calls == []

    def test_cancel_during_fetch_stops_after_tick(self, fake_clock, make_run):
        client = ScriptedClient([make_run(logs="partial\n")])
        engine, log, _ = make_engine(client, fake_clock)
        client.on_fetch = lambda n: engine.cancel() if n == 2 else None

        with pytest.raises(PollCancelledError) as exc_info:
            engine.wait_for_completion(42)

        assert len(client.calls) == 2
        assert exc_info.value.status == "Running"
        assert engine.cancelled is False

    def test_engine_reusable_after_cancel(self, fake_clock, make_run):
        client = ScriptedClient([make_run(status="Success", complete=True)])
        engine, _, _ = make_engine(client, fake_clock)

        engine.cancel()
        with pytest.raises(PollCancelledError):
            engine.wait_for_completion(1)

        run = engine.wait_for_completion(2)

        assert run.status is RunStatus.SUCCESS
        assert [run_id for run_id, _ in client.calls] == [2]

    def test_cancel_from_another_thread_interrupts_sleep(self, make_run):
        client = ScriptedClient([make_run(status="Running")])
        engine = PollEngine(client, poll_frequency=30.0, max_duration=600.0, log=Mock())
        canceller = threading.Timer(0.1, engine.cancel)

        started = time.monotonic()
        canceller.start()
        try:
            with pytest.raises(PollCancelledError):
                engine.wait_for_completion(42)
        finally:
            canceller.cancel()

        assert time.monotonic() - started < 5.0
        assert len(client.calls) == 1

    def test_session_state_published_after_tick(self, fake_clock, make_run):
        client = ScriptedClient([make_run(logs="12345")])
        engine, _, _ = make_engine(client, fake_clock)
        session = engine.start_session(42)

        engine.tick(session)

        assert session.ticks == 1
        assert session.log_offsets == {1: 5}
        assert session.last_status is RunStatus.RUNNING
        assert session.announced_statuses == frozenset({RunStatus.RUNNING})


# =============================================================================
# Test: wait_for_success
# =============================================================================

class TestWaitForSuccess:
    def test_returns_successful_run(self, fake_clock, make_run):
        client = ScriptedClient([make_run(status="Success", complete=True)])
        engine, _, _ = make_engine(client, fake_clock)

        assert engine.wait_for_success(42).status is RunStatus.SUCCESS

    @pytest.mark.parametrize("status", ["Error", "Cancelled"])
    def test_raises_on_failed_run(self, fake_clock, make_run, status):
        client = ScriptedClient([make_run(status=status, complete=True, duration="3 minutes")])
        engine, _, _ = make_engine(client, fake_clock)

        with pytest.raises(RemoteJobFailedError) as exc_info:
            engine.wait_for_success(42)

        assert exc_info.value.status == status
        assert exc_info.value.duration_humanized == "3 minutes"
        assert f"status '{status}'" in str(exc_info.value)
