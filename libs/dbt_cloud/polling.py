# =============================================================================
# Poll Engine - Bounded Run Polling
# =============================================================================
# Drives a dbt Cloud run to a terminal state, announcing each status once and
# emitting every byte of step logs exactly once.
# =============================================================================

"""
Bounded polling of dbt Cloud runs.

A poll session moves through ``Polling -> Terminal | TimedOut``. Each tick
fetches a fresh RunDescriptor, diffs it against the session state and
publishes the new state only once the whole tick has been computed.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from libs.models import RunDescriptor, RunStatus

from .client import DbtCloudClient
from .errors import (
    PollCancelledError,
    PollTimeoutError,
    RemoteJobFailedError,
    TransientNetworkError,
)

__all__ = ["LogChunk", "PollSession", "TickResult", "PollEngine", "diff_run"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogChunk:
    """New log output of one step since the previous poll."""

    step_id: int
    step_name: str
    text: str

    @property
    def lines(self) -> list[str]:
        return self.text.splitlines()


@dataclass
class PollSession:
    """
    Per-session polling state, owned by a single poll loop.

    Attributes:
        run_id: Run being polled
        poll_frequency: Seconds between ticks
        max_duration: Overall budget in seconds
        deadline: Monotonic time after which the session times out
        announced_statuses: Statuses already announced
        log_offsets: Step id -> length of log text already emitted
        last_run: Last published snapshot
        ticks: Number of completed ticks
    """

    run_id: int
    poll_frequency: float
    max_duration: float
    deadline: float
    announced_statuses: frozenset = frozenset()
    log_offsets: dict[int, int] = field(default_factory=dict)
    last_run: Optional[RunDescriptor] = None
    ticks: int = 0

    @classmethod
    def start(
        cls,
        run_id: int,
        poll_frequency: float,
        max_duration: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> "PollSession":
        return cls(
            run_id=run_id,
            poll_frequency=poll_frequency,
            max_duration=max_duration,
            deadline=clock() + max_duration,
        )

    @property
    def last_status(self) -> Optional[RunStatus]:
        return self.last_run.status if self.last_run is not None else None


@dataclass(frozen=True)
class TickResult:
    """What one tick observed: the snapshot plus newly surfaced events."""

    run: RunDescriptor
    status_changes: tuple[RunStatus, ...] = ()
    log_chunks: tuple[LogChunk, ...] = ()

    @property
    def terminal(self) -> bool:
        return self.run.is_complete


def diff_run(
    session: PollSession, run: RunDescriptor
) -> tuple[TickResult, frozenset, dict[int, int]]:
    """
    Compare a fresh snapshot with the session state.

    Pure: the session is not touched.

    Returns:
        Tuple of (tick result, next announced statuses, next log offsets)
    """
    status_changes: tuple[RunStatus, ...] = ()
    announced = session.announced_statuses
    if run.status not in announced:
        status_changes = (run.status,)
        announced = announced | {run.status}

    offsets = dict(session.log_offsets)
    chunks = []
    for step in run.run_steps:
        offset = offsets.get(step.id, 0)
        size = len(step.logs)
        if size > offset:
            chunks.append(LogChunk(step.id, step.name, step.logs[offset:]))
            offsets[step.id] = size
        elif size < offset:
            logger.warning(
                f"Logs of step {step.id} shrank from {offset} to {size} characters, "
                "keeping previous offset"
            )

    return TickResult(run, status_changes, tuple(chunks)), announced, offsets


class PollEngine:
    """
    Polls a run until the completion predicate holds or the deadline passes.

    Args:
        client: dbt Cloud API client (retries live there, not here)
        poll_frequency: Seconds between ticks (default: 5)
        max_duration: Overall session budget in seconds (default: 3600)
        log: Logger receiving status and step log lines (e.g. Dagster context.log)
        clock: Monotonic clock
        cancel_event: Event whose setting interrupts the sleep between ticks
    """

    def __init__(
        self,
        client: DbtCloudClient,
        poll_frequency: float = 5.0,
        max_duration: float = 3600.0,
        log: Any = None,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        if poll_frequency < 0:
            raise ValueError(f"poll_frequency must be >= 0, got {poll_frequency}")
        if max_duration <= 0:
            raise ValueError(f"max_duration must be > 0, got {max_duration}")
        self._client = client
        self.poll_frequency = poll_frequency
        self.max_duration = max_duration
        self._log = log or logger
        self._clock = clock
        self._cancelled = cancel_event or threading.Event()

    def cancel(self) -> None:
        """
        Stop the current (or next) poll session at its next sleep.

        An in-flight fetch completes first. The flag is consumed by the
        session it stops, so later sessions on this engine poll normally.
        """
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start_session(self, run_id: int) -> PollSession:
        return PollSession.start(run_id, self.poll_frequency, self.max_duration, self._clock)

    # -------------------------------------------------------------------------
    # Single tick
    # -------------------------------------------------------------------------

    def _timeout_error(self, session: PollSession) -> PollTimeoutError:
        status = session.last_status
        return PollTimeoutError(
            f"Run {session.run_id} did not complete within {session.max_duration}s "
            f"(last status: {status.value if status else 'unknown'})",
            max_duration=session.max_duration,
            run_id=session.run_id,
            status=status.value if status else None,
        )

    def _fetch(self, session: PollSession) -> RunDescriptor:
        try:
            return self._client.get_run(session.run_id, deadline=session.deadline)
        except TransientNetworkError as exc:
            if exc.deadline_exceeded or self._clock() >= session.deadline:
                raise self._timeout_error(session) from exc
            exc.run_id = session.run_id
            exc.status = session.last_status.value if session.last_status else None
            raise

    def _emit(self, result: TickResult) -> None:
        for status in result.status_changes:
            self._log.debug(
                f"Status changed to '{status.value}' after {result.run.duration_humanized}"
            )
        for chunk in result.log_chunks:
            for line in chunk.lines:
                self._log.info(f"[Step {chunk.step_name}]: {line}")

    def tick(self, session: PollSession) -> TickResult:
        """
        Fetch one snapshot, surface new events and publish the session state.

        Returns:
            TickResult of this fetch

        Raises:
            PollTimeoutError: If a transient fetch failure ran into the deadline
            DbtCloudError: Any non-transient fetch failure, unchanged
        """
        run = self._fetch(session)
        result, announced, offsets = diff_run(session, run)

        session.announced_statuses = announced
        session.log_offsets = offsets
        session.last_run = run
        session.ticks += 1

        self._emit(result)
        return result

    # -------------------------------------------------------------------------
    # Poll loop
    # -------------------------------------------------------------------------

    def run_session(self, session: PollSession) -> RunDescriptor:
        """
        Tick ``session`` until the run completes.

        Returns:
            Final RunDescriptor (any terminal status)

        Raises:
            PollTimeoutError: Deadline passed while not complete
            PollCancelledError: ``cancel()`` was called
        """
        while True:
            if self._cancelled.is_set():
                # a cancel ends one session; the engine stays usable afterwards
                self._cancelled.clear()
                raise PollCancelledError(
                    f"Polling of run {session.run_id} cancelled",
                    run_id=session.run_id,
                    status=session.last_status.value if session.last_status else None,
                )

            tick_started = self._clock()
            result = self.tick(session)
            if result.terminal:
                return result.run

            now = self._clock()
            if now >= session.deadline:
                raise self._timeout_error(session)

            wake_at = min(tick_started + session.poll_frequency, session.deadline)
            self._cancelled.wait(max(0.0, wake_at - now))

    def wait_for_completion(self, run_id: int) -> RunDescriptor:
        """Poll a fresh session for ``run_id`` until it reaches a terminal state."""
        return self.run_session(self.start_session(run_id))

    def wait_for_success(self, run_id: int) -> RunDescriptor:
        """
        Like ``wait_for_completion`` but fail on Error or Cancelled.

        Raises:
            RemoteJobFailedError: Terminal status is not Success
        """
        run = self.wait_for_completion(run_id)
        if run.status is not RunStatus.SUCCESS:
            raise RemoteJobFailedError(
                f"Failed run {run.id} with status '{run.status.value}' "
                f"after {run.duration_humanized}"
                + (f": {run.status_message}" if run.status_message else ""),
                duration_humanized=run.duration_humanized,
                run_id=run.id,
                status=run.status.value,
            )
        return run
