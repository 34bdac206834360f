# =============================================================================
# dbt Cloud Client - Resilient HTTP Layer
# =============================================================================
# Retries transient request failures with bounded exponential backoff and
# exposes the dbt Cloud v2 endpoints used to trigger and observe runs.
# =============================================================================

"""
HTTP access to the dbt Cloud administrative API.

This module provides:
- ExponentialBackoff: Non-decreasing delay policy between attempts
- ResilientClient: Single logical request with bounded retries
- DbtCloudClient: Runs, trigger and artifact endpoints
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from libs.models import RunDescriptor

from .errors import (
    DbtCloudError,
    MissingArtifactError,
    PermanentNetworkError,
    TransientNetworkError,
)

__all__ = [
    "AttemptOutcome",
    "AttemptResult",
    "ExponentialBackoff",
    "ResilientClient",
    "DbtCloudClient",
    "classify_status",
]

logger = logging.getLogger(__name__)


# =============================================================================
# Attempt Classification
# =============================================================================


class AttemptOutcome(str, Enum):
    """Outcome of a single HTTP attempt."""

    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_status(status_code: int) -> AttemptOutcome:
    """
    Classify an HTTP status code.

    429 and every 5xx are transient; any other 4xx is permanent; the rest
    (2xx, 3xx) is success.
    """
    if status_code == 429 or status_code >= 500:
        return AttemptOutcome.TRANSIENT
    if status_code >= 400:
        return AttemptOutcome.PERMANENT
    return AttemptOutcome.SUCCESS


@dataclass(frozen=True)
class AttemptResult:
    """Typed result of one attempt: a response, or a transport error."""

    outcome: AttemptOutcome
    response: Optional[httpx.Response] = None
    error: Optional[httpx.TransportError] = None

    @property
    def status_code(self) -> Optional[int]:
        return self.response.status_code if self.response is not None else None

    def describe(self) -> str:
        if self.response is not None:
            return f"HTTP {self.response.status_code}"
        return f"{type(self.error).__name__}: {self.error}"


# =============================================================================
# Backoff Policy
# =============================================================================


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    Exponential backoff capped at ``max_delay``.

    Delay before retry ``n`` (zero-based) is
    ``min(initial_delay * multiplier ** n, max_delay)``. A multiplier of 1.0
    gives a fixed delay.

    Attributes:
        initial_delay: Delay before the first retry, in seconds
        multiplier: Growth factor, must be >= 1 so delays never shrink
        max_delay: Upper bound on a single delay, in seconds
    """

    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")
        if self.max_delay < 0:
            raise ValueError(f"max_delay must be >= 0, got {self.max_delay}")

    def delay_for(self, retry: int) -> float:
        return min(self.initial_delay * (self.multiplier ** retry), self.max_delay)


# =============================================================================
# Resilient Client
# =============================================================================


class ResilientClient:
    """
    Sends one logical request, retrying transient failures.

    Stateless across calls: the attempt counter lives inside ``send``.

    Args:
        http: Configured httpx client used for every attempt
        multiplier: Backoff growth factor (default: 2.0)
        max_delay: Cap on a single backoff delay in seconds (default: 30.0)
        clock: Monotonic clock, used against ``deadline``
        sleep: Blocking sleep between attempts
    """

    def __init__(
        self,
        http: httpx.Client,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._http = http
        self._multiplier = multiplier
        self._max_delay = max_delay
        self._clock = clock
        self._sleep = sleep

    def _attempt(self, request: httpx.Request) -> AttemptResult:
        try:
            response = self._http.send(request)
        except httpx.TransportError as exc:
            return AttemptResult(AttemptOutcome.TRANSIENT, error=exc)
        return AttemptResult(classify_status(response.status_code), response=response)

    def send(
        self,
        request: httpx.Request,
        max_retries: int,
        initial_delay: float,
        deadline: Optional[float] = None,
    ) -> httpx.Response:
        """
        Send ``request`` up to ``max_retries + 1`` times.

        Args:
            request: Request to send
            max_retries: Retries allowed after the first attempt
            initial_delay: Delay before the first retry, in seconds
            deadline: Optional monotonic deadline; no sleep may cross it

        Returns:
            The first successful response

        Raises:
            PermanentNetworkError: On a non-retryable HTTP status
            TransientNetworkError: When retries are exhausted or the deadline
                would be overrun; exposes the last status code
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")

        backoff = ExponentialBackoff(initial_delay, self._multiplier, self._max_delay)
        last: Optional[AttemptResult] = None
        attempts = 0
        deadline_exceeded = False

        for attempt in range(max_retries + 1):
            if attempt:
                delay = backoff.delay_for(attempt - 1)
                if deadline is not None and self._clock() + delay > deadline:
                    deadline_exceeded = True
                    break
                logger.warning(
                    f"{request.method} {request.url.path} failed ({last.describe()}), "
                    f"retry {attempt}/{max_retries} in {delay:.2f}s"
                )
                self._sleep(delay)

            result = self._attempt(request)
            attempts += 1

            if result.outcome is AttemptOutcome.SUCCESS:
                return result.response
            if result.outcome is AttemptOutcome.PERMANENT:
                response = result.response
                raise PermanentNetworkError(
                    f"{request.method} {request.url.path} failed with HTTP "
                    f"{response.status_code}: {response.text[:500]}",
                    status_code=response.status_code,
                    response_text=response.text,
                )
            last = result

        reason = "deadline reached" if deadline_exceeded else "retries exhausted"
        raise TransientNetworkError(
            f"{request.method} {request.url.path} failed after {attempts} attempt(s), "
            f"{reason}: {last.describe()}",
            attempts=attempts,
            deadline_exceeded=deadline_exceeded,
            status_code=last.status_code,
        ) from last.error


# =============================================================================
# dbt Cloud API
# =============================================================================


class DbtCloudClient:
    """
    dbt Cloud v2 API operations used by the trigger and poll engine.

    Args:
        base_url: Tenant base URL (e.g. "https://cloud.getdbt.com")
        token: Static bearer token
        account_id: Numeric account id
        max_retries: Retries per request on transient failures (default: 3)
        initial_delay: First backoff delay in seconds (default: 1.0)
        timeout: Per-attempt HTTP timeout in seconds (default: 30.0)
        transport: Optional httpx transport (tests use httpx.MockTransport)
        sleep: Sleep used between retry attempts
        clock: Monotonic clock used against request deadlines
    """

    RELATED_ITEMS = ("trigger", "job", "run_steps", "environment")

    def __init__(
        self,
        base_url: str,
        token: str,
        account_id: str,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.account_id = account_id
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._resilient = ResilientClient(self._http, clock=clock, sleep=sleep)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "DbtCloudClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _send(
        self, method: str, path: str, deadline: Optional[float] = None, **kwargs: Any
    ) -> httpx.Response:
        request = self._http.build_request(method, path, **kwargs)
        return self._resilient.send(
            request,
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            deadline=deadline,
        )

    def _parse_run(self, response: httpx.Response, run_id: Optional[int] = None) -> RunDescriptor:
        try:
            return RunDescriptor.from_response(response.json())
        except (json.JSONDecodeError, ValueError, ValidationError) as exc:
            raise DbtCloudError(
                f"Invalid run payload from {response.request.url.path}: {exc}",
                run_id=run_id,
                status_code=response.status_code,
            ) from exc

    def get_run(
        self,
        run_id: int,
        include_debug_logs: bool = False,
        deadline: Optional[float] = None,
    ) -> RunDescriptor:
        """
        Fetch the current snapshot of a run with its steps and logs.

        Args:
            run_id: Run id
            include_debug_logs: Also include debug logs in the related items
            deadline: Optional monotonic deadline bounding retries

        Returns:
            RunDescriptor snapshot
        """
        related = list(self.RELATED_ITEMS)
        if include_debug_logs:
            related.insert(2, "debug_logs")

        response = self._send(
            "GET",
            f"/api/v2/accounts/{self.account_id}/runs/{run_id}/",
            deadline=deadline,
            params={"include_related": json.dumps(related)},
        )
        return self._parse_run(response, run_id)

    def trigger_job_run(self, job_id: str, body: dict[str, Any]) -> RunDescriptor:
        """
        Enqueue a new run of a job.

        Args:
            job_id: Numeric job id
            body: Run overrides (cause, git_branch, steps_override, ...)

        Returns:
            RunDescriptor of the newly queued run
        """
        response = self._send(
            "POST",
            f"/api/v2/accounts/{self.account_id}/jobs/{job_id}/run/",
            json=body,
        )
        return self._parse_run(response)

    def get_artifact(self, run_id: int, path: str) -> bytes:
        """
        Download a run artifact (e.g. "run_results.json", "manifest.json").

        Raises:
            MissingArtifactError: If the run has no such artifact (HTTP 404)
        """
        try:
            response = self._send(
                "GET", f"/api/v2/accounts/{self.account_id}/runs/{run_id}/artifacts/{path}"
            )
        except PermanentNetworkError as exc:
            if exc.status_code == 404:
                raise MissingArtifactError(
                    f"Artifact '{path}' not found for run {run_id}",
                    path=path,
                    run_id=run_id,
                    status_code=404,
                    response_text=exc.response_text,
                ) from exc
            raise
        return response.content
